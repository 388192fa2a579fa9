import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import httpx

from shop.config import settings
from shop.errors import ProviderUnavailableError
from shop.services.payment_provider import (
    InitiateResult,
    PaymentProvider,
    ProviderName,
    RefundResult,
    VerificationResult,
)

logger = logging.getLogger(__name__)

BKASH_SUCCESS_CODE = "0000"
BKASH_COMPLETED = "Completed"


def _parse_amount(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class BkashProvider(PaymentProvider):
    """bKash tokenized checkout.

    Every API call needs a grant token. The token is cached and refreshed
    ``BKASH_TOKEN_REFRESH_MARGIN_SECONDS`` before the expiry bKash reports.
    """

    name = ProviderName.BKASH

    def __init__(
        self,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        missing = [
            key
            for key in ("BKASH_BASE_URL", "BKASH_APP_KEY", "BKASH_APP_SECRET", "BKASH_USERNAME", "BKASH_PASSWORD")
            if not getattr(settings, key)
        ]
        if missing:
            raise ProviderUnavailableError(f"bKash is not configured: {', '.join(missing)} not set")

        self.base_url = settings.BKASH_BASE_URL
        self.app_key = settings.BKASH_APP_KEY
        self.currency = settings.BKASH_CURRENCY
        self._app_secret = settings.BKASH_APP_SECRET
        self._username = settings.BKASH_USERNAME
        self._password = settings.BKASH_PASSWORD
        self._refresh_margin = settings.BKASH_TOKEN_REFRESH_MARGIN_SECONDS
        self._client = client or httpx.Client(timeout=settings.BKASH_HTTP_TIMEOUT_SECONDS)
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0

    def _get_token(self) -> str:
        now = self._clock()
        if self._token and self._token_expires_at - self._refresh_margin > now:
            return self._token

        try:
            response = self._client.post(
                f"{self.base_url}/tokenized/checkout/token/grant",
                json={"app_key": self.app_key, "app_secret": self._app_secret},
                headers={"username": self._username, "password": self._password},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to get bKash token: %s", e)
            raise ProviderUnavailableError("Failed to authenticate with bKash") from e

        token = data.get("id_token")
        if not token:
            logger.error("bKash token grant rejected: %s", data.get("statusMessage") or data.get("msg"))
            raise ProviderUnavailableError("Failed to authenticate with bKash")

        self._token = token
        self._token_expires_at = now + int(data.get("expires_in", 3600))
        logger.info("bKash token obtained, valid for %s seconds", data.get("expires_in", 3600))
        return token

    def _call(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        token = self._get_token()
        try:
            response = self._client.post(
                f"{self.base_url}{path}",
                json=body,
                headers={"Authorization": token, "X-APP-Key": self.app_key},
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("bKash request to %s failed: %s", path, e)
            raise ProviderUnavailableError(f"bKash request failed: {e}") from e

    def initiate(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any] | None = None,
    ) -> InitiateResult:
        data = self._call(
            "/tokenized/checkout/create",
            {
                "mode": "0011",
                "payerReference": str((metadata or {}).get("user_id", "guest")),
                "callbackURL": settings.BKASH_CALLBACK_URL,
                "amount": str(amount),
                "currency": currency,
                "intent": "sale",
                "merchantInvoiceNumber": str(order_id),
            },
        )
        if data.get("statusCode") != BKASH_SUCCESS_CODE:
            return InitiateResult(ok=False, error=data.get("statusMessage") or "Failed to create bKash payment")

        logger.info("bKash payment created: %s", data.get("paymentID"))
        return InitiateResult(
            ok=True,
            external_payment_id=data.get("paymentID"),
            redirect_url=data.get("bkashURL"),
        )

    def _query_status(self, external_payment_id: str) -> dict[str, Any]:
        return self._call("/tokenized/checkout/payment/status", {"paymentID": external_payment_id})

    def verify(self, external_payment_id: str) -> VerificationResult:
        # Execute captures an authorized payment; once executed, bKash answers
        # with an error code and the status query becomes authoritative.
        data = self._call("/tokenized/checkout/execute", {"paymentID": external_payment_id})
        if data.get("statusCode") != BKASH_SUCCESS_CODE:
            logger.info(
                "bKash execute for %s returned %s, querying status",
                external_payment_id,
                data.get("statusMessage"),
            )
            data = self._query_status(external_payment_id)

        transaction_status = data.get("transactionStatus") or data.get("statusMessage") or "unknown"
        return VerificationResult(
            verified=data.get("statusCode") == BKASH_SUCCESS_CODE and transaction_status == BKASH_COMPLETED,
            status=transaction_status,
            external_transaction_id=data.get("trxID"),
            amount=_parse_amount(data.get("amount")),
        )

    def refund(self, external_payment_id: str, amount: Decimal | None = None) -> RefundResult:
        payment = self._query_status(external_payment_id)
        trx_id = payment.get("trxID")
        if payment.get("transactionStatus") != BKASH_COMPLETED or not trx_id:
            return RefundResult(ok=False, error="bKash payment is not completed")

        refund_amount = amount if amount is not None else _parse_amount(payment.get("amount"))
        data = self._call(
            "/tokenized/checkout/payment/refund",
            {
                "paymentID": external_payment_id,
                "trxID": trx_id,
                "amount": str(refund_amount),
                "sku": "refund",
                "reason": "Merchant refund",
            },
        )
        if data.get("statusCode") != BKASH_SUCCESS_CODE:
            return RefundResult(ok=False, error=data.get("statusMessage") or "Failed to refund bKash payment")

        logger.info("bKash refund processed: %s", data.get("refundTrxID"))
        return RefundResult(ok=True, refund_id=data.get("refundTrxID"))
