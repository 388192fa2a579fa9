"""Provider-agnostic payment contract shared by every gateway integration."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from shop.errors import ValidationError


class ProviderName(str, Enum):
    STRIPE = "stripe"
    BKASH = "bkash"

    @classmethod
    def supported(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: "str | ProviderName") -> "ProviderName":
        if isinstance(value, ProviderName):
            return value
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValidationError(
            f"Unsupported payment provider: {value}. Supported providers: {', '.join(cls.supported())}"
        )


class EventKind(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    IGNORED = "ignored"


@dataclass(frozen=True)
class InitiateResult:
    ok: bool
    external_payment_id: str | None = None
    client_secret: str | None = None
    redirect_url: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    status: str
    external_transaction_id: str | None = None
    amount: Decimal | None = None


@dataclass(frozen=True)
class RefundResult:
    ok: bool
    refund_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class PaymentEvent:
    """A provider notification normalized for the settlement state machine."""

    kind: EventKind
    external_id: str | None
    event_type: str
    amount: int | None = None
    details: dict[str, Any] = field(default_factory=dict)


class PaymentProvider(ABC):
    name: ProviderName
    currency: str

    @abstractmethod
    def initiate(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any] | None = None,
    ) -> InitiateResult:
        """Create the remote payment. Must not touch local state."""

    @abstractmethod
    def verify(self, external_payment_id: str) -> VerificationResult:
        """Ask the provider whether the payment has completed."""

    @abstractmethod
    def refund(self, external_payment_id: str, amount: Decimal | None = None) -> RefundResult:
        """Refund a completed payment; ``amount=None`` refunds the full charge."""


class SignedEventProvider(PaymentProvider):
    """Provider that delivers signed asynchronous notifications."""

    @abstractmethod
    def construct_verified_event(self, raw_payload: bytes, signature_header: str) -> PaymentEvent:
        """Verify ``signature_header`` against the untouched body, then parse it.

        Raises InvalidSignatureError when the signature does not match.
        """


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def from_minor_units(amount: int | None) -> Decimal | None:
    if amount is None:
        return None
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))
