import logging

from shop.services.bkash_service import BkashProvider
from shop.services.payment_provider import PaymentProvider, ProviderName
from shop.services.stripe_service import StripeProvider

logger = logging.getLogger(__name__)

_providers: dict[ProviderName, PaymentProvider] = {}


def _build_provider(name: ProviderName) -> PaymentProvider:
    if name is ProviderName.STRIPE:
        return StripeProvider()
    if name is ProviderName.BKASH:
        return BkashProvider()
    raise ValueError(f"No provider implementation for {name!r}")


def resolve(provider: str | ProviderName) -> PaymentProvider:
    """Return the cached provider for ``provider``, building it on first use."""
    name = ProviderName.parse(provider)
    cached = _providers.get(name)
    if cached is not None:
        return cached

    instance = _build_provider(name)
    _providers[name] = instance
    logger.info("%s payment provider instantiated", name.value)
    return instance


def reset() -> None:
    _providers.clear()
    logger.info("Payment provider cache cleared")


def get_supported_providers() -> list[str]:
    return ProviderName.supported()
