from __future__ import annotations

import httpx

from salestrack.core.config import Settings, get_settings
from salestrack.domain.models import SalesProviderType
from salestrack.providers.base import (
    DecodingError,
    ErrorKind,
    InvalidAPIKeyError,
    NetworkError,
    NoAPIKeyError,
    RateLimitedError,
    SalesAPIError,
    SalesProvider,
    ServerError,
)
from salestrack.providers.gumroad import GumroadProvider
from salestrack.providers.lemonsqueezy import LemonSqueezyProvider
from salestrack.providers.stripe import StripeProvider

PROVIDER_CLASSES: dict[SalesProviderType, type] = {
    SalesProviderType.LEMONSQUEEZY: LemonSqueezyProvider,
    SalesProviderType.GUMROAD: GumroadProvider,
    SalesProviderType.STRIPE: StripeProvider,
}


def build_provider(
    provider_type: SalesProviderType,
    api_key: str,
    settings: Settings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> SalesProvider:
    provider_cls = PROVIDER_CLASSES.get(provider_type)
    if provider_cls is None:
        raise KeyError(f"unknown provider: {provider_type}")
    return provider_cls(api_key, settings=settings or get_settings(), transport=transport)


__all__ = [
    "DecodingError",
    "ErrorKind",
    "GumroadProvider",
    "InvalidAPIKeyError",
    "LemonSqueezyProvider",
    "NetworkError",
    "NoAPIKeyError",
    "PROVIDER_CLASSES",
    "RateLimitedError",
    "SalesAPIError",
    "SalesProvider",
    "ServerError",
    "StripeProvider",
    "build_provider",
]
