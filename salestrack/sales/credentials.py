from __future__ import annotations

import threading
from typing import Protocol

from salestrack.core.config import Settings, get_settings
from salestrack.domain.models import SalesProviderType


class CredentialStore(Protocol):
    """Secure storage lives outside this package; the manager only talks to this seam."""

    def load(self, provider: SalesProviderType) -> str | None:
        ...

    def save(self, provider: SalesProviderType, key: str) -> None:
        ...

    def delete(self, provider: SalesProviderType) -> None:
        ...


class InMemoryCredentialStore:
    def __init__(self, initial: dict[SalesProviderType, str] | None = None):
        self._lock = threading.Lock()
        self._keys: dict[SalesProviderType, str] = dict(initial or {})

    def load(self, provider: SalesProviderType) -> str | None:
        with self._lock:
            return self._keys.get(provider)

    def save(self, provider: SalesProviderType, key: str) -> None:
        with self._lock:
            self._keys[provider] = key

    def delete(self, provider: SalesProviderType) -> None:
        with self._lock:
            self._keys.pop(provider, None)


class SettingsCredentialStore(InMemoryCredentialStore):
    """Seeds from ST_*_API_KEY settings; changes are kept for the process lifetime only."""

    def __init__(self, settings: Settings | None = None):
        cfg = settings or get_settings()
        seeded = {
            SalesProviderType.LEMONSQUEEZY: cfg.lemonsqueezy_api_key,
            SalesProviderType.GUMROAD: cfg.gumroad_api_key,
            SalesProviderType.STRIPE: cfg.stripe_api_key,
        }
        super().__init__({provider: key for provider, key in seeded.items() if key})
