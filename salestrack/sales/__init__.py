from salestrack.sales.cache import CacheService
from salestrack.sales.credentials import CredentialStore, InMemoryCredentialStore, SettingsCredentialStore
from salestrack.sales.manager import SalesManager, SalesSnapshot

__all__ = [
    "CacheService",
    "CredentialStore",
    "InMemoryCredentialStore",
    "SalesManager",
    "SalesSnapshot",
    "SettingsCredentialStore",
]
