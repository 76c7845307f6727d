"""Installation token caching and retrieval for the desktop app."""

from .cache import CachedInstallationToken, TokenCache
from .client import AuthServiceClient, AuthServiceClientError
from .manager import InstallationTokenManager
from .store import CredentialStore, StoredLogin

__all__ = [
    "AuthServiceClient",
    "AuthServiceClientError",
    "CachedInstallationToken",
    "CredentialStore",
    "InstallationTokenManager",
    "StoredLogin",
    "TokenCache",
]
