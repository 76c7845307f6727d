"""Fixtures for the authentication service tests."""

from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from issuedesk.auth import (
    DeviceFlowAuthenticator,
    GitHubAppClient,
    MemoryKeyValueStore,
    SessionStore,
    SlidingWindowRateLimiter,
)
from issuedesk.config import AuthServiceConfig, EdgeRateLimitConfig, Settings
from issuedesk.schemas.github_api import (
    DeviceAuthorization,
    DeviceTokenResponse,
    Installation,
    InstallationToken,
)
from tests.factories import make_installation, make_installation_token


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """One RSA key per test run (generation is slow)."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key) -> str:
    """PKCS#8 PEM of rsa_key."""
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_key) -> str:
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def auth_config(private_key_pem) -> AuthServiceConfig:
    """Fully configured GitHub App secrets."""
    return AuthServiceConfig(
        github_app_id="12345",
        github_private_key=private_key_pem,
        github_client_id="Iv1.client",
        github_client_secret="client-secret",
    )


@pytest.fixture
def settings(private_key_pem) -> Settings:
    """Settings with App secrets set and the default edge rate limit."""
    return Settings(
        _env_file=None,
        github_app_id="12345",
        github_private_key=private_key_pem,
        github_client_id="Iv1.client",
        github_client_secret="client-secret",
    )


@pytest.fixture
def kv(clock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def sessions(kv, clock) -> SessionStore:
    return SessionStore(kv, clock=clock)


@pytest.fixture
def rate_limiter(kv, clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        kv, EdgeRateLimitConfig(window_seconds=60, max_requests=5), clock=clock
    )


@pytest.fixture
def installation() -> Installation:
    return Installation.model_validate(make_installation())


@pytest.fixture
def github_app(installation) -> MagicMock:
    """GitHubAppClient mock walking the happy path of a device flow."""
    github = MagicMock(spec=GitHubAppClient)
    github.initiate_device_flow.return_value = DeviceAuthorization(
        device_code="device-code-1",
        user_code="ABCD-1234",
        verification_uri="https://github.com/login/device",
        interval=5,
        expires_in=900,
    )
    github.poll_device_flow.return_value = DeviceTokenResponse(access_token="gho_user")
    github.get_user_installations.return_value = [installation]
    github.create_installation_token.return_value = InstallationToken.model_validate(
        make_installation_token()
    )
    return github


@pytest.fixture
def authenticator(github_app, sessions, rate_limiter, clock) -> DeviceFlowAuthenticator:
    return DeviceFlowAuthenticator(github_app, sessions, rate_limiter, clock=clock)
