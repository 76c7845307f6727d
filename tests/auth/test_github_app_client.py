"""Tests for the GitHub OAuth/App HTTP client."""

import json
from unittest.mock import AsyncMock

import httpx
import jwt
import pytest

from issuedesk.auth import GitHubAppClient
from issuedesk.auth.errors import GitHubHTTPError, GitHubOAuthError
from issuedesk.config import RetryConfig
from tests.conftest import JAN_15
from tests.factories import make_installation, make_installation_token


@pytest.fixture
def requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def responses() -> list[httpx.Response]:
    """Queued responses, served in order."""
    return []


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
async def client(auth_config, requests, responses, sleep, clock):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    github = GitHubAppClient(
        auth_config,
        http_client=http,
        retry_config=RetryConfig(max_attempts=2, initial_delay_seconds=0.5),
        sleep=sleep,
        clock=clock,
    )
    yield github
    await http.aclose()


# -----------------------------------------------------------------------------
# Device Flow
# -----------------------------------------------------------------------------
class TestDeviceFlow:
    """Tests for device code issuance and polling."""

    async def test_initiate(self, client, requests, responses):
        responses.append(
            httpx.Response(
                200,
                json={
                    "device_code": "dc",
                    "user_code": "WDJB-MJHT",
                    "verification_uri": "https://github.com/login/device",
                    "expires_in": 900,
                    "interval": 5,
                },
            )
        )

        authorization = await client.initiate_device_flow()

        assert authorization.user_code == "WDJB-MJHT"
        request = requests[0]
        assert str(request.url) == "https://github.com/login/device/code"
        assert request.headers["Accept"] == "application/json"
        assert json.loads(request.content)["client_id"] == "Iv1.client"

    async def test_initiate_oauth_error(self, client, responses):
        responses.append(
            httpx.Response(
                200,
                json={"error": "unauthorized_client", "error_description": "Device flow off"},
            )
        )

        with pytest.raises(GitHubOAuthError) as exc_info:
            await client.initiate_device_flow()

        assert exc_info.value.error == "unauthorized_client"
        assert exc_info.value.description == "Device flow off"

    async def test_poll_pending(self, client, requests, responses):
        responses.append(httpx.Response(200, json={"error": "authorization_pending"}))

        with pytest.raises(GitHubOAuthError) as exc_info:
            await client.poll_device_flow("dc")

        assert exc_info.value.error == "authorization_pending"
        body = json.loads(requests[0].content)
        assert body["device_code"] == "dc"
        assert body["grant_type"] == "urn:ietf:params:oauth:grant-type:device_code"

    async def test_poll_is_not_retried(self, client, requests, responses, sleep):
        responses.append(httpx.Response(503, json={"message": "unavailable"}))

        with pytest.raises(GitHubHTTPError) as exc_info:
            await client.poll_device_flow("dc")

        assert exc_info.value.status == 503
        assert len(requests) == 1
        sleep.assert_not_awaited()

    async def test_poll_success(self, client, responses):
        responses.append(
            httpx.Response(
                200, json={"access_token": "gho_abc", "token_type": "bearer", "scope": ""}
            )
        )

        token = await client.poll_device_flow("dc")

        assert token.access_token == "gho_abc"


# -----------------------------------------------------------------------------
# User and installations
# -----------------------------------------------------------------------------
class TestUser:
    """Tests for the user profile and installation list."""

    async def test_get_user(self, client, requests, responses):
        responses.append(httpx.Response(200, json={"login": "octocat", "id": 1}))

        user = await client.get_user("gho_abc")

        assert user.login == "octocat"
        assert requests[0].headers["Authorization"] == "Bearer gho_abc"
        assert requests[0].headers["X-GitHub-Api-Version"] == "2022-11-28"

    async def test_get_user_installations(self, client, responses):
        responses.append(
            httpx.Response(
                200,
                json={
                    "total_count": 2,
                    "installations": [make_installation(), make_installation(id=202)],
                },
            )
        )

        installations = await client.get_user_installations("gho_abc")

        assert [inst.id for inst in installations] == [101, 202]

    async def test_server_error_is_retried(self, client, requests, responses, sleep):
        responses.extend(
            [
                httpx.Response(502, json={"message": "Bad gateway"}),
                httpx.Response(200, json={"installations": []}),
            ]
        )

        assert await client.get_user_installations("gho_abc") == []
        assert len(requests) == 2
        sleep.assert_awaited_once_with(0.5)

    async def test_client_error_is_not_retried(self, client, requests, responses):
        responses.append(httpx.Response(401, json={"message": "Bad credentials"}))

        with pytest.raises(GitHubHTTPError) as exc_info:
            await client.get_user("gho_bad")

        assert exc_info.value.status == 401
        assert str(exc_info.value) == "Bad credentials"
        assert len(requests) == 1

    async def test_non_json_error_body(self, client, responses):
        responses.append(httpx.Response(404, text="<html>nope</html>"))

        with pytest.raises(GitHubHTTPError) as exc_info:
            await client.get_user("gho_abc")

        assert str(exc_info.value) == "Not Found"


# -----------------------------------------------------------------------------
# Installation tokens
# -----------------------------------------------------------------------------
class TestInstallationToken:
    """Tests for installation token exchange."""

    async def test_signs_app_jwt(self, client, requests, responses, public_key_pem):
        responses.append(httpx.Response(201, json=make_installation_token(token="ghs_1")))

        token = await client.create_installation_token(101)

        assert token.token == "ghs_1"
        assert token.expires_at == JAN_15
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/app/installations/101/access_tokens"
        bearer = request.headers["Authorization"].removeprefix("Bearer ")
        claims = jwt.decode(
            bearer, public_key_pem, algorithms=["RS256"], options={"verify_exp": False}
        )
        assert claims["iss"] == "12345"
        assert claims["exp"] == int(JAN_15.timestamp()) + 600
