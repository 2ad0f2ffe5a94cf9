"""Tests for the Sure Petcare API client."""

import json

import httpx
import pytest
import pytest_asyncio

from curfew.exceptions import AuthError, RemoteApiError
from curfew.surepet.client import TOKEN_CACHE_KEY, SurePetClient

BASE_URL = "https://api.test/api"


class FakeApi:
    """httpx handler emulating the login and device endpoints."""

    def __init__(self):
        self.valid_tokens = set()
        self.issued = 0
        self.login_status = 200
        self.logins = 0
        self.requests = []
        self.always_unauthorized = False
        self.status_override = None
        self.garbled_body = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/auth/login"):
            self.logins += 1
            body = json.loads(request.content)
            assert body["email_address"] == "me@example.com"
            if self.login_status != 200:
                return httpx.Response(self.login_status, text="bad credentials")
            self.issued += 1
            token = f"token-{self.issued}"
            self.valid_tokens.add(token)
            return httpx.Response(
                200, json={"data": {"token": token, "user": {"id": 1, "name": "Me"}}}
            )

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        self.requests.append((request.method, request.url.path, token))
        if self.always_unauthorized or token not in self.valid_tokens:
            return httpx.Response(401, text="unauthorized")
        if self.status_override:
            return httpx.Response(self.status_override, text="server error")
        if self.garbled_body:
            return httpx.Response(200, text="<html>ok</html>")
        if request.url.path.endswith("/me/start"):
            return httpx.Response(
                200,
                json={
                    "data": {
                        "households": [{"id": 7, "name": "Home"}],
                        "devices": [
                            {
                                "id": 10,
                                "name": "Back door",
                                "product_id": 6,
                                "status": {"battery": 5.8, "online": True},
                                "control": {"locking": 0},
                                "tags": [{"id": 101, "profile": 2}],
                            }
                        ],
                        "pets": [
                            {
                                "id": 1,
                                "name": "Tom",
                                "tag_id": 101,
                                "status": {"activity": {"where": 1}},
                            }
                        ],
                        "tags": [{"id": 101, "tag": "abc"}],
                    }
                },
            )
        return httpx.Response(200, json={"data": json.loads(request.content or b"{}")})


@pytest.fixture
def api():
    return FakeApi()


@pytest_asyncio.fixture
async def client(api, cache):
    surepet = SurePetClient(
        "me@example.com",
        "secret",
        cache,
        base_url=BASE_URL,
        transport=httpx.MockTransport(api),
    )
    yield surepet
    await surepet.close()


@pytest.mark.asyncio
async def test_login_stores_token_in_cache(client, api, cache):
    await client.login()

    assert api.logins == 1
    assert cache.get(TOKEN_CACHE_KEY) == "token-1"


@pytest.mark.asyncio
async def test_first_request_logs_in_and_sends_bearer(client, api):
    await client.set_tag_profile(10, 101, 3)

    assert api.logins == 1
    assert api.requests == [("PUT", "/api/device/10/tag/101", "token-1")]


@pytest.mark.asyncio
async def test_cached_token_is_reused(client, api, cache):
    api.valid_tokens.add("persisted")
    cache.set(TOKEN_CACHE_KEY, "persisted")

    await client.set_device_lock(10, 1)

    assert api.logins == 0
    assert api.requests[0][2] == "persisted"


@pytest.mark.asyncio
async def test_401_triggers_one_login_and_one_resend(client, api, cache):
    cache.set(TOKEN_CACHE_KEY, "stale")

    result = await client.set_tag_profile(10, 101, 2)

    assert result == {"data": {"profile": 2}}
    assert api.logins == 1
    assert [r[2] for r in api.requests] == ["stale", "token-1"]
    assert cache.get(TOKEN_CACHE_KEY) == "token-1"


@pytest.mark.asyncio
async def test_second_401_is_not_retried(client, api):
    api.always_unauthorized = True

    with pytest.raises(RemoteApiError) as exc_info:
        await client.set_tag_profile(10, 101, 3)

    assert exc_info.value.status_code == 401
    assert len(api.requests) == 2
    # initial login plus exactly one re-login
    assert api.logins == 2


@pytest.mark.asyncio
async def test_rejected_credentials_raise_auth_error(client, api, cache):
    api.login_status = 401

    with pytest.raises(AuthError):
        await client.get_dashboard()

    assert api.requests == []
    assert cache.get(TOKEN_CACHE_KEY) is None


@pytest.mark.asyncio
async def test_server_error_is_not_retried(client, api):
    await client.login()
    api.status_override = 500

    with pytest.raises(RemoteApiError) as exc_info:
        await client.set_device_lock(10, 3)

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "server error"
    assert len(api.requests) == 1


@pytest.mark.asyncio
async def test_clear_token_forces_login(client, api, cache):
    await client.login()
    client.clear_token()

    assert cache.get(TOKEN_CACHE_KEY) is None

    await client.set_device_lock(10, 0)
    assert api.logins == 2


@pytest.mark.asyncio
async def test_transport_error_becomes_remote_api_error(cache):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    cache.set(TOKEN_CACHE_KEY, "token")
    surepet = SurePetClient(
        "me@example.com", "secret", cache, base_url=BASE_URL, transport=httpx.MockTransport(handler)
    )
    try:
        with pytest.raises(RemoteApiError) as exc_info:
            await surepet.set_device_lock(10, 0)
    finally:
        await surepet.close()

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_get_dashboard_parses_snapshot(client):
    dashboard = await client.get_dashboard()

    assert dashboard.households[0].id == 7
    assert dashboard.devices[0].status.battery == 5.8
    assert dashboard.devices[0].tags[0].id == 101
    assert dashboard.pets[0].where == 1


@pytest.mark.asyncio
async def test_undecodable_success_body_becomes_remote_api_error(client, api):
    api.garbled_body = True

    with pytest.raises(RemoteApiError) as exc_info:
        await client.set_tag_profile(10, 101, 3)

    assert exc_info.value.status_code == 200
    assert exc_info.value.body == "<html>ok</html>"
