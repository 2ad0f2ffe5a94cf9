"""Sure Petcare REST API client."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..exceptions import AuthError, RemoteApiError
from ..store.repositories import Cache
from .const import (
    DASHBOARD_ENDPOINT,
    LOGIN_ENDPOINT,
    device_control_endpoint,
    device_tag_endpoint,
)
from .models import Dashboard

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = "auth_token"


class SurePetClient:
    """Authenticated client for the Sure Petcare cloud API.

    The bearer token is owned by this instance. It is persisted in the cache so a
    restarted process can reuse it, and it is trusted until the API answers 401.
    """

    def __init__(
        self,
        email: str,
        password: str,
        cache: Cache,
        base_url: str = "https://app.api.surehub.io/api",
        device_id: str = "surepet-curfew-service",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            email: Account email address
            password: Account password
            cache: Cache used to persist the auth token
            base_url: API root URL
            device_id: Client identifier sent on login
            timeout: Connect/read timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.email = email
        self.password = password
        self.cache = cache
        self.device_id = device_id
        self._http = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )
        self._token: Optional[str] = None
        self._auth_lock = asyncio.Lock()

    async def close(self):
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def login(self):
        """Log in with the account credentials and store the bearer token."""
        logger.info("Logging in to Sure Petcare API")
        try:
            response = await self._http.post(
                LOGIN_ENDPOINT,
                json={
                    "email_address": self.email,
                    "password": self.password,
                    "device_id": self.device_id,
                },
            )
        except httpx.HTTPError as e:
            raise RemoteApiError(None, str(e), "POST", LOGIN_ENDPOINT) from e

        if not response.is_success:
            raise AuthError(f"Login failed: {response.status_code} {response.text}")

        try:
            data = response.json()["data"]
            token = data["token"]
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError("Login failed: no token in response") from e

        self._token = token
        self.cache.set(TOKEN_CACHE_KEY, token)
        user = data.get("user") or {}
        logger.info(f"Logged in successfully as {user.get('name', self.email)}")

    def clear_token(self):
        """Forget the current token so the next request re-authenticates."""
        self._token = None
        self.cache.delete(TOKEN_CACHE_KEY)

    async def _ensure_token(self):
        async with self._auth_lock:
            if self._token:
                return
            cached = self.cache.get(TOKEN_CACHE_KEY)
            if cached:
                logger.info("Using cached auth token")
                self._token = cached
                return
            await self.login()

    async def _reauthenticate(self, rejected_token: Optional[str]):
        async with self._auth_lock:
            # Another request may already have replaced the rejected token
            if self._token and self._token != rejected_token:
                return
            self.clear_token()
            await self.login()

    async def _send(self, method: str, path: str, body: Any) -> httpx.Response:
        logger.debug(f"API request: {method} {path}")
        try:
            return await self._http.request(
                method,
                path,
                json=body,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as e:
            raise RemoteApiError(None, str(e), method, path) from e

    async def request(self, method: str, path: str, body: Any = None) -> dict:
        """
        Send an authenticated request.

        A 401 answer triggers exactly one re-login and one resend.

        Args:
            method: HTTP method
            path: Path relative to the API root
            body: Optional JSON body

        Returns:
            Decoded JSON response (empty dict for an empty body)

        Raises:
            AuthError: Credentials were rejected during (re-)login
            RemoteApiError: The API answered non-2xx or could not be reached
        """
        if not self._token:
            await self._ensure_token()

        token = self._token
        response = await self._send(method, path, body)

        if response.status_code == 401:
            logger.info("Token expired, re-authenticating")
            await self._reauthenticate(token)
            response = await self._send(method, path, body)

        if not response.is_success:
            raise RemoteApiError(response.status_code, response.text, method, path)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(response.status_code, response.text, method, path) from e

    async def get_dashboard(self) -> Dashboard:
        """
        Fetch the full account snapshot.

        Returns:
            Dashboard with households, devices, pets and tags
        """
        payload = await self.request("GET", DASHBOARD_ENDPOINT)
        return Dashboard.model_validate(payload.get("data") or {})

    async def set_tag_profile(self, device_id: int, tag_id: int, profile: int) -> dict:
        """Set the access profile of one tag on one device."""
        logger.info(f"Setting tag profile: device={device_id} tag={tag_id} profile={profile}")
        return await self.request(
            "PUT", device_tag_endpoint(device_id, tag_id), {"profile": int(profile)}
        )

    async def set_device_lock(self, device_id: int, lock_mode: int) -> dict:
        """Set the whole-device lock mode."""
        logger.info(f"Setting device lock mode: device={device_id} mode={lock_mode}")
        return await self.request(
            "PUT", device_control_endpoint(device_id), {"locking": int(lock_mode)}
        )
