"""
Vault-backed secret store.

Reads KV version 2 secrets over the Vault HTTP API and keeps the client
token alive through renew-self. Lease bookkeeping is shared between the
read path and the renewal loop, so every access to it holds the lock.
"""

import asyncio
import logging
import math
import time
from typing import Any, Dict, Optional, Type

import httpx

from ...errors import RenewalError, SecretStoreError

logger = logging.getLogger(__name__)

# A renewed lease covers this many renewal intervals.
LEASE_INTERVALS = 2


class VaultSecrets:
    """Secret store that holds a renewable Vault token lease."""

    renewable = True

    def __init__(
        self,
        address: str,
        path: str,
        token: str,
        renewal: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize the Vault client. Call authenticate() (or use connect())
        before reading secrets.

        Args:
            address: Vault server address, e.g. http://127.0.0.1:8200
            path: KV v2 mount (and optional prefix) secrets live under
            token: Vault token
            renewal: Renewal interval in seconds; each renewal requests a
                lease of LEASE_INTERVALS times this
            transport: Optional httpx transport, used by tests
            timeout: HTTP timeout in seconds
        """
        if not token:
            raise SecretStoreError("A Vault token is required when a Vault address is set")

        self.address = address.rstrip("/")
        self.mount, _, self.prefix = path.strip("/").partition("/")
        if not self.mount:
            raise SecretStoreError(f"Invalid Vault path: {path!r}")
        self.renewal = renewal

        self._client = httpx.AsyncClient(
            base_url=self.address,
            headers={"X-Vault-Token": token},
            timeout=timeout,
            transport=transport,
        )
        self._lock = asyncio.Lock()
        self._authenticated = False
        self._ttl = 0
        self._expires_at: Optional[float] = None

    @classmethod
    async def connect(
        cls,
        address: str,
        path: str,
        token: str,
        renewal: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "VaultSecrets":
        """Build a store and verify the token before returning it."""
        store = cls(address, path, token, renewal, transport=transport)
        try:
            await store.authenticate()
        except Exception:
            await store.close()
            raise
        return store

    async def authenticate(self) -> None:
        """
        Look up the token and record its lease.

        Raises:
            SecretStoreError: If Vault is unreachable or rejects the token
        """
        async with self._lock:
            await self._lookup_self()

    async def get(self, path: str) -> Dict[str, str]:
        async with self._lock:
            if not self._authenticated:
                await self._lookup_self()

        url = f"/v1/{self.mount}/data/{self._secret_key(path)}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise SecretStoreError(f"Vault read failed for {path}: {e}") from e

        if response.status_code == 404:
            logger.debug(f"No secrets stored at {url}")
            return {}
        if response.status_code != 200:
            raise SecretStoreError(
                f"Vault HTTP {response.status_code} reading {path}: {self._errors(response)}"
            )

        body = self._json(response, SecretStoreError)
        data = body.get("data") or {}
        if isinstance(data, dict):
            data = data.get("data") or {}
        if not isinstance(data, dict):
            raise SecretStoreError(f"Vault returned unexpected payload for {path}")
        return {str(k): "" if v is None else str(v) for k, v in data.items()}

    async def renew(self) -> None:
        """
        Extend the token lease to cover the next renewal with room to spare.

        Raises:
            RenewalError: If the lease expired, Vault is unreachable or refuses
        """
        async with self._lock:
            if self._expires_at is not None and time.monotonic() >= self._expires_at:
                raise RenewalError("Vault token lease has expired")

            if self._authenticated and self._ttl == 0:
                # Non-expiring token (e.g. root); Vault refuses to renew these.
                logger.debug("Vault token has no TTL, skipping renewal")
                return

            try:
                response = await self._client.post(
                    "/v1/auth/token/renew-self",
                    json={"increment": f"{self.increment}s"},
                )
            except httpx.HTTPError as e:
                raise RenewalError(f"Vault unreachable during renewal: {e}") from e

            if response.status_code != 200:
                raise RenewalError(
                    f"Vault HTTP {response.status_code} on renewal: {self._errors(response)}"
                )

            auth = self._json(response, RenewalError).get("auth") or {}
            self._set_lease(self._seconds(auth.get("lease_duration"), RenewalError))
            self._authenticated = True
            logger.info(f"Renewed Vault token lease for {self._ttl}s")

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def ttl(self) -> int:
        """Lease duration in seconds as of the last lookup or renewal."""
        return self._ttl

    @property
    def increment(self) -> int:
        """Lease duration in whole seconds requested on every renewal."""
        return max(1, math.ceil(self.renewal * LEASE_INTERVALS))

    async def _lookup_self(self) -> None:
        try:
            response = await self._client.get("/v1/auth/token/lookup-self")
        except httpx.HTTPError as e:
            raise SecretStoreError(f"Failed to connect to Vault at {self.address}: {e}") from e

        if response.status_code != 200:
            raise SecretStoreError(
                f"Vault rejected token (HTTP {response.status_code}): {self._errors(response)}"
            )

        data: Dict[str, Any] = self._json(response, SecretStoreError).get("data") or {}
        self._set_lease(self._seconds(data.get("ttl", 0), SecretStoreError))
        self._authenticated = True
        logger.debug(f"Authenticated to Vault at {self.address} (ttl {self._ttl}s)")

    def _set_lease(self, ttl: int) -> None:
        self._ttl = ttl
        self._expires_at = time.monotonic() + ttl if ttl > 0 else None

    def _secret_key(self, path: str) -> str:
        path = path.strip("/")
        return f"{self.prefix}/{path}" if self.prefix else path

    @staticmethod
    def _json(response: httpx.Response, error: Type[SecretStoreError]) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise error(f"Vault returned a non-JSON body from {response.url.path}") from e
        if body is None:
            return {}
        if not isinstance(body, dict):
            raise error(f"Vault returned unexpected payload from {response.url.path}")
        return body

    @staticmethod
    def _seconds(value: Any, error: Type[SecretStoreError]) -> int:
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise error(f"Vault returned an invalid lease duration: {value!r}") from e

    @staticmethod
    def _errors(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        errors = body.get("errors") if isinstance(body, dict) else None
        return "; ".join(str(e) for e in errors) if errors else response.text
