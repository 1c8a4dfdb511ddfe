"""
Tests for the secret stores and the renewal loop.
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from stackwatch.config import ServiceConfig
from stackwatch.errors import RenewalError, SecretStoreError
from stackwatch.modules.secret import (
    MemorySecrets,
    RenewalLoop,
    VaultSecrets,
    create_secret_store,
)


def vault_config(**overrides) -> ServiceConfig:
    values = dict(
        target=None,
        hostname="web1",
        vault_address="http://vault.test:8200",
        vault_token="s.token",
        vault_path="secret",
        vault_renewal=60,
    )
    values.update(overrides)
    return ServiceConfig(**values)


class TestMemorySecrets:
    @pytest.mark.asyncio
    async def test_get_known_path(self):
        store = MemorySecrets({"app1": {"DB_PASS": "x"}})
        assert await store.get("app1") == {"DB_PASS": "x"}

    @pytest.mark.asyncio
    async def test_get_unknown_path_is_empty(self):
        assert await MemorySecrets().get("nope") == {}

    @pytest.mark.asyncio
    async def test_get_returns_a_copy(self):
        store = MemorySecrets({"app1": {"DB_PASS": "x"}})
        values = await store.get("app1")
        values["DB_PASS"] = "changed"
        assert await store.get("app1") == {"DB_PASS": "x"}

    @pytest.mark.asyncio
    async def test_not_renewable(self):
        store = MemorySecrets()
        assert store.renewable is False
        assert await store.renew() is None


class TestVaultSecrets:
    @pytest.mark.asyncio
    async def test_connect_records_lease(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )

        assert store.renewable is True
        assert store.ttl == 3600
        assert vault.paths() == ["/v1/auth/token/lookup-self"]
        assert vault.requests[0].headers["X-Vault-Token"] == "s.token"
        await store.close()

    @pytest.mark.asyncio
    async def test_connect_rejected_token(self, vault, vault_transport):
        vault.lookup_status = 403

        with pytest.raises(SecretStoreError) as exc_info:
            await VaultSecrets.connect(
                "http://vault.test:8200", "secret", "bad", 60, transport=vault_transport
            )
        assert "permission denied" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connect_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SecretStoreError):
            await VaultSecrets.connect(
                "http://vault.test:8200", "secret", "s.token", 60,
                transport=httpx.MockTransport(refuse),
            )

    def test_token_required(self):
        with pytest.raises(SecretStoreError):
            VaultSecrets("http://vault.test:8200", "secret", "", 60)

    @pytest.mark.asyncio
    async def test_get_reads_kv2(self, vault, vault_transport):
        store = VaultSecrets("http://vault.test:8200", "/secret/", "s.token", 60,
                             transport=vault_transport)

        assert await store.get("app1") == {"DB_PASS": "x"}
        # authenticates lazily before the first read
        assert vault.paths() == ["/v1/auth/token/lookup-self", "/v1/secret/data/app1"]
        await store.close()

    @pytest.mark.asyncio
    async def test_get_with_prefix(self, vault, vault_transport):
        vault.secrets["stacks/app1"] = {"TOKEN": 42}
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret/stacks", "s.token", 60, transport=vault_transport
        )

        assert await store.get("app1") == {"TOKEN": "42"}
        assert vault.paths()[-1] == "/v1/secret/data/stacks/app1"
        await store.close()

    @pytest.mark.asyncio
    async def test_get_missing_path_is_empty(self, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        assert await store.get("unknown") == {}
        await store.close()

    @pytest.mark.asyncio
    async def test_get_backend_error(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        vault.read_status = 500

        with pytest.raises(SecretStoreError):
            await store.get("app1")
        await store.close()

    @pytest.mark.asyncio
    async def test_renew_extends_lease(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )

        await store.renew()

        renew = vault.requests[-1]
        assert renew.url.path == "/v1/auth/token/renew-self"
        assert renew.method == "POST"
        # the lease outlives the next renewal
        assert json.loads(renew.content) == {"increment": "120s"}
        assert store.ttl == 120
        await store.close()

    def test_sub_second_renewal_requests_whole_seconds(self):
        store = VaultSecrets("http://vault.test:8200", "secret", "s.token", 0.2)
        assert store.increment == 1

    @pytest.mark.asyncio
    async def test_renew_non_json_body(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        vault.raw_bodies["/v1/auth/token/renew-self"] = b"<html>proxy error</html>"

        with pytest.raises(RenewalError):
            await store.renew()
        await store.close()

    @pytest.mark.asyncio
    async def test_renew_null_lease_duration(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        vault.raw_bodies["/v1/auth/token/renew-self"] = b'{"auth": {"lease_duration": null}}'

        with pytest.raises(RenewalError):
            await store.renew()
        await store.close()

    @pytest.mark.asyncio
    async def test_lookup_non_json_body(self, vault, vault_transport):
        vault.raw_bodies["/v1/auth/token/lookup-self"] = b"<html>bad gateway</html>"

        with pytest.raises(SecretStoreError):
            await VaultSecrets.connect(
                "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
            )

    @pytest.mark.asyncio
    async def test_get_non_json_body(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        vault.raw_bodies["/v1/secret/data/app1"] = b"not json"

        with pytest.raises(SecretStoreError):
            await store.get("app1")
        await store.close()

    @pytest.mark.asyncio
    async def test_renew_backend_failure(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        vault.renew_status = 503

        with pytest.raises(RenewalError):
            await store.renew()
        await store.close()

    @pytest.mark.asyncio
    async def test_renew_expired_lease(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        store._expires_at = time.monotonic() - 1

        with pytest.raises(RenewalError) as exc_info:
            await store.renew()
        assert "expired" in str(exc_info.value)
        assert "/v1/auth/token/renew-self" not in vault.paths()
        await store.close()

    @pytest.mark.asyncio
    async def test_renew_skips_non_expiring_token(self, vault, vault_transport):
        vault.ttl = 0
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.root", 60, transport=vault_transport
        )

        await store.renew()

        assert "/v1/auth/token/renew-self" not in vault.paths()
        await store.close()


class TestSecretStoreFactory:
    @pytest.mark.asyncio
    async def test_memory_without_vault_address(self):
        config = ServiceConfig(target=None, hostname="web1")
        store = await create_secret_store(config)

        assert isinstance(store, MemorySecrets)
        assert store.renewable is False

    @pytest.mark.asyncio
    async def test_vault_with_address(self, vault_transport):
        store = await create_secret_store(vault_config(), transport=vault_transport)

        assert isinstance(store, VaultSecrets)
        assert store.renewable is True
        await store.close()

    @pytest.mark.asyncio
    async def test_vault_unreachable_is_setup_fatal(self, vault, vault_transport):
        vault.lookup_status = 503
        with pytest.raises(SecretStoreError):
            await create_secret_store(vault_config(), transport=vault_transport)


class TestRenewalLoop:
    @pytest.mark.asyncio
    async def test_retries_transient_failure(self):
        store = AsyncMock(ttl=0)
        store.renew.side_effect = [RenewalError("sealed"), None]
        loop = RenewalLoop(store, interval=60)

        await loop.renew_once()

        assert store.renew.await_count == 2
        assert loop.renewals == 1

    @pytest.mark.asyncio
    async def test_three_failures_are_fatal(self):
        """Renewal gives up after 3 attempts spaced ~100ms apart"""
        store = AsyncMock(ttl=0)
        store.renew.side_effect = RenewalError("unreachable")
        loop = RenewalLoop(store, interval=60)

        started = time.monotonic()
        with pytest.raises(RenewalError):
            await loop.renew_once()
        elapsed = time.monotonic() - started

        assert store.renew.await_count == 3
        assert 0.18 <= elapsed < 2
        assert loop.renewals == 0

    @pytest.mark.asyncio
    async def test_store_errors_become_renewal_errors(self):
        store = AsyncMock(ttl=0)
        store.renew.side_effect = SecretStoreError("bad gateway")

        with pytest.raises(RenewalError):
            await RenewalLoop(store, interval=60, backoff=0).renew_once()

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_not_retried(self):
        store = AsyncMock(ttl=0)
        store.renew.side_effect = KeyError("bug")

        with pytest.raises(KeyError):
            await RenewalLoop(store, interval=60).renew_once()
        assert store.renew.await_count == 1

    @pytest.mark.asyncio
    async def test_start_renews_every_interval_until_cancelled(self):
        store = AsyncMock(ttl=0)
        loop = RenewalLoop(store, interval=0.01)

        runner = asyncio.create_task(loop.start())
        await asyncio.sleep(0.1)
        runner.cancel()

        with pytest.raises(asyncio.CancelledError):
            await runner
        assert store.renew.await_count >= 2

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            RenewalLoop(AsyncMock(ttl=0), interval=0)

    def test_delay_follows_short_lease(self):
        assert RenewalLoop(AsyncMock(ttl=30), interval=60).delay() == 20
        assert RenewalLoop(AsyncMock(ttl=3600), interval=60).delay() == 60
        assert RenewalLoop(AsyncMock(ttl=0), interval=60).delay() == 60

    @pytest.mark.asyncio
    async def test_malformed_vault_answer_is_retried(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 60, transport=vault_transport
        )
        vault.raw_bodies["/v1/auth/token/renew-self"] = b"<html>proxy error</html>"

        with pytest.raises(RenewalError):
            await RenewalLoop(store, interval=60, backoff=0).renew_once()
        assert vault.paths().count("/v1/auth/token/renew-self") == 3
        await store.close()

    @pytest.mark.asyncio
    async def test_keeps_vault_lease_alive_across_renewals(self, vault, vault_transport):
        store = await VaultSecrets.connect(
            "http://vault.test:8200", "secret", "s.token", 0.5, transport=vault_transport
        )
        loop = RenewalLoop(store, interval=0.5)

        runner = asyncio.create_task(loop.start())
        await asyncio.sleep(1.8)

        assert not runner.done()
        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner
        assert loop.renewals >= 3
        assert store.ttl == 1
        await store.close()
