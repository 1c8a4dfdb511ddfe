"""
Secret store factory.

Selects the backend from configuration: Vault when an address is set,
the static in-memory store otherwise.
"""

import logging
from typing import Optional

import httpx

from ...config.provider import ServiceConfig
from .interfaces import SecretStore
from .memory import MemorySecrets
from .vault import VaultSecrets

logger = logging.getLogger(__name__)


async def create_secret_store(
    config: ServiceConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SecretStore:
    """
    Build the secret store for this process.

    Raises:
        SecretStoreError: If the Vault backend cannot be reached or rejects the token
    """
    if not config.uses_vault:
        logger.info("No Vault address configured, using in-memory secrets")
        return MemorySecrets()

    logger.debug(
        f"Connecting to Vault at {config.vault_address} "
        f"(path {config.vault_path}, renewal {config.vault_renewal}s)"
    )
    return await VaultSecrets.connect(
        config.vault_address,
        config.vault_path,
        config.vault_token,
        config.vault_renewal,
        transport=transport,
    )
