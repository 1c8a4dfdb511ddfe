"""
Secret Module - Black Box Interface

Purpose: Resolve secrets for a target and keep backend leases alive
Interface: SecretStore.get(), SecretStore.renew(), RenewalLoop.start(), create_secret_store()
Hidden: Vault HTTP API, lease bookkeeping, retry policy

Can be replaced with any backend that returns a mapping of environment variables.
"""

from .factory import create_secret_store
from .interfaces import SecretStore
from .memory import MemorySecrets
from .renewal import RenewalLoop
from .vault import VaultSecrets

__all__ = ["MemorySecrets", "RenewalLoop", "SecretStore", "VaultSecrets", "create_secret_store"]
