"""Secret store interfaces following Black Box Design principles."""
from typing import Dict, Protocol


class SecretStore(Protocol):
    """Protocol for secret backends - allows swappable implementations."""

    #: True when the backend holds a lease that must be renewed periodically.
    renewable: bool

    #: Seconds left on the lease as of the last renewal, 0 when it never expires.
    ttl: int

    async def get(self, path: str) -> Dict[str, str]:
        """
        Resolve a secret path.

        Args:
            path: Secret path, usually the target name

        Returns:
            Mapping of environment variable name to value (empty if unknown)
        """
        ...

    async def renew(self) -> None:
        """
        Extend the backend lease.

        Raises:
            RenewalError: If the lease could not be extended
        """
        ...

    async def close(self) -> None:
        """Release backend connections."""
        ...
