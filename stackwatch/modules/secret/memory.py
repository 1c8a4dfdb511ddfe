"""Static in-memory secret store."""
import logging
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class MemorySecrets:
    """Secret store backed by a fixed mapping of path to values."""

    renewable = False
    ttl = 0

    def __init__(self, secrets: Optional[Mapping[str, Mapping[str, str]]] = None):
        self._secrets: Dict[str, Dict[str, str]] = {
            path: dict(values) for path, values in (secrets or {}).items()
        }

    async def get(self, path: str) -> Dict[str, str]:
        values = self._secrets.get(path)
        if values is None:
            logger.debug(f"No secrets stored for {path}")
            return {}
        return dict(values)

    async def renew(self) -> None:
        """Nothing is leased, so there is nothing to renew."""
        return None

    async def close(self) -> None:
        return None
