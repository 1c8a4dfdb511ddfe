"""Configuration provider following Black Box Design principles."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..errors import ConfigurationError


@dataclass(frozen=True)
class ServiceConfig:
    """Static process-wide parameters, fixed at startup."""
    target: Optional[str]
    hostname: str
    target_branch: str = "main"
    no_ssh: bool = False
    directory: Path = field(default_factory=lambda: Path("./cache"))
    check_interval: float = 10.0
    vault_address: str = ""
    vault_token: str = ""
    vault_path: str = "secret"
    vault_renewal: float = 86400.0
    bus_capacity: int = 100
    deploy_timeout: float = 600.0

    def __post_init__(self):
        if self.check_interval <= 0:
            raise ConfigurationError("check interval must be positive")
        if self.bus_capacity < 1:
            raise ConfigurationError("bus capacity must be at least 1")
        if self.vault_address:
            if not self.vault_token:
                raise ConfigurationError("VAULT_TOKEN is required when VAULT_ADDR is set")
            if self.vault_renewal <= 0:
                raise ConfigurationError("vault renewal interval must be positive")

    @property
    def uses_vault(self) -> bool:
        """Check if the leased secret backend is selected."""
        return bool(self.vault_address)

