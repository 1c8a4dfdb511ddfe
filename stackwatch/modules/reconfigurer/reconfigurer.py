"""
Reconfigurer - registers targets with the watcher.

The config repository holds a stackwatch.yaml listing every stack and the
hosts it belongs to. It is read once, before the watcher starts polling.
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from ...errors import ConfigurationError, FetchError
from ..task import Target, TargetsFile
from ..watcher import Fetcher, GitWatcher

CONFIG_FILENAMES = ("stackwatch.yaml", "stackwatch.yml", ".stackwatch.yaml")
CONFIG_CHECKOUT = ".config"

logger = logging.getLogger(__name__)


def load_targets_file(path: Path) -> TargetsFile:
    """
    Parse and validate a targets file.

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read targets file {path}: {e}") from e

    try:
        return TargetsFile.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid targets file {path}: {e}") from e


def find_targets_file(root: Path) -> Path:
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    raise ConfigurationError(
        f"No targets file in {root} (looked for {', '.join(CONFIG_FILENAMES)})"
    )


class Reconfigurer:
    """Reads the config repository and hands this host's targets to the watcher."""

    def __init__(
        self,
        directory: Path,
        hostname: str,
        target: Optional[str],
        fetcher: Fetcher,
        branch: str = "main",
    ):
        """
        Initialize the reconfigurer.

        Args:
            directory: Root directory for all checkouts
            hostname: This host's name, used to filter targets
            target: Git URL of the config repository (None disables it)
            fetcher: Git access
            branch: Branch of the config repository to read
        """
        self.directory = Path(directory)
        self.hostname = hostname
        self.target = target
        self.fetcher = fetcher
        self.branch = branch

    async def configure(self, watcher: GitWatcher) -> List[Target]:
        """
        Register this host's targets with the watcher.

        Returns:
            The targets that were registered

        Raises:
            ConfigurationError: If the config repository cannot be read
        """
        if not self.target:
            logger.warning("No config repository configured, no targets will be watched")
            watcher.set_targets([])
            return []

        checkout = self.directory / CONFIG_CHECKOUT
        try:
            revision = await self.fetcher.fetch(self.target, self.branch, checkout)
        except FetchError as e:
            raise ConfigurationError(f"Failed to fetch config repository {self.target}: {e}") from e
        logger.info(f"Config repository {self.target} at {revision}")

        targets_file = load_targets_file(find_targets_file(checkout))
        targets = [
            target
            for target in (Target.from_spec(s, self.directory) for s in targets_file.targets)
            if target.deploys_on(self.hostname)
        ]
        skipped = len(targets_file.targets) - len(targets)
        if skipped:
            logger.info(f"Skipping {skipped} target(s) not assigned to host {self.hostname}")

        watcher.set_targets(targets)
        return targets
