"""
Git watcher - polls every registered target and turns revision changes
into execution tasks on the bus.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...errors import AuthenticationError, FetchError, WatcherError
from ..task import ExecutionTask, Target, TaskBus, TaskKind

FETCH_ATTEMPTS = 3


class Fetcher(Protocol):
    """Anything that can bring a checkout up to date and name its revision."""

    async def fetch(self, url: str, branch: str, path) -> str:
        ...


class GitWatcher:
    """Watches a set of targets and emits one task per observed change."""

    def __init__(
        self,
        bus: TaskBus,
        fetcher: Fetcher,
        check_interval: float,
        fetch_attempts: int = FETCH_ATTEMPTS,
        fetch_backoff_max: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the watcher.

        Args:
            bus: Task bus to publish changes on
            fetcher: Git access used to update each checkout
            check_interval: Seconds between poll cycles
            fetch_attempts: Tries per target per cycle for transient failures
            fetch_backoff_max: Upper bound of the exponential backoff in seconds
            logger: Optional logger, defaults to the module logger
        """
        self.bus = bus
        self.fetcher = fetcher
        self.check_interval = check_interval
        self.fetch_attempts = fetch_attempts
        self.fetch_backoff_max = fetch_backoff_max
        self.logger = logger or logging.getLogger(__name__)

        self._targets: Dict[str, Target] = {}
        self._revisions: Dict[str, str] = {}
        self._pending_removals: List[Tuple[Target, str]] = []

    @property
    def targets(self) -> List[Target]:
        return list(self._targets.values())

    def revision(self, name: str) -> Optional[str]:
        """Last revision observed for a target, None while uninitialized."""
        return self._revisions.get(name)

    def set_targets(self, targets: Iterable[Target]) -> None:
        """
        Replace the set of watched targets.

        Synced targets that are no longer present are deployed as removals
        on the next poll cycle. A target whose definition changed starts
        over with an initial sync. App.start() registers targets once, so
        removals only happen when a caller replaces the set on a running
        watcher.
        """
        new_targets = {t.name: t for t in targets}

        for name, old in self._targets.items():
            current = new_targets.get(name)
            if current == old:
                continue
            if current is None and name in self._revisions:
                self._pending_removals.append((old, self._revisions[name]))
            self._revisions.pop(name, None)

        self._targets = new_targets
        self.logger.info(
            f"Watching {len(new_targets)} target(s): {', '.join(new_targets) or '-'}"
        )

    async def start(self) -> None:
        """
        Poll until cancelled.

        The first cycle runs immediately, later cycles every check_interval.

        Raises:
            WatcherError: If a remote rejects our credentials
        """
        self.logger.info(f"Starting git watcher (interval {self.check_interval}s)")
        while True:
            await self.poll()
            await asyncio.sleep(self.check_interval)

    async def poll(self) -> List[ExecutionTask]:
        """Run one poll cycle and return the tasks it emitted."""
        emitted = []

        while self._pending_removals:
            target, revision = self._pending_removals.pop(0)
            self.logger.info(f"{target.name} removed at {revision}")
            task = ExecutionTask(target=target, revision=revision, kind=TaskKind.REMOVAL)
            await self.bus.push(task)
            emitted.append(task)

        for target in list(self._targets.values()):
            try:
                revision = await self._fetch(target)
            except AuthenticationError as e:
                raise WatcherError(f"authentication failed for {target.name}: {e}") from e
            except FetchError as e:
                self.logger.error(f"Failed to fetch {target.name}, skipping this cycle: {e}")
                continue

            previous = self._revisions.get(target.name)
            if previous == revision:
                self.logger.debug(f"{target.name} unchanged at {revision}")
                continue

            kind = TaskKind.INITIAL_SYNC if previous is None else TaskKind.UPDATE
            self.logger.info(
                f"{target.name} changed {previous or '(none)'} -> {revision} ({kind.value})"
            )
            task = ExecutionTask(target=target, revision=revision, kind=kind)
            await self.bus.push(task)
            self._revisions[target.name] = revision
            emitted.append(task)

        return emitted

    async def _fetch(self, target: Target) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.fetch_attempts),
            wait=wait_exponential(multiplier=1, max=self.fetch_backoff_max),
            retry=retry_if_exception_type(FetchError)
            & retry_if_not_exception_type(AuthenticationError),
            before_sleep=before_sleep_log(self.logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(self.fetcher.fetch, target.url, target.branch, target.path)

