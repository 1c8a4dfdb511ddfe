"""
Service composition root.

initialise() builds every component from configuration; start() registers
targets and runs the watcher, the executor and (for leased secret
backends) the renewal loop under one fail-fast supervisor.
"""

import asyncio
import logging
from typing import Awaitable, Optional

import httpx

from ...config.provider import ServiceConfig
from ..executor import CommandExecutor, ComposeDeployer, Deployer
from ..reconfigurer import Reconfigurer
from ..secret import RenewalLoop, SecretStore, create_secret_store
from ..task import TaskBus
from ..watcher import Fetcher, GitFetcher, GitWatcher, SSHAgentAuth
from .supervisor import Supervisor

logger = logging.getLogger(__name__)


class App:
    """Application state for one daemon run."""

    def __init__(
        self,
        config: ServiceConfig,
        secrets: SecretStore,
        bus: TaskBus,
        reconfigurer: Reconfigurer,
        watcher: GitWatcher,
        executor: CommandExecutor,
    ):
        self.config = config
        self.secrets = secrets
        self.bus = bus
        self.reconfigurer = reconfigurer
        self.watcher = watcher
        self.executor = executor
        self.renewal: Optional[RenewalLoop] = None
        if secrets.renewable:
            self.renewal = RenewalLoop(secrets, config.vault_renewal)

    @classmethod
    async def initialise(
        cls,
        config: ServiceConfig,
        fetcher: Optional[Fetcher] = None,
        deployer: Optional[Deployer] = None,
        secrets: Optional[SecretStore] = None,
        vault_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "App":
        """
        Prepare an instance of the app to run.

        Args:
            config: Process configuration
            fetcher: Git access, defaults to the git CLI
            deployer: Deployment action, defaults to the compose deployer
            secrets: Secret store, defaults to the one the config selects
            vault_transport: Optional httpx transport for the Vault client

        Raises:
            ConfigurationError: If SSH agent authentication is unavailable
            SecretStoreError: If the Vault backend cannot be reached
        """
        if fetcher is None:
            auth = None if config.no_ssh else SSHAgentAuth.from_env()
            fetcher = GitFetcher(auth)

        if secrets is None:
            secrets = await create_secret_store(config, transport=vault_transport)

        bus = TaskBus(config.bus_capacity)

        reconfigurer = Reconfigurer(
            config.directory,
            config.hostname,
            config.target,
            fetcher,
            branch=config.target_branch,
        )
        watcher = GitWatcher(bus, fetcher, config.check_interval)
        executor = CommandExecutor(secrets, deployer or ComposeDeployer(config.deploy_timeout))

        return cls(config, secrets, bus, reconfigurer, watcher, executor)

    def supervisor(self) -> Supervisor:
        """Build the supervisor with every task this configuration needs."""
        supervisor = Supervisor()
        supervisor.add("executor", lambda: self.executor.subscribe(self.bus))
        supervisor.add("watcher", self.watcher.start)
        if self.renewal is not None:
            supervisor.add("renewal", self.renewal.start)
        return supervisor

    async def start(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Register targets, then run until stop is set or a task fails.

        Raises:
            ConfigurationError: If targets cannot be registered
            RenewalError: If the secret lease could not be renewed
            WatcherError: If the watcher hit an unrecoverable error
        """
        logger.debug("Starting service daemon")
        if not await self._unless_stopped(self.reconfigurer.configure(self.watcher), stop):
            logger.info("Shutdown requested during target registration")
            return
        await self.supervisor().run(stop)

    @staticmethod
    async def _unless_stopped(work: Awaitable, stop: Optional[asyncio.Event]) -> bool:
        """Await work, cancelling it if stop is set first. True when it completed."""
        if stop is None:
            await work
            return True

        work_task = asyncio.ensure_future(work)
        stop_task = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({work_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = {task for task in (work_task, stop_task) if not task.done()}
            for task in pending:
                task.cancel()
            if pending:
                # Let a cancelled git call reap its child before returning.
                await asyncio.wait(pending)

        if work_task.cancelled():
            return False
        work_task.result()
        return True

    async def close(self) -> None:
        await self.secrets.close()
