"""
Command executor - the single consumer of the task bus.

Tasks are handled one at a time in bus order, so no two deployments ever
race on the same stack. A failed deployment or an unresolvable secret is
recorded and logged; the loop moves on to the next task.
"""

import logging
import os
from collections import deque
from typing import Deque, Dict, List, Optional

from ..secret import SecretStore
from ..task import DeploymentResult, DeploymentStatus, ExecutionTask, TaskBus, TaskKind
from .deployer import Deployer

HISTORY_SIZE = 100


class CommandExecutor:
    """Resolves secrets for each task and runs its deployment."""

    def __init__(
        self,
        secrets: SecretStore,
        deployer: Deployer,
        history_size: int = HISTORY_SIZE,
        logger: Optional[logging.Logger] = None,
    ):
        self.secrets = secrets
        self.deployer = deployer
        self.logger = logger or logging.getLogger(__name__)

        self.history: Deque[DeploymentResult] = deque(maxlen=history_size)
        self.succeeded = 0
        self.failed = 0

    async def subscribe(self, bus: TaskBus) -> None:
        """Consume tasks until cancelled."""
        self.logger.info("Executor subscribed to task bus")
        while True:
            task = await bus.pop()
            await self.execute(task)

    async def execute(self, task: ExecutionTask) -> DeploymentResult:
        """
        Run one task to completion and record the outcome.

        Never raises for deployment or secret failures.
        """
        name = task.target.name
        self.logger.info(f"Executing {task.kind.value} of {name} @ {task.revision}")

        try:
            env = await self._environment(task)
        except Exception as e:
            self.logger.error(f"Failed to resolve secrets for {name}, dropping task: {e}")
            return self._record(
                DeploymentResult(
                    target=name,
                    revision=task.revision,
                    kind=task.kind,
                    status=DeploymentStatus.SKIPPED,
                    error=f"secret resolution failed: {e}",
                )
            )

        try:
            result = await self.deployer.deploy(task, env)
        except Exception as e:
            self.logger.exception(f"Deployment of {name} raised: {e}")
            result = DeploymentResult(
                target=name,
                revision=task.revision,
                kind=task.kind,
                status=DeploymentStatus.ERROR,
                error=str(e),
            )

        if result.success:
            self.logger.info(f"Deployed {name} @ {task.revision} in {result.duration_ms}ms")
        else:
            self.logger.error(
                f"Deployment of {name} @ {task.revision} {result.status.value} "
                f"(exit {result.return_code}): {result.error or result.output}"
            )
        return self._record(result)

    def results(self, target: Optional[str] = None) -> List[DeploymentResult]:
        """Recorded results, oldest first, optionally for one target."""
        return [r for r in self.history if target is None or r.target == target]

    async def _environment(self, task: ExecutionTask) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(task.target.environment)
        if task.kind == TaskKind.REMOVAL:
            return env

        secrets = await self.secrets.get(task.target.secret_path)
        self.logger.debug(f"Injecting {len(secrets)} secret(s) into {task.target.name}")
        env.update(secrets)
        return env

    def _record(self, result: DeploymentResult) -> DeploymentResult:
        self.history.append(result)
        if result.success:
            self.succeeded += 1
        else:
            self.failed += 1
        return result
