"""
Compose deployer - runs a target's up (or down) command in its checkout.
"""

import asyncio
import logging
import time
from typing import Mapping, Protocol

from ...process import run_command
from ..task import DeploymentResult, DeploymentStatus, ExecutionTask, TaskKind

logger = logging.getLogger(__name__)


class Deployer(Protocol):
    """Protocol for deployment actions."""

    async def deploy(self, task: ExecutionTask, env: Mapping[str, str]) -> DeploymentResult:
        """Bring the task's target to the state its checkout describes."""
        ...


class ComposeDeployer:
    """Deployer that shells out to the target's configured command."""

    def __init__(self, timeout: float = 600.0):
        self.timeout = timeout

    async def deploy(self, task: ExecutionTask, env: Mapping[str, str]) -> DeploymentResult:
        """
        Execute the deployment command.

        Args:
            task: Task naming the target and revision
            env: Complete environment for the command

        Returns:
            Result with status, exit code and combined output
        """
        cmd = list(task.target.down if task.kind == TaskKind.REMOVAL else task.target.up)
        start_time = time.monotonic()

        def finish(status: DeploymentStatus, **fields) -> DeploymentResult:
            return DeploymentResult(
                target=task.target.name,
                revision=task.revision,
                kind=task.kind,
                status=status,
                duration_ms=int((time.monotonic() - start_time) * 1000),
                **fields,
            )

        try:
            result = await run_command(cmd, cwd=task.path, env=env, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Deployment of {task.target.name} timed out after {self.timeout}s")
            return finish(DeploymentStatus.TIMEOUT, error="Command timed out")
        except OSError as e:
            logger.error(f"Deployment of {task.target.name} could not start: {e}")
            return finish(DeploymentStatus.ERROR, error=str(e))

        return finish(
            DeploymentStatus.SUCCESS if result.success else DeploymentStatus.FAILED,
            return_code=result.return_code,
            output=result.output,
        )
