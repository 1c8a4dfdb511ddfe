"""Async subprocess helper shared by the git fetcher and the deployer."""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class CommandOutput:
    """Captured result of a finished command."""
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, the way an operator would read them."""
        output = self.stdout
        if self.stderr:
            output += ("\n" if output else "") + self.stderr
        return output.strip()


async def run_command(
    cmd: Sequence[str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> CommandOutput:
    """
    Run a command to completion and capture its output.

    The child is killed and reaped if the timeout expires or the caller is
    cancelled, so no process outlives the task that started it.

    Raises:
        asyncio.TimeoutError: If the command ran longer than timeout
        OSError: If the executable cannot be started
    """
    logger.debug(f"Running: {' '.join(cmd)} (cwd={cwd})")

    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except BaseException:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return CommandOutput(
        return_code=process.returncode,
        stdout=stdout.decode("utf-8", "replace"),
        stderr=stderr.decode("utf-8", "replace"),
    )
