"""
Git access for the watcher and reconfigurer.

Everything goes through the git CLI. A checkout is cloned on first use and
hard-reset to the remote branch on every fetch afterwards, so the working
tree always matches what the remote says should be deployed.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from ...errors import AuthenticationError, ConfigurationError, FetchError
from ...process import run_command

logger = logging.getLogger(__name__)

AUTH_FAILURE_MARKERS = (
    "permission denied (publickey",
    "authentication failed",
    "could not read username",
    "host key verification failed",
)


class SSHAgentAuth:
    """Authenticate to git remotes through a running ssh-agent."""

    def __init__(self, socket_path: str, user: str = "git"):
        self.socket_path = socket_path
        self.user = user

    @classmethod
    def from_env(cls, user: str = "git") -> "SSHAgentAuth":
        """
        Use the agent advertised in SSH_AUTH_SOCK.

        Raises:
            ConfigurationError: If no agent socket is available
        """
        socket_path = os.environ.get("SSH_AUTH_SOCK")
        if not socket_path:
            raise ConfigurationError(
                "failed to set up SSH authentication: SSH_AUTH_SOCK is not set "
                "(start an ssh-agent or pass --no-ssh)"
            )
        return cls(socket_path, user)

    def env(self) -> Dict[str, str]:
        return {
            "SSH_AUTH_SOCK": self.socket_path,
            "GIT_SSH_COMMAND": f"ssh -o BatchMode=yes -l {self.user}",
        }


class GitFetcher:
    """Clone or update a checkout and report the revision it ends on."""

    def __init__(self, auth: Optional[SSHAgentAuth] = None, timeout: float = 300.0):
        self.auth = auth
        self.timeout = timeout

    async def fetch(self, url: str, branch: str, path: Path) -> str:
        """
        Bring the checkout at path up to date with origin/branch.

        Returns:
            The commit hash now checked out

        Raises:
            AuthenticationError: If the remote rejected our credentials
            FetchError: For any other git failure
        """
        path = Path(path)
        if not (path / ".git").exists():
            logger.info(f"Cloning {url} ({branch}) into {path}")
            path.parent.mkdir(parents=True, exist_ok=True)
            await self._git("clone", "--branch", branch, "--single-branch", url, str(path))
        else:
            await self._git("fetch", "--prune", "origin", branch, cwd=path)
            await self._git("reset", "--hard", f"origin/{branch}", cwd=path)

        return (await self._git("rev-parse", "HEAD", cwd=path)).strip()

    async def _git(self, *args: str, cwd: Optional[Path] = None) -> str:
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        if self.auth:
            env.update(self.auth.env())

        try:
            result = await run_command(["git", *args], cwd=cwd, env=env, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise FetchError(f"git {args[0]} timed out after {self.timeout}s") from None
        except OSError as e:
            raise FetchError(f"failed to run git: {e}") from e

        if not result.success:
            stderr = result.stderr.strip()
            message = f"git {args[0]} failed [{result.return_code}]: {stderr}"
            if any(marker in stderr.lower() for marker in AUTH_FAILURE_MARKERS):
                raise AuthenticationError(message, stderr=stderr)
            raise FetchError(message, stderr=stderr)

        return result.stdout
