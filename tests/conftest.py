"""
Shared pytest fixtures for stackwatch tests.

This module provides common fixtures including:
- Target and task builders
- FakeFetcher: scripted git revisions without a git binary
- RecordingDeployer: captures deployments instead of running compose
- Vault HTTP API mocks built on httpx.MockTransport
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from stackwatch.modules.task import (
    DeploymentResult,
    DeploymentStatus,
    ExecutionTask,
    Target,
    TaskBus,
    TaskKind,
)


# =============================================================================
# Builders
# =============================================================================

def make_target(name: str, directory: Path = Path("/srv/stacks"), **fields) -> Target:
    """Build a target with sensible defaults."""
    values = {
        "name": name,
        "url": f"git@example.com:stacks/{name}.git",
        "path": directory / name,
        "secret_path": name,
    }
    values.update(fields)
    return Target(**values)


def make_task(name: str, revision: str, kind: TaskKind = TaskKind.UPDATE, **fields) -> ExecutionTask:
    return ExecutionTask(target=make_target(name, **fields), revision=revision, kind=kind)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until it holds or fail the test."""
    async def _wait():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_wait(), timeout)


# =============================================================================
# Git mocking
# =============================================================================

class FakeFetcher:
    """
    Fetcher that replays scripted revisions per remote URL.

    Each fetch consumes the next scripted item; the last item repeats
    forever. Exceptions in the script are raised instead of returned.
    Files registered for a URL are written into the checkout on fetch.

    Usage:
        fetcher = FakeFetcher({"git@example.com:stacks/app1.git": ["a1", "b2"]})
    """

    def __init__(
        self,
        revisions: Optional[Dict[str, List[Union[str, Exception]]]] = None,
        files: Optional[Dict[str, Dict[str, str]]] = None,
    ):
        self.revisions = {url: list(script) for url, script in (revisions or {}).items()}
        self.files = files or {}
        self.calls: List[Tuple[str, str, Path]] = []

    async def fetch(self, url: str, branch: str, path) -> str:
        self.calls.append((url, branch, Path(path)))

        for name, content in self.files.get(url, {}).items():
            Path(path).mkdir(parents=True, exist_ok=True)
            (Path(path) / name).write_text(content, encoding="utf-8")

        script = self.revisions.get(url, ["0000000"])
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def call_count(self, url: str) -> int:
        return sum(1 for call in self.calls if call[0] == url)


class RecordingDeployer:
    """Deployer that records every call and reports scripted outcomes."""

    def __init__(self, failing: Tuple[str, ...] = (), raising: Tuple[str, ...] = ()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.calls: List[Tuple[ExecutionTask, Dict[str, str]]] = []

    async def deploy(self, task: ExecutionTask, env: Mapping[str, str]) -> DeploymentResult:
        self.calls.append((task, dict(env)))
        if task.target.name in self.raising:
            raise RuntimeError(f"deployer exploded on {task.target.name}")

        failed = task.target.name in self.failing
        return DeploymentResult(
            target=task.target.name,
            revision=task.revision,
            kind=task.kind,
            status=DeploymentStatus.FAILED if failed else DeploymentStatus.SUCCESS,
            return_code=1 if failed else 0,
            output="boom" if failed else "done",
        )

    @property
    def targets(self) -> List[str]:
        return [task.target.name for task, _ in self.calls]


# =============================================================================
# Vault mocking
# =============================================================================

class VaultMock:
    """
    Minimal Vault HTTP API for httpx.MockTransport.

    Serves token lookup/renewal and KV v2 reads from an in-memory dict.
    Status overrides simulate backend failures.
    """

    def __init__(self, secrets: Optional[Dict[str, Dict[str, str]]] = None, ttl: int = 3600):
        self.secrets = secrets or {}
        self.ttl = ttl
        self.lookup_status = 200
        self.renew_status = 200
        self.read_status: Optional[int] = None
        # Raw 200 bodies served instead of the normal answer, keyed by URL path.
        self.raw_bodies: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.raw_bodies:
            return httpx.Response(200, content=self.raw_bodies[path])

        if path == "/v1/auth/token/lookup-self":
            if self.lookup_status != 200:
                return httpx.Response(self.lookup_status, json={"errors": ["permission denied"]})
            return httpx.Response(200, json={"data": {"ttl": self.ttl, "renewable": True}})

        if path == "/v1/auth/token/renew-self":
            if self.renew_status != 200:
                return httpx.Response(self.renew_status, json={"errors": ["Vault is sealed"]})
            increment = json.loads(request.content or b"{}").get("increment", "0s")
            return httpx.Response(
                200, json={"auth": {"lease_duration": int(increment.rstrip("s")), "renewable": True}}
            )

        if self.read_status is not None:
            return httpx.Response(self.read_status, json={"errors": ["internal error"]})

        prefix = "/v1/secret/data/"
        if path.startswith(prefix) and path[len(prefix):] in self.secrets:
            return httpx.Response(
                200, json={"data": {"data": self.secrets[path[len(prefix):]], "metadata": {}}}
            )
        return httpx.Response(404, json={"errors": []})

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def bus():
    """A task bus with the default capacity."""
    return TaskBus()


@pytest.fixture
def deployer():
    return RecordingDeployer()


@pytest.fixture
def vault():
    return VaultMock({"app1": {"DB_PASS": "x"}})


@pytest.fixture
def vault_transport(vault):
    return httpx.MockTransport(vault)
