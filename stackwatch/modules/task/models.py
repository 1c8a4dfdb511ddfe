"""
Stackwatch shared data models.

These models define the structure of all data passed between
the watcher, the task bus and the executor.
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_UP_COMMAND = ["docker", "compose", "up", "-d", "--remove-orphans"]
DEFAULT_DOWN_COMMAND = ["docker", "compose", "down"]

# Enums


class TaskKind(str, Enum):
    """Why a task was emitted."""

    INITIAL_SYNC = "initial-sync"
    UPDATE = "update"
    REMOVAL = "removal"


class DeploymentStatus(str, Enum):
    """Outcome of a deployment action."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"
    SKIPPED = "skipped"


# Targets


class TargetSpec(BaseModel):
    """A single entry of the targets file."""

    name: str = Field(
        ...,
        description="Target identifier, also the checkout directory name",
        min_length=1,
        max_length=100,
        pattern=r"^[A-Za-z0-9][A-Za-z0-9._-]*$",
    )
    url: str = Field(..., description="Git remote URL", min_length=1)
    branch: str = Field(default="main", description="Tracked remote branch")
    hosts: List[str] = Field(
        default_factory=list, description="Hostnames that deploy this target (empty = all)"
    )
    secret_path: Optional[str] = Field(None, description="Secret path, defaults to name")
    up: List[str] = Field(default_factory=lambda: list(DEFAULT_UP_COMMAND), min_length=1)
    down: List[str] = Field(default_factory=lambda: list(DEFAULT_DOWN_COMMAND), min_length=1)
    env: Dict[str, str] = Field(default_factory=dict, description="Static environment")

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v):
        """YAML turns numbers and booleans into non-strings; the environment wants text."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v
        return {str(key): "" if value is None else str(value) for key, value in v.items()}


class TargetsFile(BaseModel):
    """Schema of stackwatch.yaml in the config repository."""

    targets: List[TargetSpec] = Field(default_factory=list)

    @field_validator("targets")
    @classmethod
    def unique_names(cls, v):
        names = [t.name for t in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate target names: {', '.join(duplicates)}")
        return v


class Target(BaseModel):
    """A deployment unit, fixed for the lifetime of a run."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    branch: str = "main"
    path: Path
    hosts: tuple[str, ...] = ()
    secret_path: str
    up: tuple[str, ...] = tuple(DEFAULT_UP_COMMAND)
    down: tuple[str, ...] = tuple(DEFAULT_DOWN_COMMAND)
    env: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_spec(cls, spec: TargetSpec, directory: Path) -> "Target":
        """Resolve a targets file entry against the checkout directory."""
        return cls(
            name=spec.name,
            url=spec.url,
            branch=spec.branch,
            path=Path(directory) / spec.name,
            hosts=tuple(spec.hosts),
            secret_path=spec.secret_path or spec.name,
            up=tuple(spec.up),
            down=tuple(spec.down),
            env=tuple(sorted(spec.env.items())),
        )

    def deploys_on(self, hostname: str) -> bool:
        """True when this target should run on the given host."""
        return not self.hosts or hostname in self.hosts

    @property
    def environment(self) -> Dict[str, str]:
        return dict(self.env)


# Pipeline


class ExecutionTask(BaseModel):
    """Target X changed to revision Y; queued for the executor."""

    model_config = ConfigDict(frozen=True)

    target: Target
    revision: str
    kind: TaskKind
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def path(self) -> Path:
        return self.target.path


class DeploymentResult(BaseModel):
    """Recorded outcome of one executed task."""

    target: str
    revision: str
    kind: TaskKind
    status: DeploymentStatus
    return_code: int = -1
    output: str = ""
    error: Optional[str] = None
    duration_ms: int = 0
    executed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def success(self) -> bool:
        return self.status == DeploymentStatus.SUCCESS
