"""
Task Module - Black Box Interface

Purpose: Describe units of deployment work and carry them from the watcher to the executor
Interface: TaskBus.push(), TaskBus.pop(), ExecutionTask, Target
Hidden: Queue implementation, blocking logic

Can be replaced with any bounded FIFO that blocks on full and empty.
"""

from .bus import DEFAULT_CAPACITY, TaskBus
from .models import (
    DeploymentResult,
    DeploymentStatus,
    ExecutionTask,
    Target,
    TargetsFile,
    TargetSpec,
    TaskKind,
)

__all__ = [
    "DEFAULT_CAPACITY",
    "DeploymentResult",
    "DeploymentStatus",
    "ExecutionTask",
    "Target",
    "TargetSpec",
    "TargetsFile",
    "TaskBus",
    "TaskKind",
]
