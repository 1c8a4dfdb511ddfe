"""
Service Module - Black Box Interface

Purpose: Compose all modules and supervise the long-running tasks
Interface: App.initialise(), App.start(), Supervisor.run()
Hidden: Task wiring, fail-fast cancellation
"""

from .service import App
from .supervisor import Supervisor

__all__ = ["App", "Supervisor"]
