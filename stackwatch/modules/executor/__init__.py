"""
Executor Module - Black Box Interface

Purpose: Consume the task bus and deploy each changed target
Interface: CommandExecutor.subscribe(), CommandExecutor.execute(), ComposeDeployer.deploy()
Hidden: Environment assembly, subprocess handling, result history
"""

from .deployer import ComposeDeployer, Deployer
from .executor import CommandExecutor

__all__ = ["CommandExecutor", "ComposeDeployer", "Deployer"]
