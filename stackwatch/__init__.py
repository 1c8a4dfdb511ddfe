"""
Stackwatch - Git driven compose stack deployer

Watches git repositories describing container stacks and redeploys a stack
whenever its tracked branch moves, injecting secrets from Vault (or a static
in-memory store) into the deployment environment.

Architecture:
- Each module is self-contained with clear interfaces
- Components talk to each other only through the task bus
- All long-running work runs under a single fail-fast supervisor

Modules:
- task: Task models and the bounded task bus
- secret: Secret stores and lease renewal
- watcher: Git change detection
- reconfigurer: Target registration from the config repository
- executor: Secret resolution and deployment
- service: Composition root and supervisor
"""

__version__ = "1.0.0"
