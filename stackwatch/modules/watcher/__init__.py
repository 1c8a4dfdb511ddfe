"""
Watcher Module - Black Box Interface

Purpose: Detect revision changes of tracked targets
Interface: GitWatcher.set_targets(), GitWatcher.start(), GitFetcher.fetch()
Hidden: git CLI invocation, retry policy, per-target revision state

Can be replaced with webhook-driven change detection.
"""

from .git import GitFetcher, SSHAgentAuth
from .watcher import Fetcher, GitWatcher

__all__ = ["Fetcher", "GitFetcher", "GitWatcher", "SSHAgentAuth"]
