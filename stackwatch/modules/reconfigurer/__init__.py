"""
Reconfigurer Module - Black Box Interface

Purpose: Turn the config repository into the watcher's target list
Interface: Reconfigurer.configure(), load_targets_file()
Hidden: Targets file discovery, YAML parsing, host filtering
"""

from .reconfigurer import Reconfigurer, find_targets_file, load_targets_file

__all__ = ["Reconfigurer", "find_targets_file", "load_targets_file"]
