"""
Config Module - Black Box Interface

Purpose: Process-wide configuration, fixed at startup
Interface: ServiceConfig
Hidden: Validation of option combinations
"""

from .provider import ServiceConfig

__all__ = ["ServiceConfig"]
