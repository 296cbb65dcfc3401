"""
HTTP routes for the VIP sync feature.
"""

from .router import SLASH_COMMANDS, router

__all__ = ["SLASH_COMMANDS", "router"]
