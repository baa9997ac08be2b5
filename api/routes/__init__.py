"""
API Routes for Ofie Assistant.
"""

from . import conversations, handoff, realtime

__all__ = ["conversations", "handoff", "realtime"]
