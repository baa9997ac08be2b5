"""
API Module for Ofie Assistant.

FastAPI application with routes for:
- Conversation messages and assistant replies
- Human handoff
- Real-time conversation channels
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
