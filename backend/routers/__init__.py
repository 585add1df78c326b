"""Routers module - FastAPI route handlers"""

from . import config, hooks

__all__ = ["config", "hooks"]
