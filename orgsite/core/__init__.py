"""Core app configuration, database, and security primitives."""

from orgsite.core.config import get_settings, settings
from orgsite.core.database import get_db

__all__ = ["get_settings", "settings", "get_db"]
