"""SQLAlchemy ORM models."""

from orgsite.models.avatar import Avatar, AvatarState
from orgsite.models.base import Base
from orgsite.models.session import AuthSession
from orgsite.models.user import Role, User

__all__ = ["Avatar", "AvatarState", "AuthSession", "Base", "Role", "User"]
