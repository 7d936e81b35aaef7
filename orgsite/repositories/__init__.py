"""Store interfaces and their SQLAlchemy implementations."""

from orgsite.repositories.sessions import SessionRepository, SessionStore
from orgsite.repositories.users import CredentialStore, UserRepository

__all__ = ["CredentialStore", "SessionRepository", "SessionStore", "UserRepository"]
