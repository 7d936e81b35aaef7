"""Pydantic request/response schemas."""

from orgsite.schemas.auth import (
    CurrentUser,
    LogoutResult,
    PublicUser,
    RefreshRequest,
    SessionInfo,
    SignInRequest,
    SignUpRequest,
    TokenPair,
)
from orgsite.schemas.envelope import ApiResponse, PaginationMeta
from orgsite.schemas.health import HealthResponse
from orgsite.schemas.maintenance import AvatarCleanupResult, SessionCleanupResult
from orgsite.schemas.user import UpdateUserRequest

__all__ = [
    "ApiResponse",
    "AvatarCleanupResult",
    "CurrentUser",
    "HealthResponse",
    "LogoutResult",
    "PaginationMeta",
    "PublicUser",
    "RefreshRequest",
    "SessionCleanupResult",
    "SessionInfo",
    "SignInRequest",
    "SignUpRequest",
    "TokenPair",
    "UpdateUserRequest",
]
