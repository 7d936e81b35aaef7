"""Request/response schemas for auth endpoints."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class SignInRequest(BaseModel):
    """Credentials for sign-in."""

    username: str = Field(..., min_length=1, max_length=255, description="Username or email")
    password: str = Field(..., min_length=8, max_length=128, description="Password")


class SignUpRequest(BaseModel):
    """New account; username is the login identifier (usually an email)."""

    username: str = Field(..., min_length=1, max_length=255, description="Username or email")
    password: str = Field(..., min_length=8, max_length=128, description="Password")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")


class RefreshRequest(BaseModel):
    """Optional body transport for the refresh token; the cookie wins when both are sent."""

    refresh_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
        description="Refresh token (ignored when the refresh cookie is present)",
    )


class TokenPair(BaseModel):
    """Access and refresh JWTs returned after sign-in or refresh."""

    access_token: str = Field(..., description="Short-lived JWT access token")
    refresh_token: str = Field(..., description="Long-lived JWT refresh token")
    token_type: str = Field(default="bearer", description="Token type")


class PublicUser(BaseModel):
    """Allow-listed outward view of a user. Secret columns are never part of it."""

    id: int
    username: str
    name: str
    role: str
    image: str | None = None

    class Config:
        from_attributes = True


class CurrentUser(BaseModel):
    """Authenticated principal (id, username, role) for dependency injection."""

    id: int
    username: str
    role: str

    class Config:
        from_attributes = True


class SessionInfo(BaseModel):
    """One signed-in device; the token hash is deliberately absent."""

    id: int
    device_info: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None
    expires_at: datetime

    class Config:
        from_attributes = True


class LogoutResult(BaseModel):
    """Outcome of a logout; clear_cookies tells the transport layer to drop both cookies."""

    sessions_deleted: int = 0
    clear_cookies: bool = True
