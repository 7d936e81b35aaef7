"""Request schemas for user management endpoints."""

from pydantic import BaseModel, Field

from orgsite.models.user import Role


class UpdateUserRequest(BaseModel):
    """Admin edit of a user; omitted fields are left unchanged."""

    user_id: int = Field(..., ge=1, description="User to edit")
    name: str | None = Field(default=None, min_length=1, max_length=255)
    username: str | None = Field(default=None, min_length=1, max_length=255)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    role: Role | None = None
