"""Admin user management on top of the credential store."""

import logging
from typing import Any

from orgsite.core.security import hash_password
from orgsite.repositories.users import CredentialStore
from orgsite.schemas.auth import PublicUser
from orgsite.schemas.user import UpdateUserRequest
from orgsite.services.errors import NotFound, UsernameTaken

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, users: CredentialStore, bcrypt_rounds: int = 10) -> None:
        self.users = users
        self.bcrypt_rounds = bcrypt_rounds

    def list_users(self, page: int, per_page: int) -> tuple[list[PublicUser], int]:
        users, total = self.users.list_page(page, per_page)
        return [PublicUser.model_validate(u) for u in users], total

    def update_user(self, body: UpdateUserRequest) -> PublicUser:
        """
        Apply the non-empty fields of body. A username already used by another
        account raises UsernameTaken; the store's unique constraint backs this up.
        """
        if self.users.find_by_id(body.user_id) is None:
            raise NotFound("User not found")

        patch: dict[str, Any] = {}
        if body.name is not None:
            patch["name"] = body.name
        if body.username is not None:
            other = self.users.find_by_username(body.username)
            if other is not None and other.id != body.user_id:
                raise UsernameTaken()
            patch["username"] = body.username
        if body.password is not None:
            patch["password_hash"] = hash_password(body.password, self.bcrypt_rounds)
        if body.role is not None:
            patch["role"] = body.role

        user = self.users.update(body.user_id, patch) if patch else self.users.find_by_id(body.user_id)
        if user is None:
            raise NotFound("User not found")
        logger.info(
            "User updated",
            extra={"user_id": body.user_id, "fields": sorted(patch)},
        )
        return PublicUser.model_validate(user)

    def delete_user(self, user_id: int) -> None:
        """Delete a user; their sessions go with them."""
        if not self.users.delete(user_id):
            raise NotFound("User not found")
