"""
Seed a user, typically the first administrator (sign-up itself is admin-only).
Run from project root:
  python -m orgsite.scripts.create_user USERNAME PASSWORD --name "Display Name" [--role ADMIN]
Example:
  python -m orgsite.scripts.create_user admin@example.org your-secure-password --name Admin --role ADMIN
"""
import argparse
import logging
import sys

from orgsite.core.config import get_settings
from orgsite.core.database import SessionLocal
from orgsite.core.logging import configure_logging
from orgsite.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    TokenSigner,
)
from orgsite.models import Role
from orgsite.repositories import SessionRepository, UserRepository
from orgsite.services.auth import AuthService
from orgsite.services.errors import UsernameTaken

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create an Orgsite user from the command line.")
    parser.add_argument("username", help=f"Username or email (1-{USERNAME_MAX_LEN} chars)")
    parser.add_argument(
        "password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)"
    )
    parser.add_argument("--name", help="Display name (defaults to the username)")
    parser.add_argument(
        "--role",
        default=Role.USER.value,
        choices=[r.value for r in Role],
        type=str.upper,
    )
    args = parser.parse_args(argv)

    username = args.username.strip()
    if not username or len(username) > USERNAME_MAX_LEN:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN:
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    settings = get_settings()
    configure_logging(settings)
    db = SessionLocal()
    try:
        service = AuthService(
            users=UserRepository(db),
            sessions=SessionRepository(db),
            signer=TokenSigner.from_settings(settings),
            bcrypt_rounds=settings.BCRYPT_ROUNDS,
        )
        try:
            user = service.sign_up(
                name=(args.name or username).strip(),
                username=username,
                password=args.password,
                role=Role(args.role),
            )
        except UsernameTaken:
            print(f"User '{username}' already exists.", file=sys.stderr)
            return 1
        print(f"Created user '{user.username}' with role '{user.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
