"""Tests for orgsite.services.auth.AuthService against an in-memory SQLite store."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import IntegrityError

from db_support import FakeClock, make_session_factory, make_signer, tamper
from orgsite.core.security import hash_token
from orgsite.models import AuthSession, Avatar, AvatarState, Role, User
from orgsite.repositories import SessionRepository, UserRepository
from orgsite.services.auth import AuthService
from orgsite.services.blob_store import StoredBlob
from orgsite.services.errors import (
    BlobStoreError,
    InvalidCredentials,
    SessionExpired,
    Unauthorized,
    UsernameTaken,
)


class AuthServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.addCleanup(self.db.close)
        self.clock = FakeClock()
        self.service = AuthService(
            users=UserRepository(self.db),
            sessions=SessionRepository(self.db),
            signer=make_signer(),
            bcrypt_rounds=4,
            clock=self.clock,
        )

    def sessions_for(self, user_id: int) -> list[AuthSession]:
        return self.db.query(AuthSession).filter(AuthSession.user_id == user_id).all()

    def signed_in(self, username: str = "alice", device: str | None = None):
        self.service.sign_up("Alice", username, "Secret123")
        user = self.service.verify_credentials(username, "Secret123")
        return user, self.service.sign_in(user, device_info=device)


class TestSignUpAndCredentials(AuthServiceTestCase):
    def test_sign_up_then_verify_returns_public_user(self) -> None:
        created = self.service.sign_up("Alice", "alice", "Secret123")
        self.assertEqual(created.username, "alice")
        self.assertEqual(created.role, Role.USER.value)
        self.assertNotIn("password_hash", created.model_dump())

        verified = self.service.verify_credentials("alice", "Secret123")
        self.assertEqual(verified.id, created.id)
        self.assertNotIn("password_hash", verified.model_dump())

        stored = self.db.query(User).filter(User.id == created.id).one()
        self.assertNotEqual(stored.password_hash, "Secret123")
        self.assertIn("$04$", stored.password_hash)

    def test_duplicate_username(self) -> None:
        self.service.sign_up("Alice", "alice", "Secret123")
        with self.assertRaises(UsernameTaken):
            self.service.sign_up("Alice Again", "alice", "Other1234")

    def test_wrong_password_and_unknown_user_are_indistinguishable(self) -> None:
        self.service.sign_up("Alice", "alice", "Secret123")
        with self.assertRaises(InvalidCredentials) as wrong_password:
            self.service.verify_credentials("alice", "Wrong1234")
        with self.assertRaises(InvalidCredentials) as unknown_user:
            self.service.verify_credentials("mallory", "Secret123")
        self.assertEqual(wrong_password.exception.message, unknown_user.exception.message)
        self.assertEqual(wrong_password.exception.status_code, unknown_user.exception.status_code)

    def test_sign_up_with_admin_role(self) -> None:
        admin = self.service.sign_up("Root", "root", "Secret123", role=Role.ADMIN)
        self.assertEqual(admin.role, "ADMIN")


class TestSignUpAvatarRollback(unittest.TestCase):
    """The uploaded avatar blob is discarded when the user insert fails."""

    def _service(self, users: MagicMock, avatars: MagicMock) -> AuthService:
        return AuthService(
            users=users,
            sessions=MagicMock(),
            signer=make_signer(),
            bcrypt_rounds=4,
            avatars=avatars,
        )

    def test_unique_violation_discards_blob_and_raises_username_taken(self) -> None:
        blob = StoredBlob(key="avatars/a.png", url="http://cdn/avatars/a.png")
        users = MagicMock()
        users.find_by_username.return_value = None
        users.create.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        avatars = MagicMock()
        avatars.generate.return_value = blob

        with self.assertRaises(UsernameTaken):
            self._service(users, avatars).sign_up("Alice", "alice", "Secret123")
        avatars.discard.assert_called_once_with(blob)

    def test_other_store_failure_discards_blob_and_propagates(self) -> None:
        blob = StoredBlob(key="avatars/a.png", url="http://cdn/avatars/a.png")
        users = MagicMock()
        users.find_by_username.return_value = None
        users.create.side_effect = RuntimeError("connection lost")
        avatars = MagicMock()
        avatars.generate.return_value = blob

        with self.assertRaises(RuntimeError):
            self._service(users, avatars).sign_up("Alice", "alice", "Secret123")
        avatars.discard.assert_called_once_with(blob)

    def test_avatar_failure_does_not_block_sign_up(self) -> None:
        users = MagicMock()
        users.find_by_username.return_value = None
        created = MagicMock(id=1, username="alice", role="USER", image=None)
        created.name = "Alice"
        users.create.return_value = created
        avatars = MagicMock()
        avatars.generate.side_effect = BlobStoreError("gravatar down")

        user = self._service(users, avatars).sign_up("Alice", "alice", "Secret123")
        self.assertEqual(user.username, "alice")
        self.assertIsNone(users.create.call_args.kwargs["avatar"])


class TestSignIn(AuthServiceTestCase):
    def test_creates_one_hashed_session(self) -> None:
        user, pair = self.signed_in(device="curl/8.0")
        sessions = self.sessions_for(user.id)
        self.assertEqual(len(sessions), 1)
        session = sessions[0]
        self.assertNotEqual(session.refresh_token_hash, pair.refresh_token)
        self.assertEqual(session.refresh_token_hash, hash_token(pair.refresh_token))
        self.assertEqual(session.device_info, "curl/8.0")

        expires_at = session.expires_at.replace(tzinfo=UTC)
        expected = datetime.now(UTC) + timedelta(days=7)
        self.assertLess(abs((expires_at - expected).total_seconds()), 5)

    def test_each_sign_in_is_a_separate_session(self) -> None:
        user, _ = self.signed_in()
        self.service.sign_in(user, device_info="phone")
        self.assertEqual(len(self.sessions_for(user.id)), 2)

    def test_sign_in_and_refresh_mint_through_issue_token_pair(self) -> None:
        user, _ = self.signed_in()
        with patch.object(
            self.service, "issue_token_pair", wraps=self.service.issue_token_pair
        ) as issue:
            pair = self.service.sign_in(user)
            self.service.refresh(pair.refresh_token)
        self.assertEqual(issue.call_count, 2)
        for call in issue.call_args_list:
            self.assertEqual(call.args[:3], (user.id, "alice", Role.USER.value))


class TestRefresh(AuthServiceTestCase):
    def test_rotation_invalidates_previous_token(self) -> None:
        user, pair = self.signed_in()
        rotated = self.service.refresh(pair.refresh_token)
        self.assertNotEqual(rotated.refresh_token, pair.refresh_token)

        with self.assertRaises(Unauthorized):
            self.service.refresh(pair.refresh_token)

        again = self.service.refresh(rotated.refresh_token)
        self.assertNotEqual(again.refresh_token, rotated.refresh_token)
        self.assertEqual(len(self.sessions_for(user.id)), 1)

    def test_rotation_updates_hash_and_expiry(self) -> None:
        user, pair = self.signed_in()
        self.clock.advance(timedelta(hours=1))
        rotated = self.service.refresh(pair.refresh_token)
        session = self.sessions_for(user.id)[0]
        self.db.refresh(session)
        self.assertEqual(session.refresh_token_hash, hash_token(rotated.refresh_token))
        expected = self.clock.now + timedelta(days=7)
        self.assertLess(
            abs((session.expires_at.replace(tzinfo=UTC) - expected).total_seconds()), 1
        )

    def test_invalid_tokens(self) -> None:
        _, pair = self.signed_in()
        for token in ("garbage", tamper(pair.refresh_token), pair.access_token):
            with self.subTest(token=token[:16]):
                with self.assertRaises(Unauthorized) as ctx:
                    self.service.refresh(token)
                self.assertEqual(ctx.exception.message, "Access Denied")

    def test_claimed_user_must_match_subject(self) -> None:
        user, pair = self.signed_in()
        with self.assertRaises(Unauthorized):
            self.service.refresh(pair.refresh_token, claimed_user_id=user.id + 1)
        self.service.refresh(pair.refresh_token, claimed_user_id=user.id)

    def test_expired_session_is_deleted(self) -> None:
        user, pair = self.signed_in()
        self.clock.advance(timedelta(days=8))
        with self.assertRaises(SessionExpired) as ctx:
            self.service.refresh(pair.refresh_token)
        self.assertIsInstance(ctx.exception, Unauthorized)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(self.sessions_for(user.id), [])

    def test_logged_out_session_cannot_refresh(self) -> None:
        user, pair = self.signed_in()
        self.service.logout(user.id, pair.refresh_token)
        with self.assertRaises(Unauthorized):
            self.service.refresh(pair.refresh_token)

    def test_losing_concurrent_rotation_is_rejected(self) -> None:
        user, pair = self.signed_in()
        session = self.sessions_for(user.id)[0]
        stale_hash = session.refresh_token_hash
        self.service.refresh(pair.refresh_token)

        rotated = SessionRepository(self.db).update_session(
            session.id,
            token_hash=hash_token("another"),
            expires_at=self.clock.now + timedelta(days=7),
            expected_hash=stale_hash,
        )
        self.assertFalse(rotated)


class TestRefreshRotationConflict(unittest.TestCase):
    """A refresh whose compare-and-swap loses to a concurrent rotation is rejected."""

    def test_lost_rotation_raises_unauthorized(self) -> None:
        signer = make_signer()
        pair = signer.issue_pair(1, "alice", "USER")
        sessions = MagicMock()
        sessions.find_session.return_value = MagicMock(
            id=7,
            user_id=1,
            refresh_token_hash="stored-hash",
            expires_at=datetime.now(UTC) + timedelta(days=1),
        )
        sessions.update_session.return_value = False
        users = MagicMock()
        users.find_by_id.return_value = MagicMock(id=1, username="alice", role="USER")
        service = AuthService(users=users, sessions=sessions, signer=signer, bcrypt_rounds=4)

        with self.assertRaises(Unauthorized):
            service.refresh(pair.refresh_token)
        sessions.update_session.assert_called_once()
        self.assertEqual(sessions.update_session.call_args.args[0], 7)
        self.assertEqual(
            sessions.update_session.call_args.kwargs["expected_hash"], "stored-hash"
        )
        sessions.delete_session.assert_not_called()


class TestLogout(AuthServiceTestCase):
    def test_logout_is_idempotent(self) -> None:
        user, pair = self.signed_in()
        first = self.service.logout(user.id, pair.refresh_token)
        self.assertEqual(first.sessions_deleted, 1)
        self.assertTrue(first.clear_cookies)
        self.assertEqual(self.sessions_for(user.id), [])

        second = self.service.logout(user.id, pair.refresh_token)
        self.assertEqual(second.sessions_deleted, 0)

    def test_logout_only_touches_own_session(self) -> None:
        alice, alice_pair = self.signed_in("alice")
        bob, _ = self.signed_in("bob")
        result = self.service.logout(bob.id, alice_pair.refresh_token)
        self.assertEqual(result.sessions_deleted, 0)
        self.assertEqual(len(self.sessions_for(alice.id)), 1)

    def test_logout_with_token(self) -> None:
        user, pair = self.signed_in()
        self.assertEqual(self.service.logout_with_token(pair.refresh_token).sessions_deleted, 1)
        self.assertEqual(self.service.logout_with_token(pair.refresh_token).sessions_deleted, 0)
        self.assertEqual(self.service.logout_with_token("garbage").sessions_deleted, 0)

    def test_logout_all(self) -> None:
        user, _ = self.signed_in()
        for device in ("laptop", "phone", "tablet"):
            self.service.sign_in(user, device_info=device)
        self.assertEqual(len(self.sessions_for(user.id)), 4)

        result = self.service.logout_all(user.id)
        self.assertEqual(result.sessions_deleted, 4)
        self.assertEqual(self.sessions_for(user.id), [])

    def test_list_sessions_hides_hash(self) -> None:
        user, _ = self.signed_in(device="curl/8.0")
        sessions = self.service.list_sessions(user.id)
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].device_info, "curl/8.0")
        self.assertNotIn("refresh_token_hash", sessions[0].model_dump())


class TestCleanupExpiredSessions(AuthServiceTestCase):
    def test_deletes_exactly_expired_sessions(self) -> None:
        user, _ = self.signed_in()
        repo = SessionRepository(self.db)
        now = datetime.now(UTC)
        for i in range(3):
            repo.create_session(user.id, hash_token(f"old-{i}"), now - timedelta(minutes=i + 1))

        result = self.service.cleanup_expired_sessions(now=now)
        self.assertEqual(result.deleted_count, 3)
        self.assertEqual(len(self.sessions_for(user.id)), 1)

        self.assertEqual(self.service.cleanup_expired_sessions(now=now).deleted_count, 0)


class TestUserDeletion(AuthServiceTestCase):
    def test_deleting_user_removes_sessions_and_retires_avatar(self) -> None:
        user, pair = self.signed_in()
        self.db.add(
            Avatar(user_id=user.id, key="avatars/a.png", url="u", state=AvatarState.ACTIVE.value)
        )
        self.db.commit()

        self.assertTrue(UserRepository(self.db).delete(user.id))
        self.db.expire_all()
        self.assertEqual(self.sessions_for(user.id), [])
        avatar = self.db.query(Avatar).one()
        self.assertEqual(avatar.state, AvatarState.DELETED.value)
        self.assertIsNone(avatar.user_id)
        with self.assertRaises(Unauthorized):
            self.service.refresh(pair.refresh_token)
        self.assertFalse(UserRepository(self.db).delete(user.id))


class TestAliceScenario(AuthServiceTestCase):
    def test_full_lifecycle(self) -> None:
        alice = self.service.sign_up("Alice", "alice", "Secret123")
        verified = self.service.verify_credentials("alice", "Secret123")
        pair = self.service.sign_in(verified, device_info="curl/8.0")
        self.assertTrue(pair.access_token)
        self.assertTrue(pair.refresh_token)
        sessions = self.sessions_for(alice.id)
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0].device_info, "curl/8.0")

        newer = self.service.refresh(pair.refresh_token)
        with self.assertRaises(Unauthorized):
            self.service.refresh(pair.refresh_token)

        self.service.logout_all(alice.id)
        self.assertEqual(self.sessions_for(alice.id), [])
        with self.assertRaises(Unauthorized):
            self.service.refresh(newer.refresh_token)


if __name__ == "__main__":
    unittest.main()
