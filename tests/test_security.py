"""Unit tests for orgsite.core.security: bcrypt hashing, token digests, and TokenSigner."""

import unittest
from datetime import UTC, datetime, timedelta

import jwt

from db_support import ACCESS_SECRET, REFRESH_SECRET, make_signer, tamper
from orgsite.core.security import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TokenSigner,
    dummy_password_hash,
    hash_password,
    hash_token,
    subject_to_user_id,
    verify_password,
)


class TestPasswordHashing(unittest.TestCase):
    def test_hash_then_verify(self) -> None:
        hashed = hash_password("Secret123", rounds=4)
        self.assertNotEqual(hashed, "Secret123")
        self.assertTrue(hashed.startswith("$2"))
        self.assertTrue(verify_password("Secret123", hashed))
        self.assertFalse(verify_password("Secret124", hashed))

    def test_cost_factor_is_applied(self) -> None:
        self.assertIn("$04$", hash_password("Secret123", rounds=4))
        self.assertIn("$05$", hash_password("Secret123", rounds=5))

    def test_same_password_hashes_differ(self) -> None:
        self.assertNotEqual(hash_password("Secret123", 4), hash_password("Secret123", 4))

    def test_malformed_hash_does_not_raise(self) -> None:
        self.assertFalse(verify_password("Secret123", "not-a-bcrypt-hash"))

    def test_dummy_hash_rejects_everything(self) -> None:
        self.assertFalse(verify_password("Secret123", dummy_password_hash(4)))
        self.assertIs(dummy_password_hash(4), dummy_password_hash(4))


class TestTokenHashing(unittest.TestCase):
    def test_sha256_hex_digest(self) -> None:
        digest = hash_token("abc")
        self.assertEqual(
            digest,
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad",
        )
        self.assertEqual(len(hash_token("any token")), 64)


class TestTokenSignerConfig(unittest.TestCase):
    def test_rejects_missing_secret(self) -> None:
        with self.assertRaises(ValueError):
            TokenSigner("", REFRESH_SECRET, timedelta(minutes=15), timedelta(days=7))

    def test_rejects_shared_secret(self) -> None:
        with self.assertRaises(ValueError):
            TokenSigner(ACCESS_SECRET, ACCESS_SECRET, timedelta(minutes=15), timedelta(days=7))


class TestTokenPair(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = make_signer()

    def test_round_trip_claims(self) -> None:
        pair = self.signer.issue_pair(42, "alice", "ADMIN")
        self.assertEqual(pair.token_type, "bearer")

        access = self.signer.decode_access(pair.access_token)
        self.assertEqual(access["sub"], "42")
        self.assertEqual(access["username"], "alice")
        self.assertEqual(access["role"], "ADMIN")
        self.assertEqual(access["type"], TOKEN_TYPE_ACCESS)

        refresh = self.signer.decode_refresh(pair.refresh_token)
        self.assertEqual(refresh["sub"], "42")
        self.assertEqual(refresh["username"], "alice")
        self.assertEqual(refresh["type"], TOKEN_TYPE_REFRESH)
        self.assertNotIn("role", refresh)
        self.assertEqual(subject_to_user_id(refresh), 42)

    def test_lifetimes(self) -> None:
        now = datetime.now(UTC).replace(microsecond=0)
        pair = self.signer.issue_pair(1, "alice", "USER", now=now)
        access = self.signer.decode_access(pair.access_token)
        refresh = self.signer.decode_refresh(pair.refresh_token)
        self.assertEqual(access["exp"] - access["iat"], 15 * 60)
        self.assertEqual(refresh["exp"] - refresh["iat"], 7 * 24 * 3600)

    def test_pairs_issued_in_same_instant_differ(self) -> None:
        now = datetime.now(UTC)
        first = self.signer.issue_pair(1, "alice", "USER", now=now)
        second = self.signer.issue_pair(1, "alice", "USER", now=now)
        self.assertNotEqual(first.access_token, second.access_token)
        self.assertNotEqual(first.refresh_token, second.refresh_token)

    def test_tampered_tokens_are_rejected(self) -> None:
        pair = self.signer.issue_pair(1, "alice", "USER")
        with self.assertRaises(jwt.PyJWTError):
            self.signer.decode_access(tamper(pair.access_token))
        with self.assertRaises(jwt.PyJWTError):
            self.signer.decode_refresh(tamper(pair.refresh_token))

    def test_tokens_are_not_interchangeable(self) -> None:
        pair = self.signer.issue_pair(1, "alice", "USER")
        with self.assertRaises(jwt.PyJWTError):
            self.signer.decode_access(pair.refresh_token)
        with self.assertRaises(jwt.PyJWTError):
            self.signer.decode_refresh(pair.access_token)

    def test_type_claim_is_checked(self) -> None:
        now = datetime.now(UTC)
        forged = jwt.encode(
            {"sub": "1", "type": TOKEN_TYPE_REFRESH, "iat": now, "exp": now + timedelta(minutes=5)},
            ACCESS_SECRET,
            algorithm="HS256",
        )
        with self.assertRaises(jwt.InvalidTokenError):
            self.signer.decode_access(forged)

    def test_expired_refresh_token(self) -> None:
        past = datetime.now(UTC) - timedelta(days=8)
        pair = self.signer.issue_pair(1, "alice", "USER", now=past)
        with self.assertRaises(jwt.ExpiredSignatureError):
            self.signer.decode_refresh(pair.refresh_token)
        claims = self.signer.decode_refresh(pair.refresh_token, verify_exp=False)
        self.assertEqual(claims["sub"], "1")

    def test_subject_must_be_integer(self) -> None:
        with self.assertRaises(ValueError):
            subject_to_user_id({"sub": "abc"})
        with self.assertRaises(ValueError):
            subject_to_user_id({})


if __name__ == "__main__":
    unittest.main()
