"""Tests for token issuing/verification, password hashing and caller resolution."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest

from lamr.core.clock import FixedClock
from lamr.core.exceptions import (
    ExpiredTokenError,
    InvalidRequestError,
    InvalidSignatureError,
    MalformedTokenError,
    TokenError,
)
from lamr.core.security import (
    TokenService,
    get_password_hash,
    resolve_caller,
    verify_password,
)
from lamr.models.user import UserRole

SECRET = "test-secret-key-with-at-least-32-bytes"
T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def clock():
    return FixedClock(T0)


@pytest.fixture()
def tokens(clock):
    return TokenService(SECRET, ttl=timedelta(minutes=30), clock=clock)


def identity(role=UserRole.MEDICAL_PERSONNEL, id="user-1"):
    return SimpleNamespace(id=id, role=role)


class TestTokenService:
    def test_issue_then_verify_returns_claims(self, tokens):
        claims = tokens.verify(tokens.issue(identity()))
        assert claims.subject_id == "user-1"
        assert claims.role == UserRole.MEDICAL_PERSONNEL
        assert claims.issued_at == T0
        assert claims.expires_at == T0 + timedelta(minutes=30)

    def test_token_valid_just_before_expiry(self, tokens, clock):
        token = tokens.issue(identity())
        clock.advance(timedelta(minutes=29, seconds=59))
        assert tokens.verify(token).subject_id == "user-1"

    def test_token_rejected_at_expiry(self, tokens, clock):
        token = tokens.issue(identity())
        clock.advance(timedelta(minutes=30))
        with pytest.raises(ExpiredTokenError):
            tokens.verify(token)

    def test_expiry_follows_injected_clock_not_wall_clock(self, clock):
        """A token from 2024 is still valid while the injected clock says 2024."""
        service = TokenService(SECRET, ttl=timedelta(hours=1), clock=clock)
        assert service.verify(service.issue(identity())).role == UserRole.MEDICAL_PERSONNEL

    def test_wrong_secret_is_signature_error(self, tokens, clock):
        other = TokenService("another-secret-key-with-32-bytes-or-more", ttl=timedelta(minutes=30), clock=clock)
        with pytest.raises(InvalidSignatureError):
            tokens.verify(other.issue(identity()))

    def test_tampered_payload_is_signature_error(self, tokens):
        header, payload, signature = tokens.issue(identity(role=UserRole.PATIENT)).split(".")
        forged_payload = jwt.encode(
            {"sub": "user-1", "role": UserRole.ADMIN, "iat": 0, "exp": 9999999999},
            "forger-key-with-at-least-32-bytes-long",
            algorithm="HS256",
        ).split(".")[1]
        with pytest.raises(InvalidSignatureError):
            tokens.verify(f"{header}.{forged_payload}.{signature}")

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c", None])
    def test_garbage_is_malformed(self, tokens, token):
        with pytest.raises(MalformedTokenError):
            tokens.verify(token)

    def test_missing_role_claim_is_malformed(self, tokens):
        token = jwt.encode({"sub": "user-1", "iat": int(T0.timestamp()), "exp": int(T0.timestamp()) + 60}, SECRET)
        with pytest.raises(MalformedTokenError):
            tokens.verify(token)

    def test_unknown_role_is_malformed(self, tokens):
        token = tokens.issue(identity(role="superuser"))
        with pytest.raises(MalformedTokenError):
            tokens.verify(token)

    def test_all_token_failures_share_a_base_class(self):
        for exc in (MalformedTokenError, ExpiredTokenError, InvalidSignatureError):
            assert issubclass(exc, TokenError)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = get_password_hash("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_overlong_password_rejected(self):
        with pytest.raises(InvalidRequestError):
            get_password_hash("x" * 73)
        assert not verify_password("x" * 73, get_password_hash("x" * 72))

    def test_non_bcrypt_hash_does_not_verify(self):
        assert not verify_password("anything", "plaintext")


class TestResolveCaller:
    def test_resolves_medical_personnel(self, db, world):
        claims = TokenService(SECRET).verify(TokenService(SECRET).issue(world.doctor_a))
        caller = resolve_caller(db, claims)
        assert caller.subject_id == world.doctor_a.id
        assert caller.hospital_id == world.hospital_a.id
        assert caller.hospital_active is True
        assert caller.is_active is True

    def test_unknown_subject_is_token_error(self, db, world):
        service = TokenService(SECRET)
        claims = service.verify(service.issue(identity(role=UserRole.ADMIN, id="ghost")))
        with pytest.raises(MalformedTokenError):
            resolve_caller(db, claims)

    def test_role_mismatch_is_token_error(self, db, world):
        service = TokenService(SECRET)
        claims = service.verify(service.issue(identity(role=UserRole.ADMIN, id=world.doctor_a.id)))
        with pytest.raises(MalformedTokenError):
            resolve_caller(db, claims)

    def test_deactivated_identity_still_resolves(self, db, world):
        world.doctor_b.is_active = False
        db.commit()
        service = TokenService(SECRET)
        caller = resolve_caller(db, service.verify(service.issue(world.doctor_b)))
        assert caller.is_active is False
