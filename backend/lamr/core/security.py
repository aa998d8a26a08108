"""
Token issuing/verification, password hashing and the caller dependency.

Tokens are stateless HS256 JWTs carrying ``sub``, ``role``, ``iat`` and
``exp``. Expiry is checked against an injected clock, not PyJWT's own check.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .clock import Clock, system_clock
from .config import settings
from .exceptions import (
    ExpiredTokenError,
    InvalidRequestError,
    InvalidSignatureError,
    MalformedTokenError,
    MissingTokenError,
)
from .permissions import Caller
from ..models.base import get_db
from ..models.hospital import Hospital
from ..models.user import User, UserRole

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "role", "iat", "exp"]
BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True)
class Claims:
    """Verified token payload."""
    subject_id: str
    role: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
        clock: Clock = system_clock,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.ttl = ttl
        self.clock = clock

    def issue(self, identity) -> str:
        """Sign a bearer token for anything with ``id`` and ``role``."""
        now = self.clock.now()
        payload = {
            "sub": str(identity.id),
            "role": identity.role,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Claims:
        if not token or not isinstance(token, str):
            raise MalformedTokenError()
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": REQUIRED_CLAIMS},
            )
        except jwt.InvalidSignatureError:
            raise InvalidSignatureError()
        except jwt.InvalidTokenError as exc:
            logger.debug("Rejected malformed token: %s", exc)
            raise MalformedTokenError()

        exp = payload["exp"]
        iat = payload["iat"]
        if not isinstance(exp, (int, float)) or not isinstance(iat, (int, float)):
            raise MalformedTokenError()
        if payload["role"] not in UserRole.ALL:
            raise MalformedTokenError()
        if self.clock.now().timestamp() >= exp:
            raise ExpiredTokenError()

        return Claims(
            subject_id=str(payload["sub"]),
            role=payload["role"],
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )


token_service = TokenService(
    secret_key=settings.SECRET_KEY,
    algorithm=settings.ALGORITHM,
    ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
)


# ── Passwords ────────────────────────────────────────────────────────────────

def get_password_hash(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise InvalidRequestError("Password must be at most 72 bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    encoded = plain_password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


# ── Caller resolution ────────────────────────────────────────────────────────

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_caller(db: Session, claims: Claims) -> Caller:
    """Build the per-request Caller from verified claims and the identity row.

    Deactivated accounts are returned as-is; the decision engine denies them.
    """
    user = db.get(User, claims.subject_id)
    if user is None:
        raise MalformedTokenError("Invalid token - user not found")
    if user.role != claims.role:
        raise MalformedTokenError("Invalid token - role changed")

    hospital_active = False
    if user.hospital_id:
        hospital = db.get(Hospital, user.hospital_id)
        hospital_active = hospital is not None and hospital.is_active

    return Caller(
        subject_id=user.id,
        role=user.role,
        is_active=bool(user.is_active),
        hospital_id=user.hospital_id,
        hospital_active=hospital_active,
        patient_id=user.patient_id,
    )


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Caller:
    if credentials is None or not credentials.credentials:
        raise MissingTokenError()
    claims = token_service.verify(credentials.credentials)
    return resolve_caller(db, claims)
