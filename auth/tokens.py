"""
auth/tokens.py -- Session tokens (JWT) and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry userId, email, activeRole, iat and
       exp. TokenService.verify() raises a typed failure instead of returning
       None so the caller can tell an expired session ("please log in again")
       from a forged or mangled one. Both are 401 at the boundary.

       The validity window is fixed (24h by default). There is no revocation
       list: a token stays valid until exp even after logout or a role switch.

  Clock: TokenService takes an injectable clock so issue/verify are pure
       functions of (claims, secret, clock). Expiry is checked against that
       clock after the signature is verified; jose's own exp check is disabled
       so the two can never disagree.

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, SessionClaims
from core.errors import TokenExpired, TokenInvalid, ValidationError

if TYPE_CHECKING:
    from auth.models import User
    from core.gateway import UserGateway

logger = logging.getLogger("tourmarket.auth")

_ALGORITHM = "HS256"

DEFAULT_EXPIRE_SECONDS = 24 * 3600

# bcrypt rejects (or, in older releases, silently truncates) longer input.
MAX_PASSWORD_BYTES = 72


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    The limit is on UTF-8 bytes, not characters: 30 CJK characters are 90
    bytes. Raises ValidationError rather than letting bcrypt raise ValueError.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a mismatch, never as a match.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("tourmarket_timing_dummy")


def authenticate_user(users: UserGateway, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown or deleted email: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = users.get_by_email(email)
    if user is None or not user.password_hash:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed, expiring bearer tokens.

    Holds no mutable state: the secret, window, and clock are fixed at
    construction, so one instance is safely shared by all requests.
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._clock = clock or _utcnow

    def issue(self, user_id: int, email: str, active_role: Role) -> str:
        """Encode a signed JWT for the given identity and active role."""
        issued_at = int(self._clock().timestamp())
        payload = {
            "sub": str(user_id),
            "userId": user_id,
            "email": email,
            "activeRole": Role(active_role).value,
            "iat": issued_at,
            "exp": issued_at + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> SessionClaims:
        """Decode a JWT and return its claims.

        Raises:
            TokenExpired: signature is valid but the window has elapsed.
            TokenInvalid: anything else (bad signature, malformed token,
                missing or ill-typed claims, unknown role).
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenInvalid() from exc

        try:
            user_id = payload["userId"]
            email = payload["email"]
            role = Role(payload["activeRole"])
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid() from exc
        if not isinstance(user_id, int) or isinstance(user_id, bool) or not isinstance(email, str):
            raise TokenInvalid()

        if self._clock().timestamp() >= expires_at:
            raise TokenExpired()

        return SessionClaims(
            user_id=user_id,
            email=email,
            active_role=role,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )
