"""
auth/tokens.py -- Password hashing, session JWTs, and the auth cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry userId, email, issuer, iat, nbf,
       exp (7 days) and sub = user id. decode_access_token() raises
       InvalidTokenError on any failure -- the service layer turns that into
       NotAuthenticatedError. Validation is stateless: it never consults the
       sessions table, so a token stays valid until exp even after logout.

  Passwords: bcrypt directly (no passlib wrapper). The cost factor is
       Settings.bcrypt_rounds. The _DUMMY_HASH constant enables timing
       equalization in the login path so response time does not reveal whether
       an email is registered [C1].

  SECRET_KEY: sourced from core.config.get_settings(), which refuses to start
       in production without one [S1].

Layer rule: no imports from api/, graph/, or training/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import Claims, IssuedToken
from core.config import get_settings
from core.errors import InvalidTokenError

logger = logging.getLogger("codestandoff.auth.tokens")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

ISSUER = "codestandoff"
TOKEN_TTL = timedelta(days=7)
AUTH_COOKIE_NAME = "auth_token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes of its input.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    An empty hash (OAuth-only account) or a malformed one is a mismatch.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("codestandoff_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt comparison against the dummy hash and discard the result [C1]."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: str, email: str, now: datetime | None = None) -> IssuedToken:
    """Encode a signed session JWT valid for TOKEN_TTL from `now`.

    `now` is truncated to whole seconds so the returned expires_at equals the
    exp claim exactly (JWT NumericDate has second resolution). The same value
    is written to the session row and the cookie.
    """
    issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    expires_at = issued_at + TOKEN_TTL
    payload = {
        "userId": user_id,
        "email": email,
        "iss": ISSUER,
        "sub": user_id,
        "iat": issued_at,
        "nbf": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at)


def decode_access_token(token: str) -> Claims:
    """Verify a session JWT and return its claims.

    Raises InvalidTokenError when the signature does not verify, the token is
    malformed, the issuer is wrong, or the current time is outside [nbf, exp].
    """
    try:
        payload = jwt.decode(
            token,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            issuer=ISSUER,
            options={"require_exp": True, "require_nbf": True, "require_sub": True},
        )
    except JWTError as exc:
        raise InvalidTokenError("invalid or expired token") from exc

    try:
        return Claims(
            user_id=str(payload["userId"]),
            email=str(payload.get("email", "")),
            issuer=payload["iss"],
            subject=str(payload["sub"]),
            issued_at=_from_timestamp(payload.get("iat", payload["nbf"])),
            not_before=_from_timestamp(payload["nbf"]),
            expires_at=_from_timestamp(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError("invalid or expired token") from exc


def _from_timestamp(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expires_at: datetime) -> None:
    """Write the session JWT as an httpOnly cookie on a Starlette response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": sent on same-site requests and top-level navigations,
        which the OAuth callback redirect relies on.
    secure: only sent over HTTPS when secure_cookies is on (production).
    expires: matches the JWT exp so both lapse together.
    """
    response.set_cookie(
        AUTH_COOKIE_NAME,
        value=token,
        path="/",
        expires=expires_at,
        httponly=True,
        samesite="lax",
        secure=bool(_settings.secure_cookies),
    )


def clear_auth_cookie(response) -> None:
    """Expire the session cookie with the same attributes it was set with."""
    response.delete_cookie(
        AUTH_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=bool(_settings.secure_cookies),
    )
