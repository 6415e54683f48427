"""
auth/service.py -- Signup, login, logout and "who am I" orchestration.

The one place that ties UserStore, the token helpers and the response sink
together. GraphQL resolvers and the OAuth callback route both call into it;
every successful login path goes through start_session() so the session row,
the token and the cookie are always produced the same way.

The sink is anything with set_session_cookie(token, expires_at) and
clear_session_cookie() -- in practice graph.context.GraphQLContext or the
callback route's CookieSink. Passing None is allowed (no cookie is written).

Security:
  [C1] login() runs bcrypt exactly once whether or not the email exists, and
       returns the same InvalidCredentialsError for both failure modes.
  Passwords and tokens are never logged.

Layer rule: no imports from api/ or graph/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol

from auth.models import AuthResult, User
from auth.store import UserStore
from auth.tokens import burn_password_check, create_access_token, decode_access_token, verify_password
from core.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    UserNotFoundError,
    ValidationError,
)

logger = logging.getLogger("codestandoff.auth.service")

_BAD_CREDENTIALS = "invalid email or password"


class CookieSink(Protocol):
    def set_session_cookie(self, token: str, expires_at: datetime) -> None: ...

    def clear_session_cookie(self) -> None: ...


def _parse_user_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError("invalid user id") from None


class AuthService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Session issuance (shared by signup, login and OAuth)
    # ------------------------------------------------------------------

    def start_session(self, user: User, sink: Optional[CookieSink] = None) -> AuthResult:
        """Mint a token for `user`, persist it as a session and push the cookie.

        A failing sink is logged and ignored; the caller still gets the result.
        """
        issued = create_access_token(user.id, user.email)
        self.store.create_session(user.id, issued.token, issued.expires_at)
        if sink is not None:
            try:
                sink.set_session_cookie(issued.token, issued.expires_at)
            except Exception:
                logger.exception("Could not attach session cookie for user %s", user.id)
        return AuthResult(user=user, token=issued.token, expires_at=issued.expires_at)

    # ------------------------------------------------------------------
    # Password flows
    # ------------------------------------------------------------------

    def signup(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        sink: Optional[CookieSink] = None,
    ) -> AuthResult:
        """Create a password account and log it in.

        The existence check is only for a friendly error; the store's UNIQUE
        constraint decides concurrent signups.
        """
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("email and password are required")
        if self.store.get_by_email(email) is not None:
            raise ConflictError("user with this email already exists")
        user = self.store.create_user(email, password, first_name, last_name)
        logger.info("User signed up: %s", user.id)
        return self.start_session(user, sink)

    def login(self, email: str, password: str, sink: Optional[CookieSink] = None) -> AuthResult:
        """Authenticate with email and password [C1]."""
        user = self.store.get_by_email((email or "").strip())
        if user is None:
            burn_password_check(password or "")
            raise InvalidCredentialsError(_BAD_CREDENTIALS)
        if not verify_password(password or "", user.password_hash):
            raise InvalidCredentialsError(_BAD_CREDENTIALS)
        logger.info("User logged in: %s", user.id)
        return self.start_session(user, sink)

    def logout(self, token: Optional[str], sink: Optional[CookieSink] = None) -> bool:
        """Best-effort session delete; always clears the cookie and returns True.

        The JWT itself is not revoked and stays valid until it expires.
        """
        if token:
            try:
                self.store.delete_session(token)
            except Exception:
                logger.warning("Session delete failed during logout", exc_info=True)
        if sink is not None:
            try:
                sink.clear_session_cookie()
            except Exception:
                logger.exception("Could not clear session cookie")
        return True

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def me(self, token: Optional[str]) -> User:
        if not token:
            raise NotAuthenticatedError("not authenticated")
        try:
            claims = decode_access_token(token)
        except InvalidTokenError:
            raise NotAuthenticatedError("not authenticated") from None
        user = self.store.get_by_id(_parse_user_id(claims.subject))
        if user is None:
            raise UserNotFoundError("user not found")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.store.get_by_id(_parse_user_id(user_id))

    def list_users(self) -> list[User]:
        return self.store.list_users()
