"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user /
_row_to_session are the mappers. Services and resolvers never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) is the real guard against duplicate accounts. The service
  layer checks for an existing email first to give a friendly error, but two
  concurrent signups can both pass that check; the loser's INSERT hits the
  constraint and is reported as ConflictError, exactly like the fast path.

  google_id / github_id are UNIQUE as well. Both PostgreSQL and SQLite treat
  NULLs as distinct, so unlinked accounts do not collide.

Error policy:
  Every SQLAlchemyError is wrapped in StoreError("failed to <action>") with the
  original chained as __cause__. Callers see short English context, never raw
  driver text.

Layer rule: no imports from api/, graph/, or training/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import (
    DEFAULT_CURRENT_RANK,
    DEFAULT_RANK_SUBDIVISION,
    DEFAULT_RANK_TIER,
    DEFAULT_RATING,
    Session,
    User,
)
from auth.tokens import hash_password
from core.database import create_db_engine, metadata
from core.errors import ConflictError, StoreError, ValidationError

logger = logging.getLogger("codestandoff.auth.store")

GOOGLE = "google"
GITHUB = "github"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False, server_default=""),  # "" for OAuth-only users
    Column("first_name", String(255)),
    Column("last_name", String(255)),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("google_id", String(255), unique=True),
    Column("github_id", String(255), unique=True),
    Column("rating", Integer, nullable=False, default=DEFAULT_RATING),
    Column("peak_rating", Integer, nullable=False, default=DEFAULT_RATING),
    Column("current_rank", String(32), nullable=False, default=DEFAULT_CURRENT_RANK),
    Column("rank_tier", String(32), nullable=False, default=DEFAULT_RANK_TIER),
    Column("rank_subdivision", Integer, nullable=False, default=DEFAULT_RANK_SUBDIVISION),
    Column("global_rank", Integer),
    Column("total_matches", Integer, nullable=False, default=0),
    Column("wins", Integer, nullable=False, default=0),
    Column("losses", Integer, nullable=False, default=0),
    Column("last_rating_update", DateTime(timezone=True)),
    Column("last_activity", DateTime(timezone=True)),
    Column("demotion_protection_until", DateTime(timezone=True)),
    Column("rating_decay_applied_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token", Text, nullable=False, index=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

_PROVIDER_COLUMNS = {
    GOOGLE: _users.c.google_id,
    GITHUB: _users.c.github_id,
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every timestamp we write is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Store failure while trying to %s (%s)", action, type(exc).__name__)
        raise StoreError(f"failed to {action}") from exc


def _conflict_message(exc: IntegrityError) -> str:
    """Name the unique column an INSERT collided with.

    SQLite reports "users.github_id"; PostgreSQL reports "users_github_id_key".
    Both carry the column name.
    """
    detail = str(exc.orig)
    for column in _PROVIDER_COLUMNS.values():
        if column.name in detail:
            return "user with this provider account already exists"
    return "user with this email already exists"


def _provider_column(provider: str):
    try:
        return _PROVIDER_COLUMNS[provider]
    except KeyError:
        raise ValidationError(f"unknown OAuth provider: {provider!r}") from None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Session rows.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user("a@x.com", "hunter22", "Ada", None)
        store.create_session(user.id, token, expires_at)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_db_engine(db_url)
        metadata.create_all(self.engine, tables=[_users, _sessions])

    # ------------------------------------------------------------------
    # User writes
    # ------------------------------------------------------------------

    def create_user(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Insert a password account and return the stored row.

        The password is hashed before it goes anywhere near SQL.
        Raises ConflictError if the email is already registered.
        """
        return self._insert_user(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name or None,
            last_name=last_name or None,
            email_verified=False,
        )

    def create_oauth_user(
        self,
        email: str,
        first_name: Optional[str],
        last_name: Optional[str],
        provider: str,
        external_id: str,
    ) -> User:
        """Insert an OAuth-only account (empty password hash, verified email)."""
        column = _provider_column(provider)
        return self._insert_user(
            email=email,
            password_hash="",
            first_name=first_name or None,
            last_name=last_name or None,
            email_verified=True,
            **{column.name: external_id},
        )

    def _insert_user(self, **values) -> User:
        now = _now()
        values.update(
            id=str(uuid.uuid4()),
            rating=DEFAULT_RATING,
            peak_rating=DEFAULT_RATING,
            current_rank=DEFAULT_CURRENT_RANK,
            rank_tier=DEFAULT_RANK_TIER,
            rank_subdivision=DEFAULT_RANK_SUBDIVISION,
            total_matches=0,
            wins=0,
            losses=0,
            last_activity=now,
            created_at=now,
            updated_at=now,
        )
        with _store_errors("create user"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(_users.insert().values(**values))
                    row = conn.execute(_users.select().where(_users.c.id == values["id"])).fetchone()
            except IntegrityError as exc:
                raise ConflictError(_conflict_message(exc)) from exc
        return _row_to_user(row)

    def update_provider_id(self, user_id: str, provider: str, external_id: str) -> None:
        """Link an external identity to an existing account.

        Only the provider column and updated_at change; the password hash and
        profile fields are left alone. Re-linking the same id is a no-op in
        effect.
        """
        column = _provider_column(provider)
        with _store_errors(f"update {provider} id"):
            with self.engine.begin() as conn:
                conn.execute(
                    _users.update().where(_users.c.id == user_id).values({column.name: external_id, "updated_at": _now()})
                )

    # ------------------------------------------------------------------
    # User reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a user by exact email. Returns None if not found."""
        return self._get_one(_users.c.email == email, "get user by email")

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._get_one(_users.c.id == user_id, "get user")

    def get_by_google_id(self, google_id: str) -> Optional[User]:
        return self._get_one(_users.c.google_id == google_id, "get user by Google ID")

    def get_by_github_id(self, github_id: str) -> Optional[User]:
        return self._get_one(_users.c.github_id == github_id, "get user by GitHub ID")

    def get_by_provider_id(self, provider: str, external_id: str) -> Optional[User]:
        """Dispatch to the per-provider lookup by provider name."""
        if provider == GOOGLE:
            return self.get_by_google_id(external_id)
        if provider == GITHUB:
            return self.get_by_github_id(external_id)
        raise ValidationError(f"unknown OAuth provider: {provider!r}")

    def list_users(self) -> list[User]:
        """Return all users, newest first."""
        with _store_errors("list users"):
            with self.engine.connect() as conn:
                rows = conn.execute(_users.select().order_by(_users.c.created_at.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    def _get_one(self, condition, action: str) -> Optional[User]:
        with _store_errors(action):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str, token: str, expires_at: datetime) -> Session:
        """Persist a session row for an issued token. No per-user limit is applied."""
        values = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "token": token,
            "expires_at": expires_at,
            "created_at": _now(),
        }
        with _store_errors("create session"):
            with self.engine.begin() as conn:
                conn.execute(_sessions.insert().values(**values))
        return Session(**values)

    def get_session_by_token(self, token: str) -> Optional[Session]:
        """Return the unexpired session for `token`, or None."""
        with _store_errors("get session"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    _sessions.select().where((_sessions.c.token == token) & (_sessions.c.expires_at > _now()))
                ).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, token: str) -> bool:
        """Delete the session(s) holding `token`. Returns True if a row went away."""
        with _store_errors("delete session"):
            with self.engine.begin() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.token == token))
        return result.rowcount > 0

    def delete_user_sessions(self, user_id: str) -> int:
        """Delete every session owned by a user. Returns the number removed."""
        with _store_errors("delete user sessions"):
            with self.engine.begin() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
        return result.rowcount

    def clean_expired_sessions(self) -> int:
        """Sweep sessions whose expiry has passed. Not scheduled by the app itself."""
        with _store_errors("clean expired sessions"):
            with self.engine.begin() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < _now()))
        if result.rowcount:
            logger.info("Removed %d expired sessions", result.rowcount)
        return result.rowcount

    def count_sessions(self, user_id: str) -> int:
        with _store_errors("count sessions"):
            with self.engine.connect() as conn:
                result = conn.execute(
                    select(func.count()).select_from(_sessions).where(_sessions.c.user_id == user_id)
                ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash or "",
        first_name=row.first_name,
        last_name=row.last_name,
        email_verified=bool(row.email_verified),
        google_id=row.google_id,
        github_id=row.github_id,
        rating=row.rating,
        peak_rating=row.peak_rating,
        current_rank=row.current_rank,
        rank_tier=row.rank_tier,
        rank_subdivision=row.rank_subdivision,
        global_rank=row.global_rank,
        total_matches=row.total_matches,
        wins=row.wins,
        losses=row.losses,
        last_rating_update=_aware(row.last_rating_update),
        last_activity=_aware(row.last_activity),
        demotion_protection_until=_aware(row.demotion_protection_until),
        rating_decay_applied_at=_aware(row.rating_decay_applied_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=_aware(row.expires_at),
        created_at=_aware(row.created_at),
    )
