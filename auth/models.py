"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; graph/ and api/ map these to their own transport shapes.

Layer rule: no imports from api/, graph/, or training/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# Progression defaults for every newly created account.
DEFAULT_RATING = 0
DEFAULT_CURRENT_RANK = "Bronze 1"
DEFAULT_RANK_TIER = "Bronze"
DEFAULT_RANK_SUBDIVISION = 1


@dataclass
class User:
    """A CodeStandoff account.

    password_hash is "" for OAuth-only users (they have no local password).
    google_id / github_id are None until the user logs in through that
    provider, at which point UserStore.update_provider_id() fills them in.

    The progression fields (rating through rating_decay_applied_at) are
    initialized at creation and owned by the matchmaking side of the product.
    """

    id: str
    email: str
    password_hash: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email_verified: bool = False
    google_id: Optional[str] = None
    github_id: Optional[str] = None
    rating: int = DEFAULT_RATING
    peak_rating: int = DEFAULT_RATING
    current_rank: str = DEFAULT_CURRENT_RANK
    rank_tier: str = DEFAULT_RANK_TIER
    rank_subdivision: int = DEFAULT_RANK_SUBDIVISION
    global_rank: Optional[int] = None
    total_matches: int = 0
    wins: int = 0
    losses: int = 0
    last_rating_update: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    demotion_protection_until: Optional[datetime] = None
    rating_decay_applied_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Session:
    """A server-side login record.

    token is the exact JWT handed to the client; logout deletes by it.
    """

    id: str
    user_id: str
    token: str
    expires_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class Claims:
    """Verified contents of a session JWT."""

    user_id: str
    email: str
    issuer: str
    subject: str
    issued_at: datetime
    not_before: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    user: User
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class ExternalIdentity:
    """Profile returned by an OAuth provider, normalized across providers."""

    provider: str  # "google" or "github"
    external_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
