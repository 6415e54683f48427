"""
graph/types.py -- GraphQL object and input types.

Field names are snake_case here; strawberry exposes them as camelCase.
Timestamps are ISO-8601 strings. Each type maps from its domain dataclass via
from_model() so resolvers stay one-liners.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import strawberry

from auth.models import AuthResult
from auth.models import User as UserModel
from training.models import Question as QuestionModel


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else ""


@strawberry.type
class User:
    id: strawberry.ID
    email: str
    email_verified: bool
    first_name: Optional[str]
    last_name: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_model(cls, user: UserModel) -> "User":
        return cls(
            id=strawberry.ID(user.id),
            email=user.email,
            email_verified=user.email_verified,
            first_name=user.first_name,
            last_name=user.last_name,
            created_at=_iso(user.created_at),
            updated_at=_iso(user.updated_at),
        )


@strawberry.type
class AuthPayload:
    user: User
    token: str
    expires_at: str

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthPayload":
        return cls(user=User.from_model(result.user), token=result.token, expires_at=_iso(result.expires_at))


@strawberry.type
class Question:
    id: strawberry.ID
    title: str
    slug: str
    description: str
    difficulty: str
    topics: list[str]
    test_case_count: int

    @classmethod
    def from_model(cls, q: QuestionModel) -> "Question":
        return cls(
            id=strawberry.ID(str(q.id)),
            title=q.title,
            slug=q.slug,
            description=q.description,
            difficulty=q.difficulty,
            topics=list(q.topics),
            test_case_count=q.test_case_count,
        )


@strawberry.input
class GetQuestionsRequest:
    offset: Optional[int] = None
    limit: Optional[int] = None
    search: Optional[str] = None
    difficulty: Optional[str] = None
    topics: Optional[list[str]] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None


@strawberry.type
class GetQuestionsResponse:
    questions: list[Question]
    total_count: int
    has_more: bool


# Placeholders: the match engine lives in another service.


@strawberry.type
class Problem:
    id: strawberry.ID
    title: str
    description: str
    difficulty: str
    created_at: str


@strawberry.type
class Match:
    id: strawberry.ID
    status: str
    created_at: str
