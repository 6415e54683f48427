"""
graph/schema.py -- Query and Mutation roots and the executable schema.

Resolvers are plain (sync) functions: every call below is blocking store I/O
and strawberry runs sync resolvers directly. Service errors propagate as
GraphQL errors carrying extensions.code; anything internal is replaced by a
generic message by MaskErrors.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import strawberry
from graphql import GraphQLError
from strawberry.extensions import MaskErrors
from strawberry.types import Info

from core.errors import ServiceError
from graph.context import GraphQLContext
from graph.extensions import AuthCookieExtension
from graph.types import AuthPayload, GetQuestionsRequest, GetQuestionsResponse, Match, Problem, Question, User

GENERIC_ERROR_MESSAGE = "Unexpected error."


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@strawberry.type
class Query:
    @strawberry.field
    def me(self, info: Info[GraphQLContext, None]) -> User:
        ctx = info.context
        return User.from_model(ctx.auth.me(ctx.auth_token))

    @strawberry.field
    def users(self, info: Info[GraphQLContext, None]) -> list[User]:
        return [User.from_model(u) for u in info.context.auth.list_users()]

    @strawberry.field
    def user(self, info: Info[GraphQLContext, None], id: str) -> Optional[User]:
        found = info.context.auth.get_user(id)
        return User.from_model(found) if found is not None else None

    @strawberry.field
    def get_questions(self, info: Info[GraphQLContext, None], input: GetQuestionsRequest) -> GetQuestionsResponse:
        page = info.context.questions.get_questions(
            offset=input.offset,
            limit=input.limit,
            search=input.search,
            difficulty=input.difficulty,
            topics=input.topics,
            sort_by=input.sort_by,
            sort_order=input.sort_order,
        )
        return GetQuestionsResponse(
            questions=[Question.from_model(q) for q in page.questions],
            total_count=page.total_count,
            has_more=page.has_more,
        )

    @strawberry.field
    def problems(self) -> list[Problem]:
        return []

    @strawberry.field
    def problem(self, id: strawberry.ID) -> Optional[Problem]:
        return None

    @strawberry.field
    def matches(self) -> list[Match]:
        return []

    @strawberry.field
    def match(self, id: strawberry.ID) -> Optional[Match]:
        return None


@strawberry.type
class Mutation:
    @strawberry.mutation
    def signup(
        self,
        info: Info[GraphQLContext, None],
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthPayload:
        ctx = info.context
        result = ctx.auth.signup(email, password, first_name, last_name, sink=ctx)
        return AuthPayload.from_result(result)

    @strawberry.mutation
    def login(self, info: Info[GraphQLContext, None], email: str, password: str) -> AuthPayload:
        ctx = info.context
        return AuthPayload.from_result(ctx.auth.login(email, password, sink=ctx))

    @strawberry.mutation
    def logout(self, info: Info[GraphQLContext, None]) -> bool:
        ctx = info.context
        return ctx.auth.logout(ctx.auth_token, sink=ctx)

    @strawberry.mutation
    def create_problem(self, title: str, description: str, difficulty: str) -> Problem:
        return Problem(
            id=strawberry.ID("new-problem-id"),
            title=title,
            description=description,
            difficulty=difficulty,
            created_at=_now_iso(),
        )

    @strawberry.mutation
    def create_match(self, problem_id: strawberry.ID) -> Match:
        return Match(id=strawberry.ID("new-match-id"), status="waiting", created_at=_now_iso())


def should_mask_error(error: GraphQLError) -> bool:
    """Mask everything except client-safe service errors and GraphQL's own errors."""
    original = error.original_error
    if original is None:
        # Parse and validation errors: already client-facing.
        return False
    if isinstance(original, ServiceError):
        return original.internal
    return True


schema = strawberry.Schema(
    query=Query,
    mutation=Mutation,
    extensions=[
        AuthCookieExtension,
        MaskErrors(should_mask_error=should_mask_error, error_message=GENERIC_ERROR_MESSAGE),
    ],
)
