"""
graph/context.py -- Per-request GraphQL context.

GraphQLContext is the response sink the Auth Service writes cookies through.
strawberry's FastAPI router fills in `request` and `response` on any
BaseContext subclass, and merges the headers set on `response` (Set-Cookie
included) into the HTTP response it finally sends.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import Request
from strawberry.fastapi import BaseContext

from auth.service import AuthService
from auth.tokens import AUTH_COOKIE_NAME, clear_auth_cookie, set_auth_cookie
from training.store import QuestionStore

logger = logging.getLogger("codestandoff.graph.context")


class GraphQLContext(BaseContext):
    def __init__(self, auth: AuthService, questions: QuestionStore) -> None:
        super().__init__()
        self.auth = auth
        self.questions = questions
        # Read by AuthCookieExtension to decide whether the fallback must act.
        self.session_cookie_set = False

    @property
    def auth_token(self) -> Optional[str]:
        """The inbound session cookie, if any."""
        if self.request is None:
            return None
        return self.request.cookies.get(AUTH_COOKIE_NAME) or None

    def set_session_cookie(self, token: str, expires_at: datetime) -> None:
        if self.response is None:
            logger.warning("No response handle; session cookie not set")
            return
        set_auth_cookie(self.response, token, expires_at)
        self.session_cookie_set = True

    def clear_session_cookie(self) -> None:
        if self.response is None:
            logger.warning("No response handle; session cookie not cleared")
            return
        clear_auth_cookie(self.response)


async def get_context(request: Request) -> GraphQLContext:
    """FastAPI dependency used as the GraphQLRouter context_getter."""
    return GraphQLContext(
        auth=request.app.state.auth_service,
        questions=request.app.state.question_store,
    )
