"""
graph/extensions.py -- Post-execution fallback for the session cookie.

Resolvers normally set the cookie through GraphQLContext. If that did not
happen, AuthCookieExtension inspects the finished result for a signup or
login payload carrying a token and sets the same cookie from it. The expiry
comes from the token's own exp claim, so the payload does not need to select
expiresAt.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from strawberry.extensions import SchemaExtension

from auth.tokens import decode_access_token
from core.errors import InvalidTokenError

logger = logging.getLogger("codestandoff.graph.extensions")

_SESSION_FIELDS = ("signup", "login")


def find_session_token(data: Any) -> Optional[str]:
    """Return the token from a signup/login payload in `data`, or None."""
    if not isinstance(data, dict):
        return None
    for field in _SESSION_FIELDS:
        payload = data.get(field)
        if isinstance(payload, dict):
            token = payload.get("token")
            if isinstance(token, str) and token:
                return token
    return None


class AuthCookieExtension(SchemaExtension):
    def on_execute(self):
        yield
        context = self.execution_context.context
        if context is None or getattr(context, "session_cookie_set", True):
            return
        result = self.execution_context.result
        token = find_session_token(getattr(result, "data", None))
        if token is None:
            return
        try:
            claims = decode_access_token(token)
        except InvalidTokenError:
            logger.warning("Result carried an unverifiable session token; cookie not set")
            return
        logger.info("Setting session cookie from execution result")
        context.set_session_cookie(token, claims.expires_at)
