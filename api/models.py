"""
HTTP response models for the non-GraphQL endpoints of CodeStandoff.

GraphQL has its own types in graph/types.py. These Pydantic v2 models only
cover the REST edges: the health probe and the error envelope shared by every
exception handler and the OAuth routes.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

API_VERSION = "0.1.0"


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str = API_VERSION


def error_body(code: str, message: str, detail: Optional[str] = None) -> dict:
    """Serialized ErrorResponse, ready for JSONResponse(content=...)."""
    return ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump()
