"""
core/errors.py -- Service error taxonomy shared by every layer.

Each error carries a stable machine code and the HTTP status the api/ layer
maps it to. The GraphQL layer exposes `code` through GraphQLError extensions
(graphql-core copies an original error's `extensions` attribute).

Messages are short English prose and safe to show to clients. StoreError is
the exception: it is internal and masked before it reaches a client.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for every expected failure raised by the service layer."""

    code = "INTERNAL"
    status_code = 500
    internal = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def extensions(self) -> dict:
        return {"code": self.code}


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = 409


class InvalidCredentialsError(ServiceError):
    code = "INVALID_CREDENTIALS"
    status_code = 401


class NotAuthenticatedError(ServiceError):
    code = "NOT_AUTHENTICATED"
    status_code = 401


class UserNotFoundError(ServiceError):
    code = "USER_NOT_FOUND"
    status_code = 404


class InvalidTokenError(ServiceError):
    code = "INVALID_TOKEN"
    status_code = 401


class CSRFMismatchError(ServiceError):
    code = "CSRF_MISMATCH"
    status_code = 400


class ExchangeError(ServiceError):
    code = "EXCHANGE_FAILED"
    status_code = 502


class ProviderError(ServiceError):
    code = "PROVIDER_ERROR"
    status_code = 502


class ProviderNotConfiguredError(ServiceError):
    code = "PROVIDER_NOT_CONFIGURED"
    status_code = 503


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"
    status_code = 400


class StoreError(ServiceError):
    """A storage-layer failure, wrapped with context. Never shown verbatim."""

    code = "INTERNAL"
    status_code = 500
    internal = True
