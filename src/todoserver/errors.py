"""
=============================================================================
SERVICE ERRORS
=============================================================================

Every failure the todo API can turn into an HTTP response is one of these
classes. Each carries the status code it maps to, the same way
HTTPParseError carries one for malformed requests.

    ┌──────────────────────────┬────────┬──────────────────────────────────┐
    │  Exception               │ Status │ Meaning                          │
    ├──────────────────────────┼────────┼──────────────────────────────────┤
    │  ValidationError         │  400   │ Client fault: bad JSON, missing  │
    │                          │        │ title, non-numeric id. Raised    │
    │                          │        │ before the database is touched.  │
    │  DatabaseConnectionError │  500   │ Every resolved endpoint refused  │
    │                          │        │ us. The next request retries.    │
    │  FieldTypeError          │  500   │ A column could not be coerced to │
    │                          │        │ the number the caller needed.    │
    └──────────────────────────┴────────┴──────────────────────────────────┘

DatabaseConnectionError and FieldTypeError also subclass the builtin
ConnectionError and TypeError, so code written against the builtins keeps
working.

=============================================================================
"""

from .http.status_codes import HTTPStatus


class ServiceError(Exception):
    """Base class for errors that map directly onto an HTTP status."""

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR


class ValidationError(ServiceError):
    """The request itself is unusable (400)."""

    status_code = HTTPStatus.BAD_REQUEST


class DatabaseConnectionError(ServiceError, ConnectionError):
    """The backend could not be reached on any resolved endpoint."""


class FieldTypeError(ServiceError, TypeError):
    """A column value has no sensible numeric reading."""
