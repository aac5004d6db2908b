"""Domain exceptions.

Request-time failures derive from :class:`AppBaseException` so the handler
registered in :func:`app.main.create_app` can turn them into JSON responses.
:class:`TranscodeFailure` is different: it is raised inside the background
worker and only ever persisted on the asset row.
"""

from __future__ import annotations


class AppBaseException(Exception):
    """Domain-level base exception so we can map to JSON responses easily."""

    status_code: int = 500

    def __init__(self, detail: str, headers: dict[str, str] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.headers = headers or {}


class BadRequest(AppBaseException):
    status_code = 400


class Unauthenticated(AppBaseException):
    status_code = 401


class Forbidden(AppBaseException):
    status_code = 403


class NotFound(AppBaseException):
    status_code = 404


class Conflict(AppBaseException):
    status_code = 409


class PayloadTooLarge(AppBaseException):
    status_code = 413


class UnsupportedMediaType(AppBaseException):
    status_code = 415


class RangeNotSatisfiable(AppBaseException):
    status_code = 416

    def __init__(self, total_size: int, detail: str = "invalid byte range") -> None:
        super().__init__(
            detail,
            headers={"Accept-Ranges": "bytes", "Content-Range": f"bytes */{total_size}"},
        )
        self.total_size = total_size


class TranscodeFailure(Exception):
    """The external transcoder could not produce an output file."""
