"""Mapping of engine errors onto HTTP responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..exceptions import (
    EngineError,
    HistoryReadOnlyError,
    IdentityMissingError,
    NoActiveRunError,
    RunNotFoundError,
    UnknownTemplateError,
)


@dataclass(slots=True)
class ApiError(Exception):
    """Structured application-level error for HTTP handlers."""

    status_code: int
    code: str
    message: str
    headers: Mapping[str, str] | None = None

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={"error": {"code": self.code, "message": self.message}},
            headers=dict(self.headers or {}),
        )


_ENGINE_ERROR_STATUS: tuple[tuple[type[EngineError], int, str], ...] = (
    (HistoryReadOnlyError, status.HTTP_409_CONFLICT, "history_read_only"),
    (NoActiveRunError, status.HTTP_409_CONFLICT, "no_active_run"),
    (RunNotFoundError, status.HTTP_404_NOT_FOUND, "run_not_found"),
    (UnknownTemplateError, status.HTTP_404_NOT_FOUND, "template_not_found"),
    (IdentityMissingError, status.HTTP_400_BAD_REQUEST, "identity_missing"),
)


def engine_error_to_api_error(exc: EngineError) -> ApiError:
    for error_type, status_code, code in _ENGINE_ERROR_STATUS:
        if isinstance(exc, error_type):
            return ApiError(status_code, code, str(exc))
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "engine_error", str(exc))


async def api_error_handler(_: Request, exc: ApiError) -> JSONResponse:
    return exc.to_response()


async def engine_error_handler(_: Request, exc: EngineError) -> JSONResponse:
    return engine_error_to_api_error(exc).to_response()


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(EngineError, engine_error_handler)  # type: ignore[arg-type]


def unsupported_media_error(content_type: str | None) -> ApiError:
    return ApiError(
        status.HTTP_400_BAD_REQUEST,
        "unsupported_media",
        f"Unsupported logo content type: {content_type or 'unknown'}",
    )


def payload_too_large_error(size: int, limit: int) -> ApiError:
    return ApiError(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        "payload_too_large",
        f"Logo is {size} bytes; the limit is {limit} bytes",
    )


__all__ = [
    "ApiError",
    "engine_error_to_api_error",
    "payload_too_large_error",
    "register_error_handlers",
    "unsupported_media_error",
]
