"""Global error handlers rendering the uniform `{success: false, ...}` envelope."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campuswatch.api.request_id import get_request_id
from campuswatch.domain.reports.exceptions import InvalidArgument, ReportError
from campuswatch.settings import settings

logger = logging.getLogger(__name__)

STATUS_BY_KIND: Dict[str, int] = {
    "invalid_argument": 400,
    "unauthenticated": 401,
    "forbidden": 403,
    "edit_window_closed": 403,
    "not_found": 404,
    "conflict": 409,
    "rate_limited": 429,
    "storage_unavailable": 503,
}


def _envelope(request: Request, message: str, kind: str, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"success": False, "message": message, "kind": kind}
    payload.update({key: value for key, value in extra.items() if value is not None})
    payload["request_id"] = get_request_id(request)
    return payload


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        errors.append({"field": ".".join(loc) or "request", "message": str(err.get("msg", "invalid value"))})
    return errors


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ReportError)
    async def report_error_handler(request: Request, exc: ReportError):  # type: ignore[override]
        status_code = STATUS_BY_KIND.get(exc.kind, 500)
        errors = exc.errors if isinstance(exc, InvalidArgument) and exc.errors else None
        if status_code >= 500:
            logger.warning("request failed", extra={"kind": exc.kind, "reason": exc.reason})
        retry_after = getattr(exc, "retry_after", None)
        return JSONResponse(
            status_code=status_code,
            content=_envelope(request, exc.message, exc.kind, reason=exc.reason, errors=errors),
            headers={"Retry-After": str(retry_after)} if retry_after else None,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(request, str(exc.detail), "http_error"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return JSONResponse(
            status_code=400,
            content=_envelope(request, "Validation failed", "invalid_argument", errors=_field_errors(exc)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        logger.exception("unhandled error", extra={"path": request.url.path})
        detail = str(exc) if settings.is_dev() else None
        return JSONResponse(
            status_code=500,
            content=_envelope(request, "Internal server error", "internal", detail=detail),
        )
