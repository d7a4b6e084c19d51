"""Rendering of PortalError as JSON responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi.responses import JSONResponse

from ngoportal.exceptions import PortalError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = structlog.get_logger(__name__)


def error_body(exc: PortalError, *, debug: bool = False) -> dict[str, object]:
    body: dict[str, object] = {"error": exc.reason, "message": exc.message, **exc.extra}
    if debug and exc.detail:
        body["detail"] = exc.detail
    return body


def install_error_handlers(app: FastAPI, *, debug: bool = False) -> None:
    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                path=request.url.path,
                reason=exc.reason,
                message=exc.message,
                detail=exc.detail,
            )
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                status=exc.status_code,
                reason=exc.reason,
            )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc, debug=debug))
