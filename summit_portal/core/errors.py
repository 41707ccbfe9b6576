import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .request_context import get_request_id

logger = logging.getLogger(__name__)


def _error_body(request: Request, detail: Any, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": detail, "path": request.url.path, "request_id": get_request_id(request)}
    body.update(extra)
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content=_error_body(request, "Validation failed.", errors=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(HTTPException)
    async def handle_http_error(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        if exc.status_code >= 500:
            logger.error("HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)
        content = _error_body(request, exc.detail or "HTTP error.")
        if isinstance(exc.detail, dict):
            content.update(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception(
            "Unhandled error on %s %s (request %s)",
            request.method,
            request.url.path,
            get_request_id(request),
        )
        return JSONResponse(status_code=500, content=_error_body(request, "Internal server error."))
