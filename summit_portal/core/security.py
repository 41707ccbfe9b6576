import logging
from typing import List, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import Settings
from .request_context import REQUEST_ID_HEADER, assign_request_id

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "dev-secret-please-change"

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "same-origin",
}
HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Tag the request with an id and harden every response."""

    def __init__(self, app, *, csp: Optional[str] = None, enable_hsts: bool = True) -> None:
        super().__init__(app)
        self.csp = csp
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = assign_request_id(request)
        response = await call_next(request)

        extra = {REQUEST_ID_HEADER: request_id, **BASE_HEADERS}
        if self.csp:
            extra["Content-Security-Policy"] = self.csp
        if self.enable_hsts and request.url.scheme == "https":
            extra["Strict-Transport-Security"] = HSTS_VALUE
        for name, value in extra.items():
            response.headers.setdefault(name, value)
        return response


def log_security_warnings(config: Settings) -> List[str]:
    warnings: List[str] = []
    if config.jwt_secret == DEFAULT_JWT_SECRET:
        warnings.append("JWT secret is using the insecure default; set JWT_SECRET in the environment.")
    if (config.email_backend or "local").strip().lower() == "local":
        warnings.append("Email backend is set to local file writer; owner email will not be delivered.")
    if not config.email_from_address:
        warnings.append("EMAIL_FROM_ADDRESS is empty; outgoing email will be rejected by most providers.")
    for message in warnings:
        logger.warning(message)
    return warnings
