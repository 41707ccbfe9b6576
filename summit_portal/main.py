import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError

from .api import (
    accounts,
    announcements,
    assessments,
    audit_logs,
    auth,
    board,
    documents,
    messages,
    owners,
    payments,
    surveys,
    system,
    violations,
)
from .auth.jwt import owner_id_from_token
from .config import Base, SessionLocal, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.security import SecurityHeadersMiddleware, log_security_warnings
from .services.audit import audit_log
from .services.billing import ensure_assessment_types
from .services.board import ensure_board_roles
from .services.email import log_email_configuration

configure_logging(settings.log_level, json_logs=settings.log_json)
logger = logging.getLogger(__name__)

app = FastAPI(title="Summit Ridge HOA Portal")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, csp=settings.content_security_policy)
register_exception_handlers(app)


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_board_roles(session)
        ensure_assessment_types(session)
    log_security_warnings(settings)
    log_email_configuration()


for module in (
    auth,
    owners,
    accounts,
    payments,
    messages,
    announcements,
    documents,
    violations,
    assessments,
    board,
    surveys,
    system,
    audit_logs,
):
    app.include_router(module.router, prefix="/api")


@app.get("/health", tags=["system"])
def health() -> dict:
    return {"status": "ok"}


@app.middleware("http")
async def audit_trail(request: Request, call_next):
    response = await call_next(request)
    if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return response
    if not request.url.path.startswith("/api/") or response.status_code >= 400:
        return response
    actor_id = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        try:
            actor_id = owner_id_from_token(auth_header.split(" ", 1)[1], verify_exp=False)
        except (JWTError, ValueError):
            actor_id = None
    with SessionLocal() as session:
        audit_log(
            db_session=session,
            actor_owner_id=actor_id,
            action=f"{request.method} {request.url.path}",
            target_entity_type="HTTP",
            target_entity_id=request.url.path,
            after={"status": response.status_code},
        )
    return response
