from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..auth.jwt import require_board_member
from ..config import settings
from ..schemas.schemas import EmailConfigStatus
from ..services import email as email_service

router = APIRouter()

require_board = require_board_member()


@router.get("/verify-email-config", response_model=EmailConfigStatus, dependencies=[Depends(require_board)])
def verify_email_config() -> EmailConfigStatus:
    return EmailConfigStatus(**email_service.email_config_status())


@router.get("/runtime", dependencies=[Depends(require_board)])
def get_runtime_diagnostics() -> Dict[str, Any]:
    """Expose non-sensitive runtime settings for debugging."""
    return {
        "email_backend": settings.email_backend,
        "email_host": settings.email_host,
        "email_port": settings.email_port,
        "email_use_tls": settings.email_use_tls,
        "frontend_url": settings.frontend_url,
        "pdf_output_dir": settings.pdf_output_dir,
        "celery_timezone": settings.celery_timezone,
    }
