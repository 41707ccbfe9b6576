import base64
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from . import preferences
from .email_templates import RenderedEmail, render_email

logger = logging.getLogger(__name__)

MAX_LOG_RECIPIENTS = 3
MAX_SUBJECT_PREVIEW = 12


class EmailDeliveryError(RuntimeError):
    pass


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    request_id: Optional[str]
    error: Optional[str]


def _mask_email(value: str) -> str:
    if "@" not in value:
        return "***"
    name, domain = value.split("@", 1)
    if not name:
        masked = "***"
    elif len(name) <= 2:
        masked = f"{name[0]}***"
    else:
        masked = f"{name[0]}***{name[-1]}"
    return f"{masked}@{domain}"


def _mask_subject(subject: str) -> str:
    if not subject:
        return ""
    return f"{subject[:MAX_SUBJECT_PREVIEW]}... (len={len(subject)})"


def _backend_name() -> str:
    return (settings.email_backend or "local").strip().strip("'\"").lower()


def _resolve_sender() -> Tuple[str, str]:
    from_address = settings.email_from_address or "TheSummitRidgeHOA@proton.me"
    display_name = settings.email_from_name or "Summit Ridge HOA"
    return str(from_address), display_name


def log_email_configuration() -> None:
    logger.info(
        "Email configuration: backend=%s sendgrid_api_key=%s email_host=%s email_host_user=%s "
        "email_from_address=%s email_reply_to=%s",
        _backend_name(),
        bool(settings.sendgrid_api_key),
        bool(settings.email_host),
        bool(settings.email_host_user),
        bool(settings.email_from_address),
        bool(settings.email_reply_to),
    )


def email_config_status() -> dict:
    from_address, display_name = _resolve_sender()
    return {
        "backend": _backend_name(),
        "from_address": from_address,
        "from_name": display_name,
        "sendgrid_configured": bool(settings.sendgrid_api_key),
        "smtp_configured": bool(settings.email_host and settings.email_host_user and settings.email_host_password),
    }


def _normalize_recipients(recipients: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen = set()
    for email in recipients:
        if not email:
            continue
        cleaned = email.strip()
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        normalized.append(cleaned)
    return normalized


def _write_local_email(rendered: RenderedEmail, recipients: List[str], attachments: Sequence[EmailAttachment]) -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    safe_subject = "".join(ch for ch in rendered.subject if ch.isalnum() or ch in (" ", "_", "-")).strip() or "email"
    filename = f"{timestamp}_{safe_subject.replace(' ', '_')}.txt"
    output_dir = Path(settings.email_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / filename
    contents = "\n".join(
        [
            f"Subject: {rendered.subject}",
            f"Recipients: {', '.join(recipients)}",
            f"Attachments: {', '.join(item.filename for item in attachments) or 'none'}",
            "",
            rendered.text,
        ]
    )
    path.write_text(contents)
    for attachment in attachments:
        (output_dir / f"{timestamp}_{attachment.filename}").write_bytes(attachment.content)
    logger.info("[LOCAL EMAIL] %s", path)
    return str(path)


def _send_via_sendgrid(
    rendered: RenderedEmail,
    recipients: List[str],
    attachments: Sequence[EmailAttachment],
) -> SendResult:
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Attachment, Disposition, Email, FileContent, FileName, FileType, Mail

    from_address, display_name = _resolve_sender()
    if not settings.sendgrid_api_key:
        raise EmailDeliveryError("SendGrid backend requires SENDGRID_API_KEY.")

    message = Mail(
        from_email=Email(email=from_address, name=display_name),
        to_emails=recipients,
        subject=rendered.subject,
        plain_text_content=rendered.text,
        html_content=rendered.html,
    )
    if settings.email_reply_to:
        message.reply_to = Email(email=str(settings.email_reply_to))
    for item in attachments:
        message.add_attachment(
            Attachment(
                FileContent(base64.b64encode(item.content).decode("ascii")),
                FileName(item.filename),
                FileType(item.content_type),
                Disposition("attachment"),
            )
        )

    client = SendGridAPIClient(settings.sendgrid_api_key)
    try:
        response = client.send(message)
    except Exception as exc:
        status_code = getattr(exc, "status_code", None)
        logger.exception("SendGrid dispatch failed (status=%s body=%s).", status_code, getattr(exc, "body", None))
        return SendResult(backend="sendgrid", status_code=status_code, request_id=None, error=str(exc))

    request_id = None
    if isinstance(response.headers, Mapping):
        request_id = response.headers.get("X-Message-Id")
    logger.info(
        "Sent email via SendGrid to %d recipients (status=%s request_id=%s).",
        len(recipients),
        response.status_code,
        request_id,
    )
    return SendResult(backend="sendgrid", status_code=response.status_code, request_id=request_id, error=None)


def _send_via_smtp(
    rendered: RenderedEmail,
    recipients: List[str],
    attachments: Sequence[EmailAttachment],
) -> SendResult:
    if not settings.email_host:
        raise EmailDeliveryError("SMTP backend requires EMAIL_HOST.")
    if not settings.email_host_user or not settings.email_host_password:
        raise EmailDeliveryError("SMTP backend requires EMAIL_HOST_USER and EMAIL_HOST_PASSWORD.")
    from_address, display_name = _resolve_sender()

    message = EmailMessage()
    message["Subject"] = rendered.subject
    message["From"] = formataddr((display_name, from_address))
    message["To"] = ", ".join(recipients)
    if settings.email_reply_to:
        message["Reply-To"] = str(settings.email_reply_to)
    message.set_content(rendered.text)
    message.add_alternative(rendered.html, subtype="html")
    for item in attachments:
        maintype, _, subtype = item.content_type.partition("/")
        message.add_attachment(item.content, maintype=maintype, subtype=subtype or "octet-stream", filename=item.filename)

    context = ssl.create_default_context()
    with smtplib.SMTP(settings.email_host, settings.email_port or 587) as connection:
        connection.ehlo()
        if settings.email_use_tls:
            connection.starttls(context=context)
            connection.ehlo()
        connection.login(settings.email_host_user, settings.email_host_password)
        connection.send_message(message)
    logger.info("Sent email via SMTP to %d recipients.", len(recipients))
    return SendResult(backend="smtp", status_code=250, request_id=None, error=None)


def _log_send_attempt(backend: str, subject: str, recipients: List[str]) -> None:
    masked_recipients = [_mask_email(addr) for addr in recipients[:MAX_LOG_RECIPIENTS]]
    if len(recipients) > MAX_LOG_RECIPIENTS:
        masked_recipients.append(f"+{len(recipients) - MAX_LOG_RECIPIENTS} more")
    logger.info("Dispatching email backend=%s to=%s subject=%s", backend, masked_recipients, _mask_subject(subject))


def deliver(
    rendered: RenderedEmail,
    recipients: Iterable[str],
    attachments: Optional[Sequence[EmailAttachment]] = None,
) -> SendResult:
    """Send an already rendered email through the configured backend."""
    recipient_list = _normalize_recipients(recipients)
    if not recipient_list:
        raise EmailDeliveryError("No recipients provided.")
    attachments = list(attachments or [])
    backend = _backend_name()
    _log_send_attempt(backend, rendered.subject, recipient_list)

    try:
        if backend == "sendgrid":
            result = _send_via_sendgrid(rendered, recipient_list, attachments)
        elif backend == "smtp":
            result = _send_via_smtp(rendered, recipient_list, attachments)
        else:
            if backend != "local":
                logger.warning("Unknown EMAIL_BACKEND '%s'. Defaulting to local file writer.", backend)
            _write_local_email(rendered, recipient_list, attachments)
            result = SendResult(backend="local", status_code=200, request_id=None, error=None)
    except Exception:
        logger.exception("Email dispatch failed for backend=%s.", backend)
        raise

    if result.error:
        raise EmailDeliveryError(result.error)
    return result


def send_email(
    session: Session,
    *,
    to: str,
    template: str,
    context: Mapping[str, Any],
    subject: Optional[str] = None,
    attachments: Optional[Sequence[EmailAttachment]] = None,
    bypass_preferences: bool = False,
) -> bool:
    """Render and send a templated email to one owner.

    Returns False when the recipient's notification preferences suppress the
    template. Transport failures propagate so callers can decide whether the
    email is best effort.
    """
    if not to:
        raise EmailDeliveryError("Recipient email required.")

    if not bypass_preferences:
        preference = preferences.preferences_for_email(session, to)
        category = preferences.category_for_template(template)
        if not preferences.should_notify(preference, category):
            logger.info(
                "Email suppressed by preferences for %s (template=%s).",
                _mask_email(to),
                template,
            )
            return False

    rendered = render_email(template, context, subject=subject)
    deliver(rendered, [to], attachments)
    return True


def broadcast(
    session: Session,
    owners: Iterable[Any],
    template: str,
    context_for: Callable[[Any], Mapping[str, Any]],
) -> dict:
    """Send a templated email to each owner; per-recipient failures are collected, not raised."""
    stats: dict = {"sent": 0, "failed": 0, "skipped": 0, "errors": []}
    for owner in owners:
        if not owner.email:
            stats["skipped"] += 1
            continue
        try:
            if send_email(session, to=owner.email, template=template, context=context_for(owner)):
                stats["sent"] += 1
            else:
                stats["skipped"] += 1
        except Exception as exc:
            logger.warning("Broadcast %s email to owner %s failed: %s", template, owner.id, exc)
            stats["failed"] += 1
            stats["errors"].append({"ownerId": owner.id, "error": str(exc)})
    logger.info("Broadcast %s email: sent=%d failed=%d skipped=%d.", template, stats["sent"], stats["failed"], stats["skipped"])
    return stats
