from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from summit_portal.config import settings
from summit_portal.services import email
from summit_portal.services.email_templates import (
    EMAIL_TEMPLATES,
    format_currency,
    format_date,
    render_email,
    render_merge_tags,
)


def test_currency_and_date_formatting():
    assert format_currency(Decimal("1234.5")) == "$1,234.50"
    assert format_currency("-20") == "-$20.00"
    assert format_currency(None) == "$0.00"
    assert format_currency("not money") == "$0.00"
    assert format_date(date(2025, 3, 7)) == "March 7, 2025"
    assert format_date("2025-12-01") == "December 1, 2025"
    assert format_date(None) == ""


def test_merge_tags_leave_unknown_keys():
    assert render_merge_tags("Hi {{ name }}, {{missing}}", {"name": "Pat"}) == "Hi Pat, {{missing}}"


def test_render_email_appends_signature_and_html():
    rendered = render_email("password_reset", {"temp_password": "Abc123"})

    assert rendered.subject == "Your temporary password"
    assert "Temporary password: Abc123" in rendered.text
    assert rendered.text.endswith("Thank you,\nSummit Ridge HOA")
    assert rendered.html.startswith("<p>")
    assert "<br>" in rendered.html


def test_render_email_escapes_html_and_allows_subject_override():
    rendered = render_email(
        "message",
        {"recipient_name": "Lee", "sender_name": "Kim", "message": "<b>hi</b>", "message_url": "x"},
        subject="Custom",
    )
    assert rendered.subject == "Custom"
    assert "&lt;b&gt;hi&lt;/b&gt;" in rendered.html


def test_unknown_template_is_rejected():
    with pytest.raises(ValueError, match="Unknown email template"):
        render_email("newsletter", {})
    assert "newsletter" not in EMAIL_TEMPLATES


def test_local_backend_writes_email_and_attachments(tmp_path):
    rendered = render_email("password_reset", {"temp_password": "Abc123"})

    result = email.deliver(
        rendered,
        ["Someone@Example.com", "someone@example.com", ""],
        [email.EmailAttachment(filename="receipt.pdf", content=b"%PDF")],
    )

    assert result.backend == "local"
    output_dir = Path(settings.email_output_dir)
    written = list(output_dir.glob("*.txt"))
    assert len(written) == 1
    contents = written[0].read_text()
    assert "Recipients: Someone@Example.com\n" in contents
    assert "Attachments: receipt.pdf" in contents
    assert list(output_dir.glob("*_receipt.pdf"))


def test_deliver_requires_recipients():
    with pytest.raises(email.EmailDeliveryError, match="No recipients provided"):
        email.deliver(render_email("password_reset", {}), ["", "  "])


def test_smtp_backend_requires_host(monkeypatch):
    monkeypatch.setattr(settings, "email_backend", "smtp")
    monkeypatch.setattr(settings, "email_host", None)

    with pytest.raises(email.EmailDeliveryError, match="EMAIL_HOST"):
        email.deliver(render_email("password_reset", {}), ["owner@example.com"])


def test_sendgrid_backend_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings, "email_backend", "sendgrid")
    monkeypatch.setattr(settings, "sendgrid_api_key", None)

    with pytest.raises(email.EmailDeliveryError, match="SENDGRID_API_KEY"):
        email.deliver(render_email("password_reset", {}), ["owner@example.com"])


def test_masking_helpers():
    assert email._mask_email("jordan@example.com") == "j***n@example.com"
    assert email._mask_email("ab@example.com") == "a***@example.com"
    assert email._mask_email("invalid") == "***"
    assert email._mask_subject("Payment receipt - $10.00").startswith("Payment rec")


def test_broadcast_collects_failures(db_session, create_owner, monkeypatch):
    good = create_owner()
    bad = create_owner()
    muted = create_owner()
    muted.notification_preference.news_docs_enabled = False
    db_session.commit()

    def _deliver(rendered, recipients, attachments=None):
        if bad.email in recipients:
            raise email.EmailDeliveryError("bounced")
        return email.SendResult(backend="test", status_code=202, request_id=None, error=None)

    monkeypatch.setattr(email, "deliver", _deliver)
    stats = email.broadcast(db_session, [good, bad, muted], "news_document", lambda owner: {"title": "Hi"})

    assert stats["sent"] == 1
    assert stats["failed"] == 1
    assert stats["skipped"] == 1
    assert stats["errors"] == [{"ownerId": bad.id, "error": "bounced"}]


def test_email_config_status_reports_backend(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")
    status = email.email_config_status()

    assert status["backend"] == "local"
    assert status["sendgrid_configured"] is True
    assert status["from_name"] == settings.email_from_name
