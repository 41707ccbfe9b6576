from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping

TAG_PATTERN = re.compile(r"{{\s*([a-zA-Z0-9_]+)\s*}}")

SIGNATURE = "\n\nThank you,\nSummit Ridge HOA"

EMAIL_TEMPLATES: Dict[str, Dict[str, str]] = {
    "message": {
        "subject": "New message from {{sender_name}}",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "You have received a new message from {{sender_name}}:\n\n"
            "{{message}}\n\n"
            "Read and reply in the portal: {{message_url}}"
        ),
    },
    "news_document": {
        "subject": "New {{item_type}}: {{title}}",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "A new {{item_type}} has been posted to the Summit Ridge portal.\n\n"
            "{{title}}\n{{summary}}\n\n"
            "View it here: {{item_url}}"
        ),
    },
    "survey": {
        "subject": "New community survey",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "The board would like your input on the following question:\n\n"
            "{{survey_question}}\n\n"
            "The survey closes on {{survey_end_date}}. Respond here: {{survey_url}}"
        ),
    },
    "payment": {
        "subject": "Payment receipt - {{amount}}",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "We received your payment of {{amount}} on {{date}} using your {{card_description}}.\n"
            "Confirmation #: {{confirmation_number}}\n"
            "Remaining balance: {{balance}}\n\n"
            "A PDF receipt is attached for your records."
        ),
    },
    "violation": {
        "subject": "Violation notice - {{violation_type}}",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "A violation has been recorded for your property at {{property_address}}.\n\n"
            "Violation Type: {{violation_type}}\n"
            "Date of Violation: {{violation_date}}\n"
            "Amount Due: {{amount}}\n"
            "Due Date: {{due_date}}"
        ),
    },
    "assessment": {
        "subject": "New assessment - {{assessment_type}}",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "A {{assessment_type}} of {{amount}} has been issued for {{property_address}}.\n"
            "Payment is due by {{due_date}}."
        ),
    },
    "charge": {
        "subject": "Past due balance reminder",
        "body": (
            "Hello {{recipient_name}},\n\n"
            "Our records show a past due balance of {{amount}} for {{property_address}}.\n"
            "Please log in to the portal to make a payment: {{payment_url}}"
        ),
    },
    "password_reset": {
        "subject": "Your temporary password",
        "body": (
            "A password reset was requested for your Summit Ridge account.\n\n"
            "Temporary password: {{temp_password}}\n\n"
            "You will be asked to choose a new password after signing in."
        ),
    },
    "violation_type": {
        "subject": "New violation type added",
        "body": (
            "A new violation type was added by {{added_by}}.\n\n"
            "Description: {{description}}\n"
            "Rate: {{rate}}"
        ),
    },
}


@dataclass
class RenderedEmail:
    subject: str
    text: str
    html: str


def format_currency(amount: Any) -> str:
    if amount in (None, ""):
        return "$0.00"
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        return "$0.00"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_date(value: date | datetime | str | None) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return f"{value:%B} {value.day}, {value.year}"


def render_merge_tags(text: str, context: Mapping[str, Any]) -> str:
    if not text:
        return text

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = context.get(key)
        return match.group(0) if value is None else str(value)

    return TAG_PATTERN.sub(_replace, text)


def _to_html(text: str) -> str:
    paragraphs = [chunk for chunk in text.split("\n\n") if chunk.strip()]
    return "".join(f"<p>{html.escape(chunk).replace(chr(10), '<br>')}</p>" for chunk in paragraphs)


def render_email(template: str, context: Mapping[str, Any], subject: str | None = None) -> RenderedEmail:
    if template not in EMAIL_TEMPLATES:
        raise ValueError(f"Unknown email template '{template}'.")
    definition = EMAIL_TEMPLATES[template]
    body = render_merge_tags(definition["body"], context) + SIGNATURE
    return RenderedEmail(
        subject=subject or render_merge_tags(definition["subject"], context),
        text=body,
        html=_to_html(body),
    )
