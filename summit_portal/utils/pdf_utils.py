from pathlib import Path
from textwrap import wrap
from typing import Iterable

from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from ..config import settings
from ..services.email_templates import format_currency, format_date

MARGIN_X = 72  # 1 inch
MARGIN_Y = 72
MAX_CHARS_PER_LINE = 90
LINE_HEIGHT = 14


def _output_path(filename: str) -> Path:
    base = Path(settings.pdf_output_dir)
    base.mkdir(parents=True, exist_ok=True)
    return base / filename


def _write_pdf(filename: str, lines: Iterable[str]) -> str:
    path = _output_path(filename)
    pdf_canvas = canvas.Canvas(str(path), pagesize=LETTER)
    _, height = LETTER
    text_stream = pdf_canvas.beginText(MARGIN_X, height - MARGIN_Y)
    text_stream.setFont("Helvetica", 12)

    for line in lines:
        normalized = "" if line is None else str(line)
        chunks = wrap(normalized, MAX_CHARS_PER_LINE) if normalized.strip() else [""]
        for chunk in chunks:
            if text_stream.getY() < MARGIN_Y:
                pdf_canvas.drawText(text_stream)
                pdf_canvas.showPage()
                text_stream = pdf_canvas.beginText(MARGIN_X, height - MARGIN_Y)
                text_stream.setFont("Helvetica", 12)
            text_stream.textLine(chunk)

    pdf_canvas.drawText(text_stream)
    pdf_canvas.showPage()
    pdf_canvas.save()
    return str(path)


def generate_payment_receipt_pdf(payment, owner, card, property_address: str) -> str:
    card_line = f"{card.card_type} ending in {card.last_four}" if card else "Card on file"
    lines = [
        "Summit Ridge HOA",
        "Payment Receipt",
        "",
        f"Date: {format_date(payment.payment_date)}",
        f"Received From: {owner.full_name}",
        f"Property: {property_address}",
        "",
        f"Amount Paid: {format_currency(payment.amount)}",
        f"Payment Method: {card_line}",
        f"Confirmation #: {payment.id}",
        "",
        "Thank you for your payment. Keep this receipt for your records.",
    ]
    return _write_pdf(f"receipt_{payment.id}.pdf", lines)
