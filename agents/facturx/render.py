"""Sichtbare Rechnungsseite (ReportLab) für Datensätze ohne Quell-PDF.

Die Seite ist nur die menschenlesbare Darstellung; maßgeblich bleibt die
eingebettete XML. ``invariant=1`` macht die Ausgabe reproduzierbar.
"""

from __future__ import annotations

import io
from decimal import Decimal
from typing import Any, Mapping, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from backend.core.config import settings

from .dto import InvoiceRecord, Party, as_record

LEFT = 20 * mm
RIGHT = A4[0] - 20 * mm
TOP = A4[1] - 20 * mm
BOTTOM = 25 * mm
LINE_HEIGHT = 5 * mm

_COLUMNS = (
    ("Designation", LEFT),
    ("Qte", LEFT + 95 * mm),
    ("PU HT", LEFT + 115 * mm),
    ("TVA %", LEFT + 138 * mm),
    ("Total HT", LEFT + 155 * mm),
)


def _money(value: Optional[Decimal], currency: str) -> str:
    if value is None:
        return "-"
    return f"{value:.2f} {currency}"


def _party_block(pdf: canvas.Canvas, x: float, y: float, title: str, party: Party) -> None:
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(x, y, title)
    pdf.setFont("Helvetica", 9)
    lines = [party.name or "-"]
    if party.address:
        lines.extend(part.strip() for part in party.address.split(","))
    if party.siret:
        lines.append(f"SIRET: {party.siret}")
    if party.vat_number:
        lines.append(f"TVA: {party.vat_number}")
    for offset, text in enumerate(lines, start=1):
        pdf.drawString(x, y - offset * LINE_HEIGHT, text)


def render_invoice_pdf(data: InvoiceRecord | Mapping[str, Any]) -> bytes:
    """Rendert eine einfache A4-Rechnung und gibt die PDF-Bytes zurück."""

    record = as_record(data)
    currency = record.currency or "EUR"
    number = record.invoice_number or "UNKNOWN"

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
    pdf.setTitle(f"Facture {number}")
    pdf.setCreator(settings.FACTURX_CREATOR)
    pdf.setProducer(settings.FACTURX_PRODUCER)

    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(LEFT, TOP, f"Facture {number}")
    pdf.setFont("Helvetica", 10)
    if record.invoice_date:
        pdf.drawRightString(RIGHT, TOP, f"Date: {record.invoice_date:%d/%m/%Y}")
    if record.due_date:
        pdf.drawRightString(RIGHT, TOP - LINE_HEIGHT, f"Echeance: {record.due_date:%d/%m/%Y}")

    y = TOP - 15 * mm
    _party_block(pdf, LEFT, y, "Vendeur", record.seller)
    _party_block(pdf, LEFT + 95 * mm, y, "Acheteur", record.buyer)

    y -= 45 * mm
    pdf.setFont("Helvetica-Bold", 9)
    for title, x in _COLUMNS:
        pdf.drawString(x, y, title)
    pdf.line(LEFT, y - 2, RIGHT, y - 2)

    pdf.setFont("Helvetica", 9)
    for item in record.items:
        y -= LINE_HEIGHT
        if y < BOTTOM + 4 * LINE_HEIGHT:
            pdf.showPage()
            pdf.setFont("Helvetica", 9)
            y = TOP
        values = (
            (item.designation or "-")[:55],
            f"{item.quantity}" if item.quantity is not None else "1",
            _money(item.unit_price, currency),
            f"{item.vat_rate}" if item.vat_rate is not None else "-",
            _money(item.net_amount(), currency),
        )
        for (_, x), text in zip(_COLUMNS, values):
            pdf.drawString(x, y, text)

    y -= 2 * LINE_HEIGHT
    pdf.setFont("Helvetica", 10)
    pdf.drawRightString(RIGHT, y, f"Total HT: {_money(record.total_ht, currency)}")
    pdf.drawRightString(RIGHT, y - LINE_HEIGHT, f"TVA: {_money(record.tax_total(), currency)}")
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawRightString(
        RIGHT, y - 2 * LINE_HEIGHT, f"Total TTC: {_money(record.total_ttc, currency)}"
    )

    if record.payment_terms:
        pdf.setFont("Helvetica", 8)
        pdf.drawString(LEFT, BOTTOM, record.payment_terms[:120])

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
