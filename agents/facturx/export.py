"""Schnittstelle zu Buchhaltungs-Exporten.

Exporter erhalten eine geordnete Folge von ``ExportableInvoice`` und liefern
den Exporttext. Mitgeliefert sind nur die CSV-Referenzformate (Kopfzeilen und
Positionen, Semikolon-getrennt); weitere Formate implementieren
``InvoiceExporter``.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from .dto import InvoiceRecord
from .generator import DEFAULT_VAT_RATE
from .results import ValidationResult

STATUS_VALIDATED = "validated"
STATUS_DRAFT = "draft"

_SEPARATORS = re.compile(r"[,;]")


@dataclass(frozen=True, slots=True)
class ExportableInvoice:
    invoice_number: Optional[str]
    extracted_data: InvoiceRecord
    status: str = STATUS_DRAFT
    profile: str = "comfort"

    @property
    def display_number(self) -> str:
        return self.extracted_data.invoice_number or self.invoice_number or ""


@runtime_checkable
class InvoiceExporter(Protocol):
    """Rendert eine Rechnungsfolge in ein Exportformat."""

    media_type: str

    def render(self, invoices: Sequence[ExportableInvoice]) -> str:
        ...


def status_for(result: ValidationResult) -> str:
    """``validated`` ohne Fehler, sonst ``draft``."""

    return STATUS_VALIDATED if result.is_valid else STATUS_DRAFT


def _clean(text: Optional[str]) -> str:
    return _SEPARATORS.sub(" ", text or "")


def _amount(value: Optional[Decimal]) -> str:
    return f"{(value or Decimal('0')):.2f}"


def _write(header: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")


class CsvExporter:
    """Eine Zeile je Rechnung."""

    media_type = "text/csv"
    header = (
        "Numero Facture",
        "Date Facture",
        "Date Echeance",
        "Vendeur",
        "SIRET Vendeur",
        "Acheteur",
        "SIRET Acheteur",
        "Total HT",
        "TVA",
        "Total TTC",
        "Devise",
        "Statut",
    )

    def render(self, invoices: Sequence[ExportableInvoice]) -> str:
        rows: List[Sequence[str]] = []
        for invoice in invoices:
            data = invoice.extracted_data
            rows.append(
                (
                    invoice.display_number,
                    data.invoice_date.isoformat() if data.invoice_date else "",
                    data.due_date.isoformat() if data.due_date else "",
                    _clean(data.seller.name),
                    data.seller.siret or "",
                    _clean(data.buyer.name),
                    data.buyer.siret or "",
                    _amount(data.total_ht),
                    _amount(data.tax_total()),
                    _amount(data.total_ttc),
                    data.currency or "EUR",
                    invoice.status or STATUS_DRAFT,
                )
            )
        return _write(self.header, rows)


class CsvItemsExporter:
    """Eine Zeile je Rechnungsposition."""

    media_type = "text/csv"
    header = (
        "Numero Facture",
        "Ligne",
        "Designation",
        "Quantite",
        "Prix Unitaire HT",
        "Taux TVA",
        "Montant HT",
    )

    def render(self, invoices: Sequence[ExportableInvoice]) -> str:
        rows: List[Sequence[str]] = []
        for invoice in invoices:
            for index, item in enumerate(invoice.extracted_data.items, start=1):
                rate = item.vat_rate if item.vat_rate is not None else DEFAULT_VAT_RATE
                rows.append(
                    (
                        invoice.display_number,
                        str(index),
                        _clean(item.designation),
                        str(item.quantity if item.quantity is not None else 0),
                        _amount(item.unit_price),
                        f"{rate}%",
                        _amount(item.net_amount()),
                    )
                )
        return _write(self.header, rows)
