"""Konvertierung eines Rechnungsdatensatzes in ein Factur-X-Dokument.

Reihenfolge: fachliche Prüfung → Profilwahl → XML-Erzeugung →
Struktur-Selbstprüfung → PDF/A-3-Einbettung. Validierungsbefunde stoppen die
Erzeugung nicht, sie werden im Ergebnis mitgeliefert; nur Einbettungsfehler
werden geworfen.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from backend.core.observability.logging import get_logger

from .business import validate_invoice_data
from .dto import InvoiceRecord, as_record
from .export import status_for
from .generator import build_facturx_xml
from .pdfa import embed_xml_in_pdf
from .profiles import ConformanceProfile, recommend_profile
from .render import render_invoice_pdf
from .results import ValidationResult, XmlValidationResult
from .validator import validate_xml_structure

logger = get_logger(__name__)


@dataclass(frozen=True)
class GeneratedDocument:
    record: InvoiceRecord
    profile: ConformanceProfile
    recommended_profile: ConformanceProfile
    xml: str
    validation: ValidationResult
    xml_validation: XmlValidationResult
    pdf: Optional[bytes] = None

    @property
    def status(self) -> str:
        return status_for(self.validation)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-Antwort ohne PDF-Bytes."""

        return {
            "invoiceNumber": self.record.invoice_number,
            "profile": self.profile.value,
            "recommendedProfile": self.recommended_profile.value,
            "status": self.status,
            "validation": self.validation.to_dict(),
            "xmlValidation": self.xml_validation.to_dict(),
            "xml": self.xml,
        }


def convert_invoice(
    data: InvoiceRecord | Mapping[str, Any],
    *,
    profile: ConformanceProfile | str | None = None,
    pdf_bytes: Optional[bytes] = None,
    generate_pdf: bool = True,
    now: Optional[datetime] = None,
) -> GeneratedDocument:
    """Führt die komplette Konvertierung aus.

    Args:
        data: Datensatz (lose Mapping-Form oder ``InvoiceRecord``).
        profile: Zielprofil; ``None`` übernimmt die Empfehlung.
        pdf_bytes: Quell-PDF; fehlt es, wird eine Seite mit ReportLab gerendert.
        generate_pdf: ``False`` erzeugt nur die XML.
        now: Zeitstempel der Einbettung (Metadaten).

    Raises:
        EmbeddingError: Quell-PDF defekt oder Einbettung fehlgeschlagen.
    """

    record = as_record(data)
    recommended = recommend_profile(record)
    target = ConformanceProfile.parse(profile, default=recommended) if profile else recommended

    validation = validate_invoice_data(
        data.to_mapping() if isinstance(data, InvoiceRecord) else data, target
    )
    xml = build_facturx_xml(record, target)
    xml_validation = validate_xml_structure(xml)
    if not xml_validation.is_valid:
        logger.warning(
            "facturx_self_check_failed",
            extra={"errors": [issue.message for issue in xml_validation.errors]},
        )

    pdf: Optional[bytes] = None
    if generate_pdf:
        source = pdf_bytes if pdf_bytes is not None else render_invoice_pdf(record)
        pdf = embed_xml_in_pdf(
            source, xml, record.invoice_number or "UNKNOWN", profile=target, now=now
        )

    logger.info(
        "facturx_converted",
        extra={
            "profile": target.value,
            "recommended_profile": recommended.value,
            "score": validation.score,
            "errors_count": len(validation.errors),
            "warnings_count": len(validation.warnings),
            "with_pdf": pdf is not None,
        },
    )
    return GeneratedDocument(
        record=record,
        profile=target,
        recommended_profile=recommended,
        xml=xml,
        validation=validation,
        xml_validation=xml_validation,
        pdf=pdf,
    )
