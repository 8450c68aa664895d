"""Struktur-Validator für Factur-X/CII-XML.

Prüft die Pflichtelemente des UN/CEFACT-Dokuments in fester Reihenfolge.
Fehlt die Wurzel ``rsm:CrossIndustryInvoice``, wird sofort mit genau einem
Fehler abgebrochen. Parserfehler werden in ein Ergebnis überführt, nie
geworfen. Optional folgt eine XSD-Prüfung (``FACTURX_XSD_PATH``).
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from lxml import etree

from backend.core.config import settings
from backend.core.observability.logging import get_logger

from .generator import RAM_NS, RSM_NS
from .results import ValidationIssue, XmlValidationResult

logger = get_logger(__name__)

MAX_SCHEMA_ERRORS = 20


def _rsm(tag: str) -> str:
    return f"{{{RSM_NS}}}{tag}"


def _ram(tag: str) -> str:
    return f"{{{RAM_NS}}}{tag}"


def _parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


@lru_cache(maxsize=4)
def _load_schema(path: str) -> etree.XMLSchema:
    return etree.XMLSchema(etree.parse(path))


def _schema_errors(document: etree._Element, path: str) -> List[ValidationIssue]:
    try:
        schema = _load_schema(path)
    except (OSError, etree.XMLSchemaParseError, etree.XMLSyntaxError) as err:
        logger.warning("XSD %s could not be loaded, schema check skipped: %s", path, err)
        return []
    if schema.validate(document):
        return []
    return [
        ValidationIssue("schema", f"Ligne {entry.line}: {entry.message}")
        for entry in list(schema.error_log)[:MAX_SCHEMA_ERRORS]
    ]


def validate_xml_structure(xml: str | bytes, *, schema_path: Optional[str] = None) -> XmlValidationResult:
    """Validiert die Grundstruktur eines Factur-X-XML."""

    xml_bytes = xml.encode("utf-8") if isinstance(xml, str) else xml
    try:
        root = etree.fromstring(xml_bytes, _parser())
    except (etree.XMLSyntaxError, ValueError) as err:
        return XmlValidationResult(
            False, [ValidationIssue("xml", f"Erreur de parsing XML: {err}")]
        )

    if root is None or root.tag != _rsm("CrossIndustryInvoice"):
        return XmlValidationResult(
            False, [ValidationIssue("root", "Element racine CrossIndustryInvoice manquant")]
        )

    errors: List[ValidationIssue] = []

    context = root.find(_rsm("ExchangedDocumentContext"))
    if context is None:
        errors.append(ValidationIssue("context", "ExchangedDocumentContext manquant"))

    document = root.find(_rsm("ExchangedDocument"))
    if document is None:
        errors.append(ValidationIssue("document", "ExchangedDocument manquant"))
    elif not (document.findtext(_ram("ID")) or "").strip():
        errors.append(
            ValidationIssue("invoiceNumber", "ID de facture manquant dans ExchangedDocument")
        )

    transaction = root.find(_rsm("SupplyChainTradeTransaction"))
    if transaction is None:
        errors.append(ValidationIssue("transaction", "SupplyChainTradeTransaction manquant"))
    else:
        agreement = transaction.find(_ram("ApplicableHeaderTradeAgreement"))
        if agreement is None:
            errors.append(ValidationIssue("agreement", "ApplicableHeaderTradeAgreement manquant"))
        else:
            if agreement.find(_ram("SellerTradeParty")) is None:
                errors.append(ValidationIssue("seller", "SellerTradeParty manquant"))
            if agreement.find(_ram("BuyerTradeParty")) is None:
                errors.append(ValidationIssue("buyer", "BuyerTradeParty manquant"))

        if transaction.find(_ram("ApplicableHeaderTradeSettlement")) is None:
            errors.append(
                ValidationIssue("settlement", "ApplicableHeaderTradeSettlement manquant")
            )

    path = schema_path if schema_path is not None else settings.FACTURX_XSD_PATH
    if path:
        errors.extend(_schema_errors(root, path))

    return XmlValidationResult(
        is_valid=not errors,
        errors=errors,
        structure={
            "hasContext": context is not None,
            "hasDocument": document is not None,
            "hasTransaction": transaction is not None,
        },
    )
