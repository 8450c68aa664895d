"""Factur-X Kernkomponenten: Erzeugung, Prüfung und PDF/A-3-Einbettung."""

from .address import PostalAddress, parse_address
from .business import validate_french_vat, validate_invoice_data, validate_siret_checksum
from .dto import InvoiceRecord, LineItem, Party, as_record, normalize_record
from .errors import EmbeddingError, ExtractionError, FacturXError, SourcePdfError
from .export import (
    CsvExporter,
    CsvItemsExporter,
    ExportableInvoice,
    InvoiceExporter,
    status_for,
)
from .generator import build_facturx_tree, build_facturx_xml, tax_breakdown, version
from .pdfa import build_xmp, embed_xml_in_pdf, extract_xml_from_pdf
from .pipeline import GeneratedDocument, convert_invoice
from .profiles import ConformanceProfile, recommend_profile
from .render import render_invoice_pdf
from .results import ValidationIssue, ValidationResult, XmlValidationResult
from .validator import validate_xml_structure

__all__ = [
    "PostalAddress",
    "parse_address",
    "validate_french_vat",
    "validate_invoice_data",
    "validate_siret_checksum",
    "InvoiceRecord",
    "LineItem",
    "Party",
    "as_record",
    "normalize_record",
    "EmbeddingError",
    "ExtractionError",
    "FacturXError",
    "SourcePdfError",
    "CsvExporter",
    "CsvItemsExporter",
    "ExportableInvoice",
    "InvoiceExporter",
    "status_for",
    "build_facturx_tree",
    "build_facturx_xml",
    "tax_breakdown",
    "version",
    "build_xmp",
    "embed_xml_in_pdf",
    "extract_xml_from_pdf",
    "GeneratedDocument",
    "convert_invoice",
    "ConformanceProfile",
    "recommend_profile",
    "render_invoice_pdf",
    "ValidationIssue",
    "ValidationResult",
    "XmlValidationResult",
    "validate_xml_structure",
]
