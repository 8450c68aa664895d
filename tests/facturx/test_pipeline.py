"""End-to-end conversion: record to validated Factur-X PDF."""

from __future__ import annotations

import logging

import pytest

from agents.facturx import (
    ConformanceProfile,
    InvoiceRecord,
    SourcePdfError,
    convert_invoice,
    extract_xml_from_pdf,
)


def test_convert_with_rendered_page(record: dict) -> None:
    document = convert_invoice(record)

    assert document.profile is ConformanceProfile.COMFORT
    assert document.recommended_profile is ConformanceProfile.COMFORT
    assert document.validation.is_valid
    assert document.validation.score == 97
    assert document.xml_validation.is_valid
    assert document.status == "validated"
    assert document.pdf is not None
    assert extract_xml_from_pdf(document.pdf) == document.xml


def test_convert_with_source_pdf(blank_pdf: bytes, full_record: dict) -> None:
    document = convert_invoice(full_record, pdf_bytes=blank_pdf)

    assert document.profile is ConformanceProfile.EXTENDED
    assert document.validation.score == 100
    assert "urn:factur-x.eu:1p0:extended" in document.xml
    assert extract_xml_from_pdf(document.pdf) == document.xml


def test_explicit_profile_overrides_recommendation(record: dict) -> None:
    document = convert_invoice(record, profile="extended", generate_pdf=False)

    assert document.profile is ConformanceProfile.EXTENDED
    assert document.recommended_profile is ConformanceProfile.COMFORT
    assert not document.validation.is_valid
    assert {issue.field for issue in document.validation.errors} == {"sellerVAT", "dueDate"}
    assert document.status == "draft"


def test_unknown_profile_falls_back_to_recommendation(record: dict) -> None:
    document = convert_invoice(record, profile="gold", generate_pdf=False)

    assert document.profile is ConformanceProfile.COMFORT


def test_xml_only(record: dict) -> None:
    document = convert_invoice(record, generate_pdf=False)

    assert document.pdf is None
    assert document.xml.startswith("<?xml")


def test_typed_record_is_accepted(record: dict) -> None:
    document = convert_invoice(InvoiceRecord.from_mapping(record), generate_pdf=False)

    assert document.validation.score == 97
    assert document.record.invoice_number == "INV-001"


def test_invalid_data_still_produces_document() -> None:
    document = convert_invoice({"invoiceNumber": "D-1"}, generate_pdf=False)

    assert document.profile is ConformanceProfile.MINIMUM
    assert not document.validation.is_valid
    assert document.xml_validation.is_valid


def test_to_dict(record: dict) -> None:
    payload = convert_invoice(record, generate_pdf=False).to_dict()

    assert set(payload) == {
        "invoiceNumber",
        "profile",
        "recommendedProfile",
        "status",
        "validation",
        "xmlValidation",
        "xml",
    }
    assert payload["profile"] == "comfort"
    assert payload["validation"]["score"] == 97
    assert payload["xmlValidation"]["isValid"] is True


def test_broken_source_pdf_raises(record: dict) -> None:
    with pytest.raises(SourcePdfError):
        convert_invoice(record, pdf_bytes=b"garbage")


def test_conversion_is_logged(record: dict, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="agents.facturx.pipeline"):
        convert_invoice(record, generate_pdf=False)

    entries = [r for r in caplog.records if r.getMessage() == "facturx_converted"]
    assert len(entries) == 1
    assert entries[0].profile == "comfort"
    assert entries[0].score == 97
    assert entries[0].with_pdf is False
