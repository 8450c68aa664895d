"""Tests for the loose-record trust boundary (InvoiceRecord.from_mapping)."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from agents.facturx import InvoiceRecord, LineItem, normalize_record
from agents.facturx.dto import coerce_date, coerce_decimal


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1 000,50 €", Decimal("1000.50")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("42", Decimal("42")),
        (12.5, Decimal("12.5")),
        (7, Decimal("7")),
        (Decimal("3.30"), Decimal("3.30")),
        ("999999999999999.99", Decimal("999999999999999.99")),
    ],
)
def test_coerce_decimal_accepts_common_notations(raw, expected) -> None:
    assert coerce_decimal(raw) == expected


@pytest.mark.parametrize(
    "raw", [None, True, "abc", "", "€", float("nan"), [], {}, "1e30", 1e15, Decimal("-1e20")]
)
def test_coerce_decimal_returns_none_for_garbage(raw) -> None:
    assert coerce_decimal(raw) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2025-01-15", date(2025, 1, 15)),
        ("15/01/2025", date(2025, 1, 15)),
        ("2025-01-15T10:30:00", date(2025, 1, 15)),
        (datetime(2025, 1, 15, 10, 30), date(2025, 1, 15)),
        (date(2025, 1, 15), date(2025, 1, 15)),
    ],
)
def test_coerce_date(raw, expected) -> None:
    assert coerce_date(raw) == expected


@pytest.mark.parametrize("raw", ["2025-02-30", "soon", 20250115, None])
def test_coerce_date_invalid(raw) -> None:
    assert coerce_date(raw) is None


def test_from_mapping_resolves_legacy_synonyms() -> None:
    record = InvoiceRecord.from_mapping(
        {
            "numeroFacture": "F-9",
            "dateFacture": "02/03/2025",
            "supplierName": "Fournisseur SA",
            "customerName": "Client SARL",
            "siret": "73282932000074",
            "total_ht": "100,00",
            "total": "120,00",
            "devise": "eur",
            "lineItems": [{"description": "Conseil", "qty": "2", "price": "50"}],
        }
    )

    assert record.invoice_number == "F-9"
    assert record.invoice_date == date(2025, 3, 2)
    assert record.seller.name == "Fournisseur SA"
    assert record.seller.siret == "73282932000074"
    assert record.buyer.name == "Client SARL"
    assert record.total_ht == Decimal("100.00")
    assert record.total_ttc == Decimal("120.00")
    assert record.currency == "EUR"
    assert record.items == (
        LineItem(designation="Conseil", quantity=Decimal("2"), unit_price=Decimal("50")),
    )


def test_from_mapping_flattens_nested_parties() -> None:
    record = InvoiceRecord.from_mapping(
        {
            "seller": {"name": "ACME", "vatNumber": "FR44732829320", "address": "1 rue A, 75001 Paris"},
            "buyer": {"name": "Client", "country": "de"},
        }
    )

    assert record.seller.name == "ACME"
    assert record.seller.vat_number == "FR44732829320"
    assert record.seller.tax_id == "FR44732829320"
    assert record.seller.address == "1 rue A, 75001 Paris"
    assert record.buyer.country == "DE"


def test_from_mapping_never_raises_on_wrong_types() -> None:
    record = InvoiceRecord.from_mapping(
        {"invoiceDate": 42, "totalHT": "n/a", "items": ["oops", {"quantity": "x"}]}
    )

    assert record.invoice_date is None
    assert record.total_ht is None
    assert len(record.items) == 1
    assert record.items[0].quantity is None
    assert record.currency == "EUR"


def test_normalize_record_keeps_values_untouched() -> None:
    normalized = normalize_record({"total": "12", "customerName": 5, "extra": True})

    assert normalized == {"totalTTC": "12", "buyerName": 5, "extra": True}


def test_canonical_key_wins_over_synonym() -> None:
    normalized = normalize_record({"sellerName": "Canonical", "supplierName": "Legacy"})

    assert normalized == {"sellerName": "Canonical"}


def test_line_net_amount_fallback_and_rounding() -> None:
    explicit = LineItem(montant_ht=Decimal("99.90"), quantity=Decimal("1"), unit_price=Decimal("1"))
    computed = LineItem(quantity=Decimal("3"), unit_price=Decimal("10.005"))
    discounted = LineItem(quantity=Decimal("2"), unit_price=Decimal("50"), discount=Decimal("10"))

    assert explicit.net_amount() == Decimal("99.90")
    assert computed.net_amount() == Decimal("30.02")
    assert discounted.net_amount() == Decimal("90.00")
    assert LineItem().net_amount() == Decimal("0")


def test_tax_total_defaults_to_difference(record: dict) -> None:
    assert InvoiceRecord.from_mapping(record).tax_total() == Decimal("200")
    record["totalTVA"] = 199.99
    assert InvoiceRecord.from_mapping(record).tax_total() == Decimal("199.99")


def test_to_mapping_is_canonical(record: dict) -> None:
    mapping = InvoiceRecord.from_mapping(record).to_mapping()

    assert mapping["invoiceNumber"] == "INV-001"
    assert mapping["invoiceDate"] == "2025-01-15"
    assert mapping["sellerSIRET"] == "73282932000074"
    assert mapping["currency"] == "EUR"
    assert mapping["items"][0]["montantHT"] == Decimal("1000")
    assert "dueDate" not in mapping
    assert InvoiceRecord.from_mapping(mapping) == InvoiceRecord.from_mapping(record)


def test_control_characters_are_replaced_at_the_boundary() -> None:
    record = InvoiceRecord.from_mapping(
        {
            "invoiceNumber": "INV\x00-7",
            "buyerName": "Client\x0cSARL",
            "sellerAddress": "12 rue\x0b de la Paix\x1f, 75002 Paris",
            "paymentTerms": "\x0c",
            "items": [{"designation": "Audit\x08 annuel\ufffe"}],
        }
    )

    assert record.invoice_number == "INV -7"
    assert record.buyer.name == "Client SARL"
    assert record.seller.address == "12 rue  de la Paix , 75002 Paris"
    assert record.payment_terms is None
    assert record.items[0].designation == "Audit  annuel"


def test_tabs_and_newlines_are_kept() -> None:
    record = InvoiceRecord.from_mapping({"paymentTerms": "30 jours\nnet\tfin de mois"})

    assert record.payment_terms == "30 jours\nnet\tfin de mois"


def test_large_line_products_still_round() -> None:
    item = LineItem.from_mapping({"quantity": "999999999999999", "unitPrice": "999999999999999.99"})

    assert item.net_amount() > Decimal("1e29")
