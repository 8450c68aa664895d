"""Tests for the CII (Factur-X) XML generator."""

from __future__ import annotations

from decimal import Decimal

import pytest
from lxml import etree

from agents.facturx import (
    InvoiceRecord,
    build_facturx_tree,
    build_facturx_xml,
    tax_breakdown,
    validate_xml_structure,
)
from agents.facturx.generator import NSMAP, RAM_NS, RSM_NS, UDT_NS

NS = {"rsm": RSM_NS, "ram": RAM_NS, "udt": UDT_NS}

SELLER_TAX_ID = (
    "/rsm:CrossIndustryInvoice/rsm:SupplyChainTradeTransaction/"
    "ram:ApplicableHeaderTradeAgreement/ram:SellerTradeParty/"
    "ram:SpecifiedTaxRegistration/ram:ID"
)
HEADER_SETTLEMENT = (
    "/rsm:CrossIndustryInvoice/rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeSettlement"
)
MONETARY = HEADER_SETTLEMENT + "/ram:SpecifiedTradeSettlementHeaderMonetarySummation"


def _parse(xml: str) -> etree._Element:
    return etree.fromstring(xml.encode("utf-8"))


def _text(root: etree._Element, path: str) -> str:
    return root.xpath(f"string({path})", namespaces=NS)


def test_end_to_end_document(record: dict) -> None:
    xml = build_facturx_xml(record, "comfort")
    root = _parse(xml)

    registration = root.xpath(SELLER_TAX_ID, namespaces=NS)
    assert [node.text for node in registration] == ["73282932000074"]
    assert registration[0].get("schemeID") == "VA"
    assert _text(root, MONETARY + "/ram:GrandTotalAmount") == "1200.00"
    assert _text(root, MONETARY + "/ram:DuePayableAmount") == "1200.00"
    assert _text(root, MONETARY + "/ram:LineTotalAmount") == "1000.00"
    assert _text(root, MONETARY + "/ram:TaxTotalAmount") == "200.00"
    assert root.xpath(MONETARY + "/ram:TaxTotalAmount/@currencyID", namespaces=NS) == ["EUR"]


def test_header_fields(record: dict) -> None:
    root = _parse(build_facturx_xml(record, "comfort"))

    assert _text(root, "//rsm:ExchangedDocumentContext//ram:ID") == "urn:factur-x.eu:1p0:comfort"
    assert _text(root, "/rsm:CrossIndustryInvoice/rsm:ExchangedDocument/ram:ID") == "INV-001"
    assert _text(root, "/rsm:CrossIndustryInvoice/rsm:ExchangedDocument/ram:TypeCode") == "380"
    issue = root.xpath("//rsm:ExchangedDocument/ram:IssueDateTime/udt:DateTimeString", namespaces=NS)[0]
    assert issue.text == "20250115"
    assert issue.get("format") == "102"
    assert _text(root, HEADER_SETTLEMENT + "/ram:InvoiceCurrencyCode") == "EUR"
    # due date falls back to the invoice date
    assert _text(root, HEADER_SETTLEMENT + "//ram:DueDateDateTime/udt:DateTimeString") == "20250115"


def test_output_is_deterministic(record: dict) -> None:
    assert build_facturx_xml(record, "comfort") == build_facturx_xml(dict(record), "comfort")


def test_xml_declaration_and_namespaces(record: dict) -> None:
    xml = build_facturx_xml(record)
    root = _parse(xml)

    assert xml.startswith("<?xml version='1.0' encoding='UTF-8'?>")
    assert root.nsmap == NSMAP
    assert root.tag == f"{{{RSM_NS}}}CrossIndustryInvoice"


@pytest.mark.parametrize("profile", ["minimum", "basic", "comfort", "extended"])
def test_guideline_follows_profile(record: dict, profile: str) -> None:
    root = _parse(build_facturx_xml(record, profile))

    assert _text(root, "//ram:GuidelineSpecifiedDocumentContextParameter/ram:ID") == (
        f"urn:factur-x.eu:1p0:{profile}"
    )


def test_line_items_precede_header_blocks(record: dict) -> None:
    root = build_facturx_tree(record)
    transaction = root.find(f"{{{RSM_NS}}}SupplyChainTradeTransaction")

    assert [etree.QName(child).localname for child in transaction] == [
        "IncludedSupplyChainTradeLineItem",
        "ApplicableHeaderTradeAgreement",
        "ApplicableHeaderTradeDelivery",
        "ApplicableHeaderTradeSettlement",
    ]


def test_line_rendering(record: dict) -> None:
    root = _parse(build_facturx_xml(record))
    line = root.xpath("//ram:IncludedSupplyChainTradeLineItem", namespaces=NS)[0]

    assert _text(line, "ram:AssociatedDocumentLineDocument/ram:LineID") == "1"
    assert _text(line, "ram:SpecifiedTradeProduct/ram:Name") == "Service"
    assert _text(line, ".//ram:NetPriceProductTradePrice/ram:ChargeAmount") == "1000.00"
    quantity = line.xpath(".//ram:BilledQuantity", namespaces=NS)[0]
    assert (quantity.text, quantity.get("unitCode")) == ("1", "C62")
    assert _text(line, ".//ram:ApplicableTradeTax/ram:RateApplicablePercent") == "20"
    assert _text(line, ".//ram:ApplicableTradeTax/ram:CategoryCode") == "S"
    assert _text(line, ".//ram:LineTotalAmount") == "1000.00"


def test_line_defaults(record: dict) -> None:
    record["items"] = [
        {"designation": "Sans TVA", "unitPrice": 50},
        {"designation": "Exonere", "quantity": 2, "unitPrice": 10, "vatRate": 0},
    ]
    root = _parse(build_facturx_xml(record))
    lines = root.xpath("//ram:IncludedSupplyChainTradeLineItem", namespaces=NS)

    assert _text(lines[0], ".//ram:BilledQuantity") == "1"
    assert _text(lines[0], ".//ram:RateApplicablePercent") == "20"
    assert _text(lines[0], ".//ram:LineTotalAmount") == "0.00"
    assert _text(lines[1], ".//ram:RateApplicablePercent") == "0"
    assert _text(lines[1], ".//ram:LineTotalAmount") == "20.00"


def test_party_address_is_split(full_record: dict) -> None:
    root = _parse(build_facturx_xml(full_record, "extended"))
    seller = root.xpath("//ram:SellerTradeParty", namespaces=NS)[0]
    buyer = root.xpath("//ram:BuyerTradeParty", namespaces=NS)[0]

    assert _text(seller, "ram:Name") == "ACME Industries SAS"
    assert _text(seller, "ram:PostalTradeAddress/ram:PostcodeCode") == "75002"
    assert _text(seller, "ram:PostalTradeAddress/ram:LineOne") == "12 rue de la Paix"
    assert _text(seller, "ram:PostalTradeAddress/ram:CityName") == "Paris"
    assert _text(seller, "ram:PostalTradeAddress/ram:CountryID") == "FR"
    assert _text(buyer, "ram:SpecifiedTaxRegistration/ram:ID") == "55210055400013"
    assert _text(root, HEADER_SETTLEMENT + "//ram:DueDateDateTime/udt:DateTimeString") == "20250331"
    assert _text(root, HEADER_SETTLEMENT + "/ram:SpecifiedTradePaymentTerms/ram:Description") == (
        "Paiement a 30 jours"
    )


def test_missing_address_parts_are_omitted(record: dict) -> None:
    root = _parse(build_facturx_xml(record))
    postal = root.xpath("//ram:BuyerTradeParty/ram:PostalTradeAddress", namespaces=NS)[0]

    assert [etree.QName(child).localname for child in postal] == ["LineOne", "CountryID"]
    assert root.xpath("//ram:BuyerTradeParty/ram:SpecifiedTaxRegistration", namespaces=NS) == []


def test_tax_registration_falls_back_to_vat_number(record: dict) -> None:
    del record["sellerSIRET"]
    record["sellerVAT"] = "FR44732829320"
    root = _parse(build_facturx_xml(record))

    assert [node.text for node in root.xpath(SELLER_TAX_ID, namespaces=NS)] == ["FR44732829320"]


def test_special_characters_are_escaped(record: dict) -> None:
    record["sellerName"] = 'Dupont & Fils <"SA">'
    root = _parse(build_facturx_xml(record))

    assert _text(root, "//ram:SellerTradeParty/ram:Name") == 'Dupont & Fils <"SA">'


def test_incomplete_record_still_produces_well_formed_document() -> None:
    xml = build_facturx_xml({})
    root = _parse(xml)

    assert _text(root, "/rsm:CrossIndustryInvoice/rsm:ExchangedDocument/ram:ID") == "UNKNOWN"
    assert _text(root, MONETARY + "/ram:GrandTotalAmount") == "0.00"
    assert validate_xml_structure(xml).is_valid


def test_vat_breakdown_by_rate(mixed_record: dict) -> None:
    root = _parse(build_facturx_xml(mixed_record, vat_breakdown="by_rate"))
    taxes = root.xpath(HEADER_SETTLEMENT + "/ram:ApplicableTradeTax", namespaces=NS)

    assert [
        (
            _text(tax, "ram:RateApplicablePercent"),
            _text(tax, "ram:BasisAmount"),
            _text(tax, "ram:CalculatedAmount"),
        )
        for tax in taxes
    ] == [("5.5", "200.00", "11.00"), ("20", "1000.00", "200.00")]


def test_vat_breakdown_flat(mixed_record: dict) -> None:
    root = _parse(build_facturx_xml(mixed_record, vat_breakdown="flat"))
    taxes = root.xpath(HEADER_SETTLEMENT + "/ram:ApplicableTradeTax", namespaces=NS)

    assert len(taxes) == 1
    assert _text(taxes[0], "ram:RateApplicablePercent") == "20"
    assert _text(taxes[0], "ram:BasisAmount") == "1200.00"
    assert _text(taxes[0], "ram:CalculatedAmount") == "211.00"


def test_single_rate_uses_invoice_totals(record: dict) -> None:
    breakdown = tax_breakdown(InvoiceRecord.from_mapping(record))

    assert breakdown == [(Decimal("20"), Decimal("1000"), Decimal("200"))]


def test_no_items_falls_back_to_default_rate() -> None:
    breakdown = tax_breakdown(InvoiceRecord.from_mapping({"totalHT": 100, "totalTTC": 110}))

    assert breakdown == [(Decimal("20"), Decimal("100"), Decimal("10"))]


def test_control_characters_do_not_break_generation(record: dict) -> None:
    record["buyerName"] = "Client\x0cSARL"
    record["items"][0]["designation"] = "Service\x00"
    xml = build_facturx_xml(record)
    root = _parse(xml)

    assert _text(root, "//ram:BuyerTradeParty/ram:Name") == "Client SARL"
    assert _text(root, "//ram:SpecifiedTradeProduct/ram:Name") == "Service"
    assert validate_xml_structure(xml).is_valid


@pytest.mark.parametrize("raw", ["1e30", 1e20, "-1e16"])
def test_out_of_range_amounts_are_dropped(record: dict, raw) -> None:
    record["totalHT"] = raw
    record["items"][0]["unitPrice"] = raw
    record["items"][0]["montantHT"] = raw
    root = _parse(build_facturx_xml(record))

    assert _text(root, MONETARY + "/ram:LineTotalAmount") == "0.00"
    assert _text(root, ".//ram:NetPriceProductTradePrice/ram:ChargeAmount") == "0.00"
