"""Factur-X Generator – UN/CEFACT Cross Industry Invoice (CII) via lxml.

Erzeugt aus einem ``InvoiceRecord`` das CII-XML (Namespaces ``:100``) für das
gewünschte Konformitätsprofil. Die Ausgabe ist deterministisch: außer dem
Rechnungsdatum werden keine Zeitstempel geschrieben. Unvollständige Daten
führen nie zu einer Exception, sondern zu einem wohlgeformten, aber
unvollständigen Dokument – die fachliche Prüfung übernimmt
``validate_invoice_data`` vorab.

Elementreihenfolge folgt dem CII-XSD (Positionen vor den Header-Blöcken).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lxml import etree

from backend.core.config import settings

from .address import parse_address
from .dto import InvoiceRecord, LineItem, Party, as_record, quantize_money
from .profiles import ConformanceProfile

RSM_NS = "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100"
RAM_NS = "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100"
UDT_NS = "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100"
NSMAP = {"rsm": RSM_NS, "ram": RAM_NS, "udt": UDT_NS}

INVOICE_TYPE_CODE = "380"
DATE_FORMAT_CODE = "102"
UNIT_CODE_PIECE = "C62"
VAT_CATEGORY_STANDARD = "S"
TAX_REGISTRATION_SCHEME = "VA"
DEFAULT_VAT_RATE = Decimal("20")
UNKNOWN_INVOICE_NUMBER = "UNKNOWN"

VAT_BREAKDOWN_BY_RATE = "by_rate"
VAT_BREAKDOWN_FLAT = "flat"

GENERATOR_VERSION = "facturx-cii-1.1.0"


def version() -> str:
    """Gibt die Generator-Version zurück."""

    return GENERATOR_VERSION


def _rsm(tag: str) -> str:
    return f"{{{RSM_NS}}}{tag}"


def _ram(tag: str) -> str:
    return f"{{{RAM_NS}}}{tag}"


def _udt(tag: str) -> str:
    return f"{{{UDT_NS}}}{tag}"


def _sub(parent: etree._Element, tag: str, text: Optional[str] = None, **attrib: str) -> etree._Element:
    element = etree.SubElement(parent, tag, attrib)
    if text is not None:
        element.text = text
    return element


def _format_amount(value: Optional[Decimal]) -> str:
    return f"{quantize_money(value or Decimal('0')):.2f}"


def _format_number(value: Decimal) -> str:
    # 1 -> "1", 5.50 -> "5.5"
    return format(value.normalize(), "f")


def _format_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def _date_element(parent: etree._Element, tag: str, value: date) -> None:
    holder = _sub(parent, _ram(tag))
    _sub(holder, _udt("DateTimeString"), _format_date(value), format=DATE_FORMAT_CODE)


def _render_party(parent: etree._Element, tag: str, party: Party) -> None:
    node = _sub(parent, _ram(tag))
    _sub(node, _ram("Name"), party.name or "")

    address = parse_address(party.address)
    postal = _sub(node, _ram("PostalTradeAddress"))
    if address.postcode:
        _sub(postal, _ram("PostcodeCode"), address.postcode)
    _sub(postal, _ram("LineOne"), address.line_one)
    if address.city:
        _sub(postal, _ram("CityName"), address.city)
    _sub(postal, _ram("CountryID"), party.country or address.country)

    if party.tax_id:
        registration = _sub(node, _ram("SpecifiedTaxRegistration"))
        _sub(registration, _ram("ID"), party.tax_id, schemeID=TAX_REGISTRATION_SCHEME)


def _render_trade_tax(
    parent: etree._Element,
    rate: Decimal,
    *,
    basis: Optional[Decimal] = None,
    calculated: Optional[Decimal] = None,
) -> None:
    tax = _sub(parent, _ram("ApplicableTradeTax"))
    if calculated is not None:
        _sub(tax, _ram("CalculatedAmount"), _format_amount(calculated))
    _sub(tax, _ram("TypeCode"), "VAT")
    if basis is not None:
        _sub(tax, _ram("BasisAmount"), _format_amount(basis))
    _sub(tax, _ram("CategoryCode"), VAT_CATEGORY_STANDARD)
    _sub(tax, _ram("RateApplicablePercent"), _format_number(rate))


def _line_rate(item: LineItem) -> Decimal:
    return item.vat_rate if item.vat_rate is not None else DEFAULT_VAT_RATE


def tax_breakdown(record: InvoiceRecord, mode: str = VAT_BREAKDOWN_BY_RATE) -> List[Tuple[Decimal, Decimal, Decimal]]:
    """Liefert ``(rate, basis, calculated)`` je Header-Steuerblock.

    ``flat`` bildet das Altverhalten ab: ein Block zu 20 % auf ``totalHT``.
    ``by_rate`` gruppiert nach den Zeilensätzen; bei nur einem Satz gelten die
    Kopfsummen der Rechnung.
    """

    total_ht = record.total_ht or Decimal("0")
    if mode == VAT_BREAKDOWN_FLAT or not record.items:
        return [(DEFAULT_VAT_RATE, total_ht, record.tax_total())]

    groups: Dict[Decimal, Decimal] = {}
    for item in record.items:
        rate = _line_rate(item)
        groups[rate] = groups.get(rate, Decimal("0")) + item.net_amount()

    if len(groups) == 1:
        (rate,) = groups
        basis = record.total_ht if record.total_ht is not None else groups[rate]
        return [(rate, basis, record.tax_total())]

    return [
        (rate, basis, quantize_money(basis * rate / Decimal("100")))
        for rate, basis in sorted(groups.items())
    ]


def _render_line(parent: etree._Element, index: int, item: LineItem) -> None:
    line = _sub(parent, _ram("IncludedSupplyChainTradeLineItem"))
    document = _sub(line, _ram("AssociatedDocumentLineDocument"))
    _sub(document, _ram("LineID"), str(index))

    product = _sub(line, _ram("SpecifiedTradeProduct"))
    _sub(product, _ram("Name"), item.designation or "Item")

    agreement = _sub(line, _ram("SpecifiedLineTradeAgreement"))
    price = _sub(agreement, _ram("NetPriceProductTradePrice"))
    _sub(price, _ram("ChargeAmount"), _format_amount(item.unit_price))

    delivery = _sub(line, _ram("SpecifiedLineTradeDelivery"))
    quantity = item.quantity if item.quantity is not None else Decimal("1")
    _sub(delivery, _ram("BilledQuantity"), _format_number(quantity), unitCode=UNIT_CODE_PIECE)

    settlement = _sub(line, _ram("SpecifiedLineTradeSettlement"))
    _render_trade_tax(settlement, _line_rate(item))
    summation = _sub(settlement, _ram("SpecifiedTradeSettlementLineMonetarySummation"))
    _sub(summation, _ram("LineTotalAmount"), _format_amount(item.net_amount()))


def build_facturx_tree(
    data: InvoiceRecord | Mapping[str, Any],
    profile: ConformanceProfile | str | None = ConformanceProfile.COMFORT,
    *,
    vat_breakdown: Optional[str] = None,
) -> etree._Element:
    """Baut den CII-Baum; siehe ``build_facturx_xml``."""

    record = as_record(data)
    profile = ConformanceProfile.parse(profile)
    mode = vat_breakdown or settings.FACTURX_VAT_BREAKDOWN

    invoice_date = record.invoice_date or date.today()
    due_date = record.due_date or invoice_date
    currency = record.currency or "EUR"

    root = etree.Element(_rsm("CrossIndustryInvoice"), nsmap=NSMAP)

    context = _sub(root, _rsm("ExchangedDocumentContext"))
    guideline = _sub(context, _ram("GuidelineSpecifiedDocumentContextParameter"))
    _sub(guideline, _ram("ID"), profile.guideline_id)

    exchanged = _sub(root, _rsm("ExchangedDocument"))
    _sub(exchanged, _ram("ID"), record.invoice_number or UNKNOWN_INVOICE_NUMBER)
    _sub(exchanged, _ram("TypeCode"), INVOICE_TYPE_CODE)
    _date_element(exchanged, "IssueDateTime", invoice_date)

    transaction = _sub(root, _rsm("SupplyChainTradeTransaction"))
    for index, item in enumerate(record.items, start=1):
        _render_line(transaction, index, item)

    agreement = _sub(transaction, _ram("ApplicableHeaderTradeAgreement"))
    _render_party(agreement, "SellerTradeParty", record.seller)
    _render_party(agreement, "BuyerTradeParty", record.buyer)

    delivery = _sub(transaction, _ram("ApplicableHeaderTradeDelivery"))
    event = _sub(delivery, _ram("ActualDeliverySupplyChainEvent"))
    _date_element(event, "OccurrenceDateTime", invoice_date)

    settlement = _sub(transaction, _ram("ApplicableHeaderTradeSettlement"))
    _sub(settlement, _ram("InvoiceCurrencyCode"), currency)
    for rate, basis, calculated in tax_breakdown(record, mode):
        _render_trade_tax(settlement, rate, basis=basis, calculated=calculated)

    terms = _sub(settlement, _ram("SpecifiedTradePaymentTerms"))
    if record.payment_terms:
        _sub(terms, _ram("Description"), record.payment_terms)
    _date_element(terms, "DueDateDateTime", due_date)

    monetary = _sub(settlement, _ram("SpecifiedTradeSettlementHeaderMonetarySummation"))
    _sub(monetary, _ram("LineTotalAmount"), _format_amount(record.total_ht))
    _sub(monetary, _ram("TaxBasisTotalAmount"), _format_amount(record.total_ht))
    _sub(monetary, _ram("TaxTotalAmount"), _format_amount(record.tax_total()), currencyID=currency)
    _sub(monetary, _ram("GrandTotalAmount"), _format_amount(record.total_ttc))
    _sub(monetary, _ram("DuePayableAmount"), _format_amount(record.total_ttc))

    return root


def build_facturx_xml(
    data: InvoiceRecord | Mapping[str, Any],
    profile: ConformanceProfile | str | None = ConformanceProfile.COMFORT,
    *,
    vat_breakdown: Optional[str] = None,
) -> str:
    """Erzeugt das Factur-X-XML (UTF-8, eingerückt) als String.

    ``vat_breakdown`` überschreibt ``settings.FACTURX_VAT_BREAKDOWN``
    (``by_rate`` oder ``flat``).
    """

    root = build_facturx_tree(data, profile, vat_breakdown=vat_breakdown)
    xml_bytes = etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)
    return xml_bytes.decode("utf-8")
