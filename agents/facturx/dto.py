"""Datentransferobjekte für Factur-X-Rechnungen.

``InvoiceRecord.from_mapping`` ist die Vertrauensgrenze zur Extraktion: lose
typisierte Datensätze (camelCase, Synonyme wie ``supplierName``, Beträge als
String oder Float) werden hier in stark typisierte, unveränderliche Objekte
überführt. Nicht interpretierbare Werte werden zu ``None`` – es wird nie eine
Exception geworfen. Beträge nutzen ``Decimal`` mit ``ROUND_HALF_UP``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

DecimalLike = Decimal | str | int | float

RECORD_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "invoiceNumber": ("invoice_number", "invoiceNo", "numeroFacture", "number"),
    "invoiceDate": ("invoice_date", "issueDate", "dateFacture", "date"),
    "dueDate": ("due_date", "dateEcheance"),
    "currency": ("devise",),
    "sellerName": ("seller_name", "supplierName", "vendorName", "fournisseur"),
    "sellerAddress": ("seller_address", "supplierAddress", "vendorAddress"),
    "sellerSIRET": ("sellerSiret", "seller_siret", "supplierSIRET", "siret"),
    "sellerVAT": ("sellerVat", "seller_vat", "supplierVAT", "sellerVatNumber"),
    "sellerCountry": ("seller_country", "supplierCountry"),
    "buyerName": ("buyer_name", "customerName", "clientName", "client"),
    "buyerAddress": ("buyer_address", "customerAddress", "clientAddress"),
    "buyerSIRET": ("buyerSiret", "buyer_siret", "customerSIRET"),
    "buyerVAT": ("buyerVat", "buyer_vat", "customerVAT"),
    "buyerCountry": ("buyer_country", "customerCountry"),
    "totalHT": ("total_ht", "totalNet", "netAmount"),
    "totalTVA": ("total_tva", "totalVAT", "taxAmount"),
    "totalTTC": ("total_ttc", "totalGross", "grossAmount", "total"),
    "items": ("lineItems", "lines", "lignes"),
    "paymentTerms": ("payment_terms", "conditionsPaiement"),
}

ITEM_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "designation": ("description", "libelle", "name"),
    "quantity": ("quantite", "qty"),
    "unitPrice": ("unit_price", "prixUnitaire", "price"),
    "discount": ("remise",),
    "vatRate": ("vat_rate", "tauxTVA", "taxRate"),
    "montantHT": ("montant_ht", "amountHT", "lineTotal"),
    "montantTTC": ("montant_ttc", "amountTTC"),
}

# Verschachtelte Parteien ({"seller": {"name": ...}}) werden flach gezogen.
_PARTY_KEYS: Mapping[str, str] = {
    "name": "Name",
    "address": "Address",
    "siret": "SIRET",
    "taxId": "SIRET",
    "vat": "VAT",
    "vatNumber": "VAT",
    "country": "Country",
}

_AMOUNT_NOISE = re.compile(r"[\s€$£]")
_FRENCH_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
# In XML 1.0 unzulässige Zeichen (Steuerzeichen, Surrogate, U+FFFE/U+FFFF)
_XML_ILLEGAL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

# Beträge ab 10^15 werden verworfen; Produkte bleiben so innerhalb von _MONEY_CONTEXT.
MAX_AMOUNT = Decimal("1e15")
_MONEY_CONTEXT = Context(prec=40, rounding=ROUND_HALF_UP)


def quantize_money(amount: DecimalLike) -> Decimal:
    """Rundet Beträge auf zwei Nachkommastellen (ROUND_HALF_UP)."""

    return Decimal(str(amount)).quantize(Decimal("0.01"), context=_MONEY_CONTEXT)


def _bounded(value: Decimal) -> Optional[Decimal]:
    if not value.is_finite() or abs(value) >= MAX_AMOUNT:
        return None
    return value


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """Konvertiere Eingaben tolerant in ``Decimal``; ``None`` bei Unsinn.

    Floats werden über ``str`` konvertiert, um binäre Rundungsfehler zu
    vermeiden. Französische Schreibweisen wie ``"1 000,50 €"`` werden erkannt.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _bounded(value)
    if isinstance(value, (int, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
        return _bounded(result)
    if isinstance(value, str):
        cleaned = _AMOUNT_NOISE.sub("", value)
        if not cleaned:
            return None
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return None
        return _bounded(result)
    return None


def coerce_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    match = _FRENCH_DATE.match(text)
    if match:
        day, month, year = match.groups()
        text = f"{year}-{month}-{day}"
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def clean_text(text: str) -> str:
    """Ersetzt in XML unzulässige Zeichen (z. B. Formfeed aus pdftotext) durch Leerzeichen."""

    return _XML_ILLEGAL.sub(" ", text)


def _coerce_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = clean_text(str(value)).strip()
    return text or None


def _apply_aliases(data: Mapping[str, Any], aliases: Mapping[str, Tuple[str, ...]]) -> Dict[str, Any]:
    known = {alias for names in aliases.values() for alias in names}
    result: Dict[str, Any] = {k: v for k, v in data.items() if k not in known}
    for canonical, names in aliases.items():
        if canonical in data:
            continue
        for alias in names:
            if alias in data:
                result[canonical] = data[alias]
                break
    return result


def normalize_record(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Bringt einen losen Datensatz auf die kanonischen camelCase-Schlüssel.

    Werte bleiben unverändert (keine Typkonvertierung), damit der
    Business-Validator falsch typisierte Felder noch melden kann.
    """

    flat: Dict[str, Any] = dict(data)
    for role in ("seller", "buyer"):
        nested = flat.get(role)
        if isinstance(nested, Mapping):
            flat.pop(role)
            for key, suffix in _PARTY_KEYS.items():
                target = f"{role}{suffix}"
                if key in nested and target not in flat:
                    flat[target] = nested[key]

    record = _apply_aliases(flat, RECORD_ALIASES)
    items = record.get("items")
    if isinstance(items, (list, tuple)):
        record["items"] = [
            _apply_aliases(item, ITEM_ALIASES) if isinstance(item, Mapping) else item
            for item in items
        ]
    return record


@dataclass(frozen=True, slots=True)
class Party:
    name: Optional[str] = None
    address: Optional[str] = None
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    country: Optional[str] = None

    @property
    def tax_id(self) -> Optional[str]:
        return self.siret or self.vat_number


@dataclass(frozen=True, slots=True)
class LineItem:
    designation: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    discount: Decimal = Decimal("0")
    vat_rate: Optional[Decimal] = None
    montant_ht: Optional[Decimal] = None
    montant_ttc: Optional[Decimal] = None

    def net_amount(self) -> Decimal:
        """Netto der Zeile; ohne ``montant_ht`` gilt Menge × Preis − Rabatt."""

        if self.montant_ht is not None:
            return self.montant_ht
        if self.quantity is None or self.unit_price is None:
            return Decimal("0")
        return quantize_money(self.quantity * self.unit_price - self.discount)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        data = _apply_aliases(data, ITEM_ALIASES)
        return cls(
            designation=_coerce_text(data.get("designation")),
            quantity=coerce_decimal(data.get("quantity")),
            unit_price=coerce_decimal(data.get("unitPrice")),
            discount=coerce_decimal(data.get("discount")) or Decimal("0"),
            vat_rate=coerce_decimal(data.get("vatRate")),
            montant_ht=coerce_decimal(data.get("montantHT")),
            montant_ttc=coerce_decimal(data.get("montantTTC")),
        )

    def to_mapping(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "designation": self.designation,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "discount": self.discount,
            "vatRate": self.vat_rate,
            "montantHT": self.montant_ht,
            "montantTTC": self.montant_ttc,
        }
        return {k: v for k, v in result.items() if v is not None}


@dataclass(frozen=True, slots=True)
class InvoiceRecord:
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: str = "EUR"
    seller: Party = field(default_factory=Party)
    buyer: Party = field(default_factory=Party)
    items: Tuple[LineItem, ...] = ()
    total_ht: Optional[Decimal] = None
    total_tva: Optional[Decimal] = None
    total_ttc: Optional[Decimal] = None
    payment_terms: Optional[str] = None

    def tax_total(self) -> Decimal:
        """Steuerbetrag; fehlt ``total_tva``, gilt TTC − HT."""

        if self.total_tva is not None:
            return self.total_tva
        return (self.total_ttc or Decimal("0")) - (self.total_ht or Decimal("0"))

    def lines_net_total(self) -> Decimal:
        return sum((item.net_amount() for item in self.items), Decimal("0"))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "InvoiceRecord":
        data = normalize_record(data)
        raw_items = data.get("items") or []
        items: Iterable[LineItem] = (
            LineItem.from_mapping(item) for item in raw_items if isinstance(item, Mapping)
        )

        def party(role: str) -> Party:
            country = _coerce_text(data.get(f"{role}Country"))
            return Party(
                name=_coerce_text(data.get(f"{role}Name")),
                address=_coerce_text(data.get(f"{role}Address")),
                siret=_coerce_text(data.get(f"{role}SIRET")),
                vat_number=_coerce_text(data.get(f"{role}VAT")),
                country=country.upper() if country else None,
            )

        currency = _coerce_text(data.get("currency"))
        return cls(
            invoice_number=_coerce_text(data.get("invoiceNumber")),
            invoice_date=coerce_date(data.get("invoiceDate")),
            due_date=coerce_date(data.get("dueDate")),
            currency=currency.upper() if currency else "EUR",
            seller=party("seller"),
            buyer=party("buyer"),
            items=tuple(items),
            total_ht=coerce_decimal(data.get("totalHT")),
            total_tva=coerce_decimal(data.get("totalTVA")),
            total_ttc=coerce_decimal(data.get("totalTTC")),
            payment_terms=_coerce_text(data.get("paymentTerms")),
        )

    def to_mapping(self) -> Dict[str, Any]:
        """Kanonischer camelCase-Datensatz (fehlende Felder entfallen)."""

        result: Dict[str, Any] = {
            "invoiceNumber": self.invoice_number,
            "invoiceDate": self.invoice_date.isoformat() if self.invoice_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "currency": self.currency,
            "paymentTerms": self.payment_terms,
            "totalHT": self.total_ht,
            "totalTVA": self.total_tva,
            "totalTTC": self.total_ttc,
        }
        for role, party in (("seller", self.seller), ("buyer", self.buyer)):
            result[f"{role}Name"] = party.name
            result[f"{role}Address"] = party.address
            result[f"{role}SIRET"] = party.siret
            result[f"{role}VAT"] = party.vat_number
            result[f"{role}Country"] = party.country
        mapping = {k: v for k, v in result.items() if v is not None}
        if self.items:
            mapping["items"] = [item.to_mapping() for item in self.items]
        return mapping


def as_record(data: InvoiceRecord | Mapping[str, Any]) -> InvoiceRecord:
    if isinstance(data, InvoiceRecord):
        return data
    return InvoiceRecord.from_mapping(data)
