"""Factur-X Konformitätsprofile und Profilempfehlung.

Die Anforderungstabellen sind unveränderliche Modulkonstanten; jedes Profil
enthält die Pflichtfelder des nächstniedrigeren (minimum ⊂ basic ⊂ comfort ⊂
extended).
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Tuple

from .dto import InvoiceRecord, as_record


class ConformanceProfile(Enum):
    MINIMUM = "minimum"
    BASIC = "basic"
    COMFORT = "comfort"
    EXTENDED = "extended"

    @classmethod
    def parse(
        cls, value: "ConformanceProfile | str | None", default: "ConformanceProfile | None" = None
    ) -> "ConformanceProfile":
        """Unbekannte oder leere Werte fallen auf ``default`` (comfort) zurück."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return default or cls.COMFORT

    @property
    def guideline_id(self) -> str:
        return GUIDELINE_IDS[self]

    @property
    def conformance_level(self) -> str:
        """Wert für ``fx:ConformanceLevel`` in den XMP-Metadaten."""

        return self.value.upper()


GUIDELINE_IDS: Mapping[ConformanceProfile, str] = MappingProxyType(
    {
        ConformanceProfile.MINIMUM: "urn:factur-x.eu:1p0:minimum",
        ConformanceProfile.BASIC: "urn:factur-x.eu:1p0:basic",
        ConformanceProfile.COMFORT: "urn:factur-x.eu:1p0:comfort",
        ConformanceProfile.EXTENDED: "urn:factur-x.eu:1p0:extended",
    }
)

_MINIMUM_FIELDS: Tuple[str, ...] = (
    "invoiceNumber",
    "invoiceDate",
    "sellerName",
    "buyerName",
    "totalTTC",
    "currency",
)
_BASIC_FIELDS = _MINIMUM_FIELDS + ("totalHT",)
_COMFORT_FIELDS = _BASIC_FIELDS + ("sellerSIRET", "items")
_EXTENDED_FIELDS = _COMFORT_FIELDS + ("sellerVAT", "dueDate")

REQUIRED_FIELDS: Mapping[ConformanceProfile, Tuple[str, ...]] = MappingProxyType(
    {
        ConformanceProfile.MINIMUM: _MINIMUM_FIELDS,
        ConformanceProfile.BASIC: _BASIC_FIELDS,
        ConformanceProfile.COMFORT: _COMFORT_FIELDS,
        ConformanceProfile.EXTENDED: _EXTENDED_FIELDS,
    }
)

# Fehlen nur Warnung, kein Fehler.
RECOMMENDED_FIELDS: Mapping[ConformanceProfile, Tuple[str, ...]] = MappingProxyType(
    {
        ConformanceProfile.MINIMUM: (),
        ConformanceProfile.BASIC: ("sellerAddress", "buyerAddress"),
        ConformanceProfile.COMFORT: ("sellerAddress", "buyerAddress"),
        ConformanceProfile.EXTENDED: ("sellerAddress", "buyerAddress"),
    }
)

OPTIONAL_FIELDS: Mapping[ConformanceProfile, Tuple[str, ...]] = MappingProxyType(
    {
        ConformanceProfile.MINIMUM: ("totalHT", "totalTVA", "dueDate"),
        ConformanceProfile.BASIC: ("dueDate", "sellerSIRET", "buyerSIRET", "totalTVA"),
        ConformanceProfile.COMFORT: ("dueDate", "buyerSIRET", "sellerVAT", "buyerVAT", "totalTVA"),
        ConformanceProfile.EXTENDED: ("buyerSIRET", "buyerVAT", "paymentTerms", "totalTVA"),
    }
)


def recommend_profile(data: InvoiceRecord | Mapping[str, Any]) -> ConformanceProfile:
    """Empfiehlt das höchste Profil, das die Datenlage trägt."""

    record = as_record(data)
    has_items = bool(record.items)
    has_seller_id = bool(record.seller.siret)

    if has_items and has_seller_id and record.seller.vat_number and record.due_date:
        return ConformanceProfile.EXTENDED
    if has_items and has_seller_id:
        return ConformanceProfile.COMFORT
    if record.seller.address and record.buyer.address:
        return ConformanceProfile.BASIC
    return ConformanceProfile.MINIMUM
