"""Heuristische Zerlegung freier Postadressen (französisches Format)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

DEFAULT_COUNTRY = "FR"

_POSTCODE_CITY = re.compile(r"(\d{5})\s+(.+)")

COUNTRY_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "FRANCE": "FR",
        "GERMANY": "DE",
        "DEUTSCHLAND": "DE",
        "ALLEMAGNE": "DE",
        "BELGIQUE": "BE",
        "BELGIUM": "BE",
        "ESPAGNE": "ES",
        "SPAIN": "ES",
        "ITALIE": "IT",
        "ITALY": "IT",
        "SUISSE": "CH",
        "SWITZERLAND": "CH",
        "LUXEMBOURG": "LU",
    }
)


@dataclass(frozen=True, slots=True)
class PostalAddress:
    line_one: str = ""
    postcode: str = ""
    city: str = ""
    country: str = DEFAULT_COUNTRY


def parse_address(text: Optional[str]) -> PostalAddress:
    """Zerlegt ``"12 Rue de la Paix, 75002 Paris, France"`` in Einzelteile.

    Best-Effort: nicht erkannte Muster ergeben leere Felder, nie eine
    Exception. Für nicht-französische Formate ist das Ergebnis unzuverlässig.
    """

    if not text or not text.strip():
        return PostalAddress()

    parts = [part.strip() for part in text.split(",")]
    postcode = ""
    city = ""
    country = DEFAULT_COUNTRY

    if len(parts) >= 2:
        match = _POSTCODE_CITY.search(parts[1])
        if match:
            postcode, city = match.group(1), match.group(2).strip()

    if len(parts) >= 3:
        last = parts[-1].upper()
        if last in COUNTRY_NAMES:
            country = COUNTRY_NAMES[last]
        elif len(last) == 2 and last.isalpha():
            country = last

    return PostalAddress(line_one=parts[0], postcode=postcode, city=city, country=country)
