"""Deterministische Beispieldatensätze für Factur-X Tests & CLI.

Die Funktionen liefern bei jedem Aufruf frische Mappings in der losen
Extraktionsform (camelCase), damit Tests sie gefahrlos verändern können.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, Tuple

SELLER_SIRET = "73282932000074"
SELLER_VAT = "FR44732829320"
BUYER_SIRET = "55210055400013"


def comfort_record() -> Dict[str, Any]:
    """Comfort-fähiger Datensatz ohne Adressen (nur Adress-Warnungen)."""

    return {
        "invoiceNumber": "INV-001",
        "invoiceDate": "2025-01-15",
        "sellerName": "ACME",
        "sellerSIRET": SELLER_SIRET,
        "buyerName": "Client SARL",
        "totalHT": 1000,
        "totalTTC": 1200,
        "items": [
            {
                "designation": "Service",
                "quantity": 1,
                "unitPrice": 1000,
                "vatRate": 20,
                "montantHT": 1000,
            }
        ],
    }


def extended_record() -> Dict[str, Any]:
    return {
        "invoiceNumber": "FX-2025-0042",
        "invoiceDate": "2025-03-01",
        "dueDate": "2025-03-31",
        "currency": "EUR",
        "sellerName": "ACME Industries SAS",
        "sellerAddress": "12 rue de la Paix, 75002 Paris, France",
        "sellerSIRET": SELLER_SIRET,
        "sellerVAT": SELLER_VAT,
        "buyerName": "Client SARL",
        "buyerAddress": "5 avenue Jean Jaures, 69007 Lyon",
        "buyerSIRET": BUYER_SIRET,
        "totalHT": 1500,
        "totalTVA": 300,
        "totalTTC": 1800,
        "paymentTerms": "Paiement a 30 jours",
        "items": [
            {
                "designation": "Audit",
                "quantity": 2,
                "unitPrice": 500,
                "vatRate": 20,
                "montantHT": 1000,
                "montantTTC": 1200,
            },
            {
                "designation": "Formation",
                "quantity": 1,
                "unitPrice": 500,
                "vatRate": 20,
                "montantHT": 500,
                "montantTTC": 600,
            },
        ],
    }


def mixed_vat_record() -> Dict[str, Any]:
    """Zwei Steuersätze (20 % und 5,5 %)."""

    return {
        "invoiceNumber": "FX-2025-0100",
        "invoiceDate": "2025-04-10",
        "dueDate": "2025-05-10",
        "sellerName": "Librairie du Centre",
        "sellerAddress": "3 place Bellecour, 69002 Lyon",
        "sellerSIRET": SELLER_SIRET,
        "buyerName": "Ecole Saint-Exupery",
        "buyerAddress": "8 rue Victor Hugo, 33000 Bordeaux",
        "totalHT": 1200,
        "totalTVA": 211,
        "totalTTC": 1411,
        "items": [
            {"designation": "Materiel informatique", "quantity": 1, "unitPrice": 1000, "vatRate": 20},
            {"designation": "Manuels scolaires", "quantity": 10, "unitPrice": 20, "vatRate": 5.5},
        ],
    }


def minimum_record() -> Dict[str, Any]:
    return {
        "invoiceNumber": "MIN-7",
        "invoiceDate": "2025-02-01",
        "sellerName": "Artisan Dupont",
        "buyerName": "M. Martin",
        "totalTTC": 240,
    }


SAMPLES: Dict[str, Callable[[], Dict[str, Any]]] = {
    "comfort": comfort_record,
    "extended": extended_record,
    "mixed_vat": mixed_vat_record,
    "minimum": minimum_record,
}


def iter_samples() -> Iterator[Tuple[str, Dict[str, Any]]]:
    for code, factory in SAMPLES.items():
        yield code, factory()
