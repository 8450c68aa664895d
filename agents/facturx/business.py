"""Fachliche Prüfung von Rechnungsdatensätzen gegen Factur-X-Profile.

Geprüft werden Pflichtfelder je Profil, Formatregeln, Positionen sowie
feldübergreifende Plausibilitäten (nur Warnungen). Fehler werden nie
geworfen, sondern als ``ValidationResult`` geliefert. Meldungstexte sind
französisch, da sie direkt in der Oberfläche erscheinen.

Score: ``N`` = Formatregeln + Pflichtfelder des Profils; je Fehler 1.0 und
je Warnung 0.3 Abzug, Ergebnis ``(N - Abzug) / N`` in Prozent, gerundet und
auf [0, 100] begrenzt.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, List, Mapping, Optional, Tuple

from .dto import InvoiceRecord, normalize_record
from .profiles import RECOMMENDED_FIELDS, REQUIRED_FIELDS, ConformanceProfile
from .results import SEVERITY_WARNING, ValidationIssue, ValidationResult

ERROR_WEIGHT = Decimal("1")
WARNING_WEIGHT = Decimal("0.3")
AMOUNT_TOLERANCE = Decimal("0.01")

_SIRET = re.compile(r"^\d{14}$")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TAX_ID = re.compile(r"^(\d{14}|[A-Z]{2}[0-9A-Z]{9,13})$")
_EU_VAT = re.compile(r"^[A-Z]{2}[0-9A-Z]{2,12}$")
_FR_VAT = re.compile(r"^FR([0-9A-Z]{2})(\d{9})$")
_CURRENCY = re.compile(r"^[A-Z]{3}$")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    return Decimal(str(value)).is_finite()


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def _text(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _matches(pattern: re.Pattern[str]) -> Callable[[Any], bool]:
    return lambda value: bool(pattern.match(_text(value)))


def _non_negative(value: Any) -> bool:
    return _is_number(value) and _decimal(value) >= 0


def _valid_date(value: Any) -> bool:
    return _parse_date(value) is not None


@dataclass(frozen=True)
class FormatRule:
    field: str
    check: Callable[[Any], bool]
    message: str


FORMAT_RULES: Tuple[FormatRule, ...] = (
    FormatRule(
        "invoiceNumber",
        lambda v: 1 <= len(_text(v)) <= 100,
        "Le numero de facture doit contenir entre 1 et 100 caracteres",
    ),
    FormatRule(
        "invoiceDate", _valid_date, "La date de facture doit etre au format AAAA-MM-JJ"
    ),
    FormatRule("dueDate", _valid_date, "La date d'echeance doit etre au format AAAA-MM-JJ"),
    FormatRule(
        "sellerSIRET",
        _matches(_TAX_ID),
        "Le SIRET vendeur doit contenir 14 chiffres ou un numero de TVA valide",
    ),
    FormatRule(
        "buyerSIRET",
        _matches(_TAX_ID),
        "Le SIRET acheteur doit contenir 14 chiffres ou un numero de TVA valide",
    ),
    FormatRule(
        "sellerVAT",
        _matches(_EU_VAT),
        "Le numero de TVA vendeur doit commencer par un code pays (ex: FR12345678901)",
    ),
    FormatRule(
        "buyerVAT",
        _matches(_EU_VAT),
        "Le numero de TVA acheteur doit commencer par un code pays (ex: FR12345678901)",
    ),
    FormatRule("currency", _matches(_CURRENCY), "La devise doit etre un code ISO 4217 (ex: EUR, USD)"),
    FormatRule("totalHT", _non_negative, "Le total HT doit etre un nombre positif"),
    FormatRule("totalTTC", _non_negative, "Le total TTC doit etre un nombre positif"),
)

ITEM_RULES: Tuple[FormatRule, ...] = (
    FormatRule(
        "quantity",
        lambda v: _is_number(v) and _decimal(v) > 0,
        "La quantite doit etre un nombre positif",
    ),
    FormatRule(
        "unitPrice",
        _non_negative,
        "Le prix unitaire doit etre un nombre positif ou zero",
    ),
    FormatRule(
        "vatRate",
        lambda v: _is_number(v) and 0 <= _decimal(v) <= 100,
        "Le taux de TVA doit etre entre 0 et 100",
    ),
)


def validate_siret_checksum(siret: str) -> bool:
    """Luhn-Prüfung eines 14-stelligen SIRET (gerade Positionen verdoppelt)."""

    cleaned = re.sub(r"\s", "", siret or "")
    if not _SIRET.match(cleaned):
        return False
    total = 0
    for index, char in enumerate(cleaned):
        digit = int(char)
        if index % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_french_vat(vat: str) -> bool:
    """Prüft den Schlüssel einer FR-USt-IdNr: ``(12 + 3 * (SIREN % 97)) % 97``.

    Alphanumerische Schlüssel (neues Format) werden ohne Prüfung akzeptiert.
    """

    cleaned = re.sub(r"\s", "", vat or "").upper()
    match = _FR_VAT.match(cleaned)
    if not match:
        return False
    key, siren = match.groups()
    if not key.isdigit():
        return True
    return int(key) == (12 + 3 * (int(siren) % 97)) % 97


def _is_missing(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _line_net(item: Mapping[str, Any]) -> Decimal:
    montant = item.get("montantHT")
    if _is_number(montant) and _decimal(montant) != 0:
        return _decimal(montant)
    quantity, price = item.get("quantity"), item.get("unitPrice")
    if _is_number(quantity) and _is_number(price):
        return _decimal(quantity) * _decimal(price)
    return Decimal("0")


def _score(checked: int, errors: int, warnings: int) -> int:
    deductions = ERROR_WEIGHT * errors + WARNING_WEIGHT * warnings
    ratio = (Decimal(checked) - deductions) / Decimal(checked) * 100
    score = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, score))


def _check_items(items: Any, errors: List[ValidationIssue]) -> None:
    if not isinstance(items, (list, tuple)):
        return
    for index, item in enumerate(items):
        prefix = f"items[{index}]"
        if not isinstance(item, Mapping):
            errors.append(ValidationIssue(prefix, "L'article doit etre un objet"))
            continue
        if _is_missing(item.get("designation")):
            errors.append(
                ValidationIssue(f"{prefix}.designation", "La designation de l'article est requise")
            )
        for rule in ITEM_RULES:
            value = item.get(rule.field)
            if value is not None and not rule.check(value):
                errors.append(ValidationIssue(f"{prefix}.{rule.field}", rule.message))


def _check_consistency(data: Mapping[str, Any], warnings: List[ValidationIssue]) -> None:
    total_ht, total_ttc, total_tva = data.get("totalHT"), data.get("totalTTC"), data.get("totalTVA")

    if _is_number(total_ht) and _is_number(total_ttc):
        if _decimal(total_ttc) < _decimal(total_ht):
            warnings.append(
                ValidationIssue(
                    "totalTTC",
                    "Le total TTC est inferieur au total HT (TVA negative?)",
                    SEVERITY_WARNING,
                )
            )
        if _is_number(total_tva):
            expected = _decimal(total_ht) + _decimal(total_tva)
            if abs(expected - _decimal(total_ttc)) > AMOUNT_TOLERANCE:
                warnings.append(
                    ValidationIssue(
                        "totalTVA",
                        f"Le total HT + TVA ({expected:.2f}) ne correspond pas au total TTC "
                        f"({_decimal(total_ttc):.2f})",
                        SEVERITY_WARNING,
                    )
                )

    invoice_date, due_date = _parse_date(data.get("invoiceDate")), _parse_date(data.get("dueDate"))
    if invoice_date and due_date and due_date < invoice_date:
        warnings.append(
            ValidationIssue(
                "dueDate",
                "La date d'echeance est anterieure a la date de facture",
                SEVERITY_WARNING,
            )
        )

    seller_siret = data.get("sellerSIRET")
    if isinstance(seller_siret, str) and _SIRET.match(seller_siret):
        if not validate_siret_checksum(seller_siret):
            warnings.append(
                ValidationIssue(
                    "sellerSIRET",
                    "Le numero SIRET vendeur semble invalide (checksum incorrecte)",
                    SEVERITY_WARNING,
                )
            )

    for field_name in ("sellerVAT", "buyerVAT"):
        vat = data.get(field_name)
        if isinstance(vat, str) and _FR_VAT.match(vat) and not validate_french_vat(vat):
            warnings.append(
                ValidationIssue(
                    field_name,
                    "La cle du numero de TVA francais semble incorrecte",
                    SEVERITY_WARNING,
                )
            )

    items = data.get("items")
    if isinstance(items, (list, tuple)) and items and _is_number(total_ht):
        calculated = sum(
            (_line_net(item) for item in items if isinstance(item, Mapping)), Decimal("0")
        )
        if abs(calculated - _decimal(total_ht)) > AMOUNT_TOLERANCE:
            warnings.append(
                ValidationIssue(
                    "totalHT",
                    f"Le total HT ({total_ht}) ne correspond pas a la somme des lignes "
                    f"({calculated:.2f})",
                    SEVERITY_WARNING,
                )
            )


def validate_invoice_data(
    data: InvoiceRecord | Mapping[str, Any],
    profile: ConformanceProfile | str | None = ConformanceProfile.COMFORT,
) -> ValidationResult:
    """Prüft einen (ggf. unvollständigen) Datensatz gegen ein Profil.

    Unbekannte Profilnamen werden wie ``comfort`` behandelt. ``is_valid`` ist
    genau dann wahr, wenn keine Fehler vorliegen; Warnungen blockieren nie.
    """

    profile = ConformanceProfile.parse(profile)
    raw = data.to_mapping() if isinstance(data, InvoiceRecord) else (data or {})
    record = normalize_record(raw)
    if record.get("currency") is None:
        record["currency"] = "EUR"

    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    required = REQUIRED_FIELDS[profile]

    for field_name in required:
        value = record.get(field_name)
        if field_name == "items":
            if not isinstance(value, (list, tuple)) or not value:
                errors.append(ValidationIssue("items", "Au moins un article est requis"))
        elif _is_missing(value):
            errors.append(
                ValidationIssue(
                    field_name,
                    f'Le champ "{field_name}" est requis pour le profil {profile.value}',
                )
            )

    for field_name in RECOMMENDED_FIELDS[profile]:
        if _is_missing(record.get(field_name)):
            warnings.append(
                ValidationIssue(
                    field_name,
                    f'Le champ "{field_name}" est recommande pour le profil {profile.value}',
                    SEVERITY_WARNING,
                )
            )

    for rule in FORMAT_RULES:
        value = record.get(rule.field)
        if value is None or value == "":
            continue
        if not rule.check(value):
            errors.append(ValidationIssue(rule.field, rule.message))

    _check_items(record.get("items"), errors)
    _check_consistency(record, warnings)

    checked = len(FORMAT_RULES) + len(required)
    return ValidationResult(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        score=_score(checked, len(errors), len(warnings)),
        profile=profile.value,
        checked_fields=checked,
    )
