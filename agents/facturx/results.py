"""Ergebnisobjekte der Validierung (Wertobjekte, werden nicht persistiert)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    field: str
    message: str
    severity: str = SEVERITY_ERROR

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "severity": self.severity}


@dataclass(frozen=True)
class ValidationResult:
    """Ergebnis der fachlichen Prüfung eines Rechnungsdatensatzes.

    ``score`` ist ein heuristisches Vollständigkeitssignal (0–100), keine
    zertifizierte Konformitätsbewertung. Schwellenwerte (z. B. Download erst
    ab 70) legt der Aufrufer fest.
    """

    is_valid: bool
    errors: Tuple[ValidationIssue, ...]
    warnings: Tuple[ValidationIssue, ...]
    score: int
    profile: str
    checked_fields: int

    @property
    def issues(self) -> Tuple[ValidationIssue, ...]:
        return self.errors + self.warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "score": self.score,
            "profile": self.profile,
            "summary": {
                "errorsCount": len(self.errors),
                "warningsCount": len(self.warnings),
                "checkedFields": self.checked_fields,
            },
        }


@dataclass(frozen=True)
class XmlValidationResult:
    is_valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    # None, wenn die Wurzel fehlt oder das XML nicht parsebar ist
    structure: Optional[Dict[str, bool]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "isValid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
        }
        if self.structure is not None:
            result["structure"] = dict(self.structure)
        return result
