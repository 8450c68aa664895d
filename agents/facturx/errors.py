"""Fehlerklassen für PDF/A-3-Einbettung und XML-Extraktion.

Validierungsfehler werden nie geworfen, sondern als Ergebnisobjekte geliefert.
Nur die PDF-Verarbeitung darf hart scheitern, da es kein sinnvolles
Teilergebnis gibt.
"""

from __future__ import annotations

from typing import Optional


class FacturXError(Exception):
    """Basisklasse aller Factur-X-Fehler."""


class EmbeddingError(FacturXError):
    """XML konnte nicht in das PDF eingebettet werden."""

    def __init__(self, message: str, *, stage: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is not None:
            return f"[{self.stage}] {base}: {self.cause}"
        return f"[{self.stage}] {base}"


class SourcePdfError(EmbeddingError):
    """Das Quell-PDF ist defekt, passwortgeschützt oder kein PDF."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, stage="load", cause=cause)


class ExtractionError(FacturXError):
    """Kein Factur-X-Anhang im PDF gefunden oder PDF nicht lesbar."""
