"""JSON structured logging with mandatory fields and PII redaction."""
import json
import logging
import re
import sys
import threading
from datetime import UTC, datetime
from typing import Optional, TextIO

from backend.core.config import settings

# Thread-local storage for context
_context = threading.local()

_RESERVED_ATTRS = frozenset(
    (
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
        'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
        'processName', 'process', 'message', 'taskName',
    )
)


class JSONFormatter(logging.Formatter):
    """JSON formatter with mandatory fields and PII redaction."""

    def __init__(self):
        super().__init__()
        # PII patterns
        self.iban_pattern = re.compile(r'\b([A-Z]{2}\d{2}[A-Z0-9]{11,30})\b')
        self.email_pattern = re.compile(r'(\b\S+@\S+\.\S+\b)')
        # SIRET (14) and SIREN (9), optionally grouped with spaces
        self.siret_pattern = re.compile(r'\b(\d{3} ?\d{3} ?\d{3}(?: ?\d{5})?)\b')

    def _redact_pii(self, text: str) -> str:
        """Redact PII from text."""
        if not isinstance(text, str):
            return text

        text = self.iban_pattern.sub(self._mask_iban, text)
        text = self.email_pattern.sub(self._mask_email, text)
        text = self.siret_pattern.sub(self._mask_siret, text)

        return text

    def _mask_iban(self, match) -> str:
        """Mask IBAN: show first 2 chars, mask the rest."""
        iban = match.group(1)
        return iban[:2] + "*" * (len(iban) - 2)

    def _mask_email(self, match) -> str:
        """Mask email: show first char of user, keep domain."""
        email = match.group(1)
        if "@" not in email:
            return email
        user, domain = email.split("@", 1)
        masked_user = "*" if len(user) <= 1 else user[0] + "*" * (len(user) - 1)
        return f"{masked_user}@{domain}"

    def _mask_siret(self, match) -> str:
        """Mask company identifiers: keep the last 4 digits."""
        digits = match.group(1).replace(" ", "")
        return "*" * (len(digits) - 4) + digits[-4:]

    def format(self, record):
        """Format log record as JSON with mandatory fields and PII redaction."""
        trace_id = getattr(_context, 'trace_id', None) or 'unknown'
        request_id = getattr(_context, 'request_id', None)

        log_entry = {
            'trace_id': trace_id,
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': self._redact_pii(record.getMessage()),
            'ts_utc': datetime.now(UTC).isoformat().replace('+00:00', 'Z'),
        }

        if request_id:
            log_entry['request_id'] = request_id

        if record.exc_info:
            log_entry['exc_info'] = self.formatException(record.exc_info)

        # Extra fields (with PII redaction)
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in log_entry:
                continue
            if isinstance(value, str):
                value = self._redact_pii(value)
            log_entry[key] = value

        return json.dumps(log_entry, default=str)


def set_trace_id(trace_id: Optional[str]) -> None:
    """Set trace ID for current thread context."""
    _context.trace_id = trace_id


def get_trace_id() -> Optional[str]:
    """Return the trace ID of the current thread context, if any."""
    return getattr(_context, 'trace_id', None)


def set_request_id(request_id: Optional[str]) -> None:
    """Set request ID for current thread context."""
    _context.request_id = request_id


def init_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Initialize JSON logging on the root logger (stdout unless ``stream`` is given)."""
    logger = logging.getLogger()
    level_name = (level or settings.log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get logger with JSON formatting."""
    return logging.getLogger(name)
