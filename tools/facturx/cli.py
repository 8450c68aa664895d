"""Factur-X CLI: Prüfen, Erzeugen, Einbetten und Extrahieren.

Beispiele::

    python -m tools.facturx.cli validate invoice.json --profile comfort
    python -m tools.facturx.cli convert invoice.json --pdf scan.pdf --output out.pdf
    python -m tools.facturx.cli extract out.pdf
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Mapping

from agents.facturx import (
    ConformanceProfile,
    CsvExporter,
    CsvItemsExporter,
    EmbeddingError,
    ExportableInvoice,
    FacturXError,
    as_record,
    build_facturx_xml,
    convert_invoice,
    embed_xml_in_pdf,
    extract_xml_from_pdf,
    recommend_profile,
    status_for,
    validate_invoice_data,
    validate_xml_structure,
)
from backend.core.config import settings
from backend.core.observability import init_observability, set_trace_id

PROFILE_CHOICES = [profile.value for profile in ConformanceProfile]
EXIT_INVALID = 1
EXIT_FAILURE = 2


def _iso_datetime(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _load_record(path: Path) -> Mapping[str, Any]:
    data = _load_json(path)
    if not isinstance(data, Mapping):
        raise ValueError(f"{path}: expected a JSON object")
    return data


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _write_or_print(text: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(text)
        return
    output.write_text(text, encoding="utf-8")


def cmd_validate(args: argparse.Namespace) -> int:
    result = validate_invoice_data(_load_record(args.record), args.profile)
    _emit_json(result.to_dict())
    return 0 if result.is_valid else EXIT_INVALID


def cmd_recommend(args: argparse.Namespace) -> int:
    print(recommend_profile(_load_record(args.record)).value)
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    xml = build_facturx_xml(
        _load_record(args.record), args.profile, vat_breakdown=args.vat_breakdown
    )
    _write_or_print(xml, args.output)
    return 0


def cmd_validate_xml(args: argparse.Namespace) -> int:
    result = validate_xml_structure(args.xml.read_bytes(), schema_path=args.xsd)
    _emit_json(result.to_dict())
    return 0 if result.is_valid else EXIT_INVALID


def cmd_embed(args: argparse.Namespace) -> int:
    pdf = embed_xml_in_pdf(
        args.pdf.read_bytes(),
        args.xml.read_bytes(),
        args.invoice_no,
        profile=args.profile,
        now=_iso_datetime(args.now) if args.now else None,
    )
    args.output.write_bytes(pdf)
    print(f"PDF/A-3 written to {args.output}")
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    document = convert_invoice(
        _load_record(args.record),
        profile=args.profile,
        pdf_bytes=args.pdf.read_bytes() if args.pdf else None,
        now=_iso_datetime(args.now) if args.now else None,
    )
    if document.pdf is None:
        raise EmbeddingError("conversion produced no PDF", stage="embed")
    args.output.write_bytes(document.pdf)
    if args.xml_output:
        args.xml_output.write_text(document.xml, encoding="utf-8")
    summary = document.to_dict()
    summary.pop("xml")
    summary["output"] = str(args.output)
    _emit_json(summary)
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    _write_or_print(extract_xml_from_pdf(args.pdf.read_bytes()), args.output)
    return 0


def _exportables(paths: Iterable[Path], profile: str | None) -> List[ExportableInvoice]:
    invoices: List[ExportableInvoice] = []
    for path in paths:
        data = _load_json(path)
        records = data if isinstance(data, list) else [data]
        for raw in records:
            record = as_record(raw)
            target = ConformanceProfile.parse(profile) if profile else recommend_profile(record)
            invoices.append(
                ExportableInvoice(
                    invoice_number=record.invoice_number,
                    extracted_data=record,
                    status=status_for(validate_invoice_data(raw, target)),
                    profile=target.value,
                )
            )
    return invoices


def cmd_export(args: argparse.Namespace) -> int:
    exporter = CsvItemsExporter() if args.format == "items" else CsvExporter()
    text = exporter.render(_exportables(args.records, args.profile))
    _write_or_print(text + "\n", args.output)
    return 0


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Factur-X tooling")
    parser.add_argument("--log-level", default=None, help="Log level (default: settings.log_level)")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Validate an invoice record (JSON)")
    validate.add_argument("record", type=Path)
    validate.add_argument("--profile", choices=PROFILE_CHOICES, default=settings.FACTURX_DEFAULT_PROFILE)
    validate.set_defaults(func=cmd_validate)

    recommend = sub.add_parser("recommend", help="Recommend a conformance profile")
    recommend.add_argument("record", type=Path)
    recommend.set_defaults(func=cmd_recommend)

    generate = sub.add_parser("generate", help="Generate Factur-X XML")
    generate.add_argument("record", type=Path)
    generate.add_argument("--profile", choices=PROFILE_CHOICES, default=settings.FACTURX_DEFAULT_PROFILE)
    generate.add_argument("--vat-breakdown", choices=["by_rate", "flat"], default=None)
    generate.add_argument("--output", type=Path, help="Target file (default: stdout)")
    generate.set_defaults(func=cmd_generate)

    validate_xml = sub.add_parser("validate-xml", help="Check the structure of a Factur-X XML")
    validate_xml.add_argument("xml", type=Path)
    validate_xml.add_argument("--xsd", default=None, help="Optional XSD for schema validation")
    validate_xml.set_defaults(func=cmd_validate_xml)

    embed = sub.add_parser("embed", help="Embed an XML into a PDF (PDF/A-3)")
    embed.add_argument("--pdf", type=Path, required=True)
    embed.add_argument("--xml", type=Path, required=True)
    embed.add_argument("--invoice-no", required=True)
    embed.add_argument("--profile", choices=PROFILE_CHOICES, default=settings.FACTURX_DEFAULT_PROFILE)
    embed.add_argument("--output", type=Path, required=True)
    embed.add_argument("--now", help="ISO-8601 timestamp for deterministic metadata")
    embed.set_defaults(func=cmd_embed)

    convert = sub.add_parser("convert", help="Full conversion: record (+ PDF) -> Factur-X PDF")
    convert.add_argument("record", type=Path)
    convert.add_argument("--pdf", type=Path, help="Source PDF (default: rendered page)")
    convert.add_argument("--profile", choices=PROFILE_CHOICES, default=None)
    convert.add_argument("--output", type=Path, required=True)
    convert.add_argument("--xml-output", type=Path)
    convert.add_argument("--now", help="ISO-8601 timestamp for deterministic metadata")
    convert.set_defaults(func=cmd_convert)

    extract = sub.add_parser("extract", help="Extract the Factur-X XML from a PDF")
    extract.add_argument("pdf", type=Path)
    extract.add_argument("--output", type=Path, help="Target file (default: stdout)")
    extract.set_defaults(func=cmd_extract)

    export = sub.add_parser("export", help="Export records as semicolon CSV")
    export.add_argument("records", type=Path, nargs="+", help="JSON object or list per file")
    export.add_argument("--format", choices=["invoices", "items"], default="invoices")
    export.add_argument("--profile", choices=PROFILE_CHOICES, default=None)
    export.add_argument("--output", type=Path, help="Target file (default: stdout)")
    export.set_defaults(func=cmd_export)

    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    init_observability(args.log_level, stream=sys.stderr)
    set_trace_id()
    try:
        return args.func(args)
    except FacturXError as err:
        print(f"error: {err}", file=sys.stderr)
        return EXIT_FAILURE
    except (OSError, ValueError) as err:
        print(f"error: {err}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
