import json
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from agents.facturx import (
    ConformanceProfile,
    EmbeddingError,
    ExtractionError,
    SourcePdfError,
    build_facturx_xml,
    convert_invoice,
    extract_xml_from_pdf,
    recommend_profile,
    validate_invoice_data,
    validate_xml_structure,
)
from agents.facturx.profiles import REQUIRED_FIELDS
from backend.core.config import settings
from backend.core.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/facturx")

# Minimal field checks before generation (generation itself never fails)
GENERATE_REQUIRED = (
    ("invoiceNumber", "Invoice number is required"),
    ("sellerName", "Seller name is required"),
    ("sellerSIRET", "Seller SIRET/VAT is required"),
    ("buyerName", "Buyer name is required"),
)


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invoice_data: Dict[str, Any] = Field(alias="invoiceData")
    profile: str = settings.FACTURX_DEFAULT_PROFILE
    preview: bool = False
    vat_breakdown: Optional[str] = Field(default=None, alias="vatBreakdown")


class RecommendResponse(BaseModel):
    profile: str
    required_fields: list[str] = Field(serialization_alias="requiredFields")


class ProfileInfo(BaseModel):
    profile: str
    guideline_id: str = Field(serialization_alias="guidelineId")
    required_fields: list[str] = Field(serialization_alias="requiredFields")


def _error(status_code: int, code: str, detail: str):
    raise HTTPException(status_code=status_code, detail={"error": code, "detail": detail})


def _require_record(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not data:
        _error(status.HTTP_400_BAD_REQUEST, "invalid_input", "Invoice data is required")
    return data


def _parse_profile(value: Optional[str]) -> Optional[ConformanceProfile]:
    if value is None or not value.strip():
        return None
    try:
        return ConformanceProfile(value.strip().lower())
    except ValueError:
        _error(
            status.HTTP_400_BAD_REQUEST,
            "invalid_profile",
            f"Unknown profile '{value}' (expected one of: "
            + ", ".join(p.value for p in ConformanceProfile)
            + ")",
        )


def _read_upload(file: UploadFile) -> bytes:
    data = file.file.read()
    if not data:
        _error(status.HTTP_400_BAD_REQUEST, "invalid_input", "PDF file is required")
    if len(data) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        _error(status.HTTP_400_BAD_REQUEST, "size_limit", "File exceeds MAX_UPLOAD_MB limit")
    return data


def _file_stem(invoice_number: Optional[str]) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", invoice_number or "UNKNOWN")


@router.get("/profiles", response_model=list[ProfileInfo], response_model_by_alias=True)
def list_profiles():
    return [
        ProfileInfo(
            profile=profile.value,
            guideline_id=profile.guideline_id,
            required_fields=list(REQUIRED_FIELDS[profile]),
        )
        for profile in ConformanceProfile
    ]


@router.post("/validate")
def validate_record(
    data: Optional[Dict[str, Any]] = Body(None),
    profile: str = Query(settings.FACTURX_DEFAULT_PROFILE),
):
    record = _require_record(data)
    result = validate_invoice_data(record, profile)
    return {"success": True, "validation": result.to_dict()}


@router.post("/recommend", response_model=RecommendResponse, response_model_by_alias=True)
def recommend(data: Optional[Dict[str, Any]] = Body(None)):
    profile = recommend_profile(_require_record(data))
    return RecommendResponse(profile=profile.value, required_fields=list(REQUIRED_FIELDS[profile]))


@router.post("/generate")
def generate_xml(request: GenerateRequest):
    record = _require_record(request.invoice_data)
    for field_name, message in GENERATE_REQUIRED:
        if not record.get(field_name):
            _error(status.HTTP_400_BAD_REQUEST, "invalid_input", message)
    if request.vat_breakdown not in (None, "by_rate", "flat"):
        _error(status.HTTP_400_BAD_REQUEST, "invalid_input", "vatBreakdown must be by_rate or flat")

    profile = _parse_profile(request.profile) or ConformanceProfile.COMFORT
    xml = build_facturx_xml(record, profile, vat_breakdown=request.vat_breakdown)

    if request.preview:
        return Response(content=xml, media_type="text/plain; charset=utf-8")
    file_name = f"facture-x-{_file_stem(str(record['invoiceNumber']))}.xml"
    return Response(
        content=xml,
        media_type="application/xml; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.post("/validate-xml")
async def validate_xml(request: Request):
    body = await request.body()
    if not body.strip():
        _error(status.HTTP_400_BAD_REQUEST, "invalid_input", "XML body is required")
    return validate_xml_structure(body).to_dict()


@router.post("/convert")
def convert(
    file: UploadFile = File(...),
    invoice_data: str = Form(..., alias="invoiceData"),
    profile: Optional[str] = Form(None),
):
    pdf_bytes = _read_upload(file)
    try:
        record = json.loads(invoice_data)
    except json.JSONDecodeError as e:
        _error(status.HTTP_400_BAD_REQUEST, "invalid_json", f"invoiceData is not valid JSON: {e}")
    if not isinstance(record, dict):
        _error(status.HTTP_400_BAD_REQUEST, "invalid_json", "invoiceData must be a JSON object")
    record = _require_record(record)

    try:
        document = convert_invoice(record, profile=_parse_profile(profile), pdf_bytes=pdf_bytes)
    except SourcePdfError as e:
        logger.warning("convert_bad_pdf", extra={"error": str(e)})
        _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_pdf", str(e))
    except EmbeddingError as e:
        logger.error("convert_embed_failed", extra={"error": str(e), "stage": e.stage})
        _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "embedding_failed", str(e))

    file_name = f"facture-x-{_file_stem(document.record.invoice_number)}.pdf"
    return Response(
        content=document.pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{file_name}"',
            "X-Facturx-Profile": document.profile.value,
            "X-Facturx-Status": document.status,
            "X-Validation-Score": str(document.validation.score),
        },
    )


@router.post("/extract")
def extract(file: UploadFile = File(...)):
    pdf_bytes = _read_upload(file)
    try:
        xml = extract_xml_from_pdf(pdf_bytes)
    except ExtractionError as e:
        _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "no_facturx", str(e))
    return Response(content=xml, media_type="application/xml; charset=utf-8")
