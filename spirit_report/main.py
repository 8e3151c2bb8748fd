#!/usr/bin/env python3
"""Spirit report backend (FastAPI).

- Placements: external astrology service (HTTP)
- Interpretations: OpenAI
- PDF report: ReportLab
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from spirit_report import config, pdf_service
from spirit_report.astrology_client import AstrologyClient
from spirit_report.cache_manager import AnalysisCache, CacheManager, SingleSlotStore
from spirit_report.errors import InputValidationError, ReportError
from spirit_report.llm_service import NarrativeService, build_openai_client
from spirit_report.models import Subject
from spirit_report.pipeline import ReportPipeline
from spirit_report.snapshot import export_snapshot

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s - %(message)s",
)

logger = logging.getLogger("spirit_report")

GENERIC_ANALYSIS_ERROR = "Failed to generate analysis. Please check your API key and try again."


def _build_cache() -> AnalysisCache:
    if config.CACHE_MODE == "single":
        store = SingleSlotStore()
    else:
        store = CacheManager(max_items=config.CACHE_MAX_ITEMS)
    logger.info("Analysis cache mode=%s ttl=%s", config.CACHE_MODE, config.CACHE_TTL_SEC)
    return AnalysisCache(store, ttl=config.CACHE_TTL_SEC)


async_client, OPENAI_HTTP_CLIENT = build_openai_client()
if async_client is None:
    logger.warning("OpenAI client is None. LLM will not be called. Check OPENAI_API_KEY in .env")

pdf_service.init_fonts()

pipeline = ReportPipeline(
    astrology=AstrologyClient(),
    narratives=NarrativeService(async_client),
    cache=_build_cache(),
)
# Raster snapshot collaborator; left unset unless a deployment wires one in.
snapshot_renderer = None

app = FastAPI(title="Spirit Report Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------------------------------------------------------------
# Request schemas
# ------------------------------------------------------------------------------
class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    email: str = ""
    date_of_birth: str = Field("", alias="dateOfBirth")
    time_of_birth: str = Field("", alias="timeOfBirth")
    place_of_birth: str = Field("", alias="placeOfBirth")
    selected_location: Optional[dict[str, Any]] = Field(None, alias="selectedLocation")

    def to_subject(self) -> Subject:
        if not self.selected_location:
            raise InputValidationError("Location not selected")
        try:
            return Subject(
                name=self.name,
                email=self.email,
                date_of_birth=self.date_of_birth,
                time_of_birth=self.time_of_birth,
                place_of_birth=self.place_of_birth,
                location=self.selected_location,
            )
        except ValidationError as e:
            raise InputValidationError(f"Invalid selected location: {e.errors()[0].get('msg', 'invalid')}") from e


class ValidateLocationRequest(BaseModel):
    location: str = ""


# ------------------------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------------------------
@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": detail})


async def _analyze_or_fail(body: AnalyzeRequest):
    subject = body.to_subject()
    try:
        return subject, await pipeline.analyze(subject)
    except ReportError:
        raise
    except Exception:
        logger.exception("Error generating analysis")
        raise ReportError(GENERIC_ANALYSIS_ERROR, status_code=500)


# ------------------------------------------------------------------------------
# API endpoints: Health Check
# ------------------------------------------------------------------------------
@app.get("/health")
def health():
    return {
        "status": "ok",
        "openai_configured": bool(async_client),
        "astrology_configured": pipeline.astrology.configured,
        "model": pipeline.narratives.model,
        "cache_mode": config.CACHE_MODE,
        "cache_items": len(pipeline.cache),
        "pdf_feature_available": pdf_service.PDF_FEATURE_AVAILABLE,
        "pdf_feature_error": pdf_service.PDF_FEATURE_ERROR,
        "pdf_font_reg": pdf_service.PDF_FONT_REG,
        "pdf_font_bold": pdf_service.PDF_FONT_BOLD,
        "snapshot_configured": snapshot_renderer is not None,
    }


# ------------------------------------------------------------------------------
# API endpoints: Location / Analysis
# ------------------------------------------------------------------------------
@app.post("/validate-location")
async def validate_location(body: ValidateLocationRequest):
    query = body.location.strip()
    if not query:
        return JSONResponse(
            status_code=400,
            content={"valid": False, "locations": [], "error": "Location is required"},
        )
    try:
        locations = await pipeline.validate_location(query)
    except ReportError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"valid": False, "locations": [], "error": e.message},
        )
    if not locations:
        return JSONResponse(
            status_code=400,
            content={"valid": False, "locations": [], "error": "Location not found"},
        )
    return {"valid": True, "locations": [loc.model_dump(mode="json") for loc in locations]}


@app.post("/analyze")
async def analyze(body: AnalyzeRequest):
    _subject, result = await _analyze_or_fail(body)
    return result.to_response()


@app.delete("/cache")
async def clear_cache(body: Optional[AnalyzeRequest] = None):
    if body is not None and body.selected_location:
        pipeline.clear_cache(body.to_subject())
        return {"cleared": "subject"}
    pipeline.clear_cache()
    return {"cleared": "all"}


# ------------------------------------------------------------------------------
# API endpoints: Report exports
# ------------------------------------------------------------------------------
@app.post("/report/pdf")
async def report_pdf(body: AnalyzeRequest):
    subject, result = await _analyze_or_fail(body)
    pdf_bytes = pdf_service.generate_pdf_report(subject, result)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=spirit-personality-analysis.pdf"},
    )


@app.post("/report/snapshot")
async def report_snapshot(body: AnalyzeRequest):
    subject, result = await _analyze_or_fail(body)
    image = await export_snapshot(snapshot_renderer, subject, result)
    return Response(
        content=image,
        media_type="image/png",
        headers={"Content-Disposition": "attachment; filename=spirit-personality-analysis.png"},
    )
