"""FastAPI app for question extraction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from .config import API_HOST, API_PORT, MAX_UPLOAD_BYTES, UPLOAD_CHUNK_SIZE, log_startup_config
from .pipeline import QuestionPipeline
from .schema import DraftQuestion, Preference, QualityRequirement, RawInput, RoutingContext
from .utils import EmptyContentError, ExtractionError, kind_for_suffix

logger = logging.getLogger(__name__)

app = FastAPI(title="quizparse")

_pipeline: QuestionPipeline | None = None


def get_pipeline() -> QuestionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = QuestionPipeline(start_sweeper=True)
    return _pipeline


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@app.on_event("startup")
def _startup() -> None:
    log_startup_config()


@app.on_event("shutdown")
def _shutdown() -> None:
    global _pipeline
    if _pipeline is not None:
        _pipeline.shutdown()
        _pipeline = None


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(ExtractionError)
async def _extraction_error_handler(request, exc: ExtractionError):  # noqa: ARG001
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request, exc: Exception):  # noqa: ARG001
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc) or "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class ParseRequest(BaseModel):
    text: str
    preference: Preference = "accuracy"
    quality_requirement: QualityRequirement = "medium"
    use_cache: bool = True
    evaluate_quality: bool = False


class TextRequest(BaseModel):
    text: str


class QuestionsRequest(BaseModel):
    questions: List[DraftQuestion] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
async def _read_upload(file: UploadFile) -> bytes:
    """Read *file* in chunks; enforce the size limit."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided.")
    total = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=413,
                detail=f"File too large (limit {MAX_UPLOAD_BYTES // (1024 * 1024)} MB).",
            )
        chunks.append(chunk)
    if total == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return b"".join(chunks)


def _require_text(text: str) -> str:
    if not text.strip():
        raise EmptyContentError("Request text is empty.")
    return text


# ---------------------------------------------------------------------------
# Health / config
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/config")
def api_config(pipeline: QuestionPipeline = Depends(get_pipeline)):
    """Expose runtime limits and which strategies are usable."""
    s = pipeline.settings
    return {
        "ocr_confidence_threshold": s.ocr_confidence_threshold,
        "ocr_language": s.ocr_language,
        "ocr_ai_fallback": s.ocr_ai_fallback,
        "document_max_pages": s.document_max_pages,
        "max_upload_bytes": MAX_UPLOAD_BYTES,
        "cache_ttl_seconds": s.cache_ttl_seconds,
        "ai_provider": s.ai_provider,
        "ai_model": s.ai_model,
        "ai_available": pipeline.ai.is_available(),
        "strategies": [strategy.name for strategy in pipeline.router.strategies],
    }


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------
@app.post("/api/parse")
def parse_text(body: ParseRequest, pipeline: QuestionPipeline = Depends(get_pipeline)):
    """Extract questions from pasted text."""
    raw = RawInput.from_text(_require_text(body.text))
    context = RoutingContext(
        preference=body.preference,
        quality_requirement=body.quality_requirement,
        use_cache=body.use_cache,
        evaluate_quality=body.evaluate_quality,
    )
    return pipeline.parse(raw, context).model_dump()


@app.post("/api/parse/upload")
async def parse_upload(
    file: UploadFile = File(...),
    preference: Preference = "accuracy",
    quality_requirement: QualityRequirement = "medium",
    use_cache: bool = True,
    evaluate_quality: bool = False,
    pipeline: QuestionPipeline = Depends(get_pipeline),
):
    """Extract questions from an uploaded image, PDF or text file."""
    data = await _read_upload(file)
    raw = RawInput.from_bytes(data, kind_for_suffix(Path(file.filename).suffix), filename=file.filename)
    context = RoutingContext(
        preference=preference,
        quality_requirement=quality_requirement,
        use_cache=use_cache,
        evaluate_quality=evaluate_quality,
    )
    result = await run_in_threadpool(pipeline.parse, raw, context)
    return result.model_dump()


@app.post("/api/detect-format")
def detect_format_endpoint(body: TextRequest, pipeline: QuestionPipeline = Depends(get_pipeline)):
    return pipeline.detect_format(_require_text(body.text)).model_dump()


@app.post("/api/validate")
def validate_endpoint(body: QuestionsRequest, pipeline: QuestionPipeline = Depends(get_pipeline)):
    outcome = pipeline.validate(body.questions)
    return {**outcome.model_dump(), "summary": pipeline.validator.summarize(outcome)}


@app.post("/api/quality")
def quality_endpoint(body: QuestionsRequest, pipeline: QuestionPipeline = Depends(get_pipeline)):
    score = pipeline.evaluate_quality(body.questions)
    return {**score.model_dump(), "report": pipeline.scorer.report(score)}


# ---------------------------------------------------------------------------
# Cache / telemetry
# ---------------------------------------------------------------------------
@app.get("/api/cache/stats")
def cache_stats(pipeline: QuestionPipeline = Depends(get_pipeline)):
    return pipeline.cache.stats()


@app.delete("/api/cache")
def cache_clear(pipeline: QuestionPipeline = Depends(get_pipeline)):
    pipeline.cache.clear()
    return {"cleared": True}


@app.get("/api/telemetry")
def telemetry(limit: int = 50, pipeline: QuestionPipeline = Depends(get_pipeline)):
    events = pipeline.telemetry.events(limit=max(0, limit))
    return {
        "summary": pipeline.telemetry.summary(),
        "events": [event.model_dump() for event in events],
    }


def serve() -> None:
    """Run the API with uvicorn on API_HOST:API_PORT."""
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    serve()
