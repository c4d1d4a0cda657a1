"""
Essay Assist API
FastAPI application entry point.
"""

import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.errors import EssayAssistError, StateError
from app.models import (
    ApplySuggestionRequest,
    CounselorReply,
    CounselorRequest,
    CreateEssayRequest,
    MessageRequest,
    ReviewRequest,
    ReviewResponse,
    SkipSuggestionRequest,
    UpdateEssayRequest,
)
from app.services import EssayAIClient, ReviewService
from app.utils import EssayStore, essay_store

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Incremental essay review: edit classification, targeted suggestions and progressive scoring",
    version=settings.APP_VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ai_client = EssayAIClient()
_review_service = ReviewService(essay_store, _ai_client)


def get_store() -> EssayStore:
    return essay_store


def get_ai_client() -> EssayAIClient:
    return _ai_client


def get_review_service() -> ReviewService:
    return _review_service


@app.exception_handler(EssayAssistError)
async def essay_assist_error_handler(request: Request, exc: EssayAssistError):
    if isinstance(exc, StateError):
        logger.error("State error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    else:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health")
async def health():
    """Health check for deployment."""
    return {"status": "ok"}


# ------------------------------------------------------------
# Essay records
# ------------------------------------------------------------

@app.post("/api/essay-assist", status_code=201)
async def create_essay(body: CreateEssayRequest, store: EssayStore = Depends(get_store)):
    """Create an essay assist record for a prompt."""
    record = store.create(prompt=body.prompt, essay_type=body.essay_type, max_words=body.max_words)
    logger.info("Created essay assist %s", record['id'])
    return {"success": True, "id": record['id'], "essay_assist": _summary(record)}


@app.get("/api/essay-assist")
async def list_essays(store: EssayStore = Depends(get_store)):
    """List records, most recently updated first."""
    return {"success": True, "essay_assists": [_summary(r) for r in store.list_records()]}


@app.get("/api/essay-assist/{essay_id}")
async def get_essay(essay_id: str, service: ReviewService = Depends(get_review_service)):
    """Fetch a record with its still-active suggestions and chat messages."""
    return {"success": True, "essay_assist": service.get_essay(essay_id)}


@app.put("/api/essay-assist/{essay_id}")
async def update_essay(
    essay_id: str,
    body: UpdateEssayRequest,
    service: ReviewService = Depends(get_review_service),
):
    """Autosave editor content and metadata."""
    record = service.autosave(essay_id, body)
    return {"success": True, "essay_assist": _summary(record)}


@app.delete("/api/essay-assist/{essay_id}")
async def delete_essay(essay_id: str, store: EssayStore = Depends(get_store)):
    if not store.delete(essay_id):
        return JSONResponse(status_code=404, content={"error": f"Essay assist not found: {essay_id}"})
    return {"success": True}


# ------------------------------------------------------------
# Review and suggestion decisions
# ------------------------------------------------------------

@app.post("/api/essay-assist/review", response_model=ReviewResponse)
async def review_essay(body: ReviewRequest, service: ReviewService = Depends(get_review_service)):
    """
    Review the submitted essay content.

    Returns:
    - Updated score (baseline on the first review, progressive afterwards)
    - Suggestions the editor should show
    - How the edit was classified and which generation strategy ran
    """
    start_time = time.time()
    response = await service.generate_review(body)
    logger.info("Review for %s finished in %dms", body.assist_id, int((time.time() - start_time) * 1000))
    return response


@app.post("/api/essay-assist/{essay_id}/apply-suggestion")
async def apply_suggestion(
    essay_id: str,
    body: ApplySuggestionRequest,
    service: ReviewService = Depends(get_review_service),
):
    applied = await service.apply_suggestion(essay_id, body)
    return {"success": True, "applied_suggestion": applied.model_dump(mode="json")}


@app.post("/api/essay-assist/{essay_id}/skip-suggestion")
async def skip_suggestion(
    essay_id: str,
    body: SkipSuggestionRequest,
    service: ReviewService = Depends(get_review_service),
):
    await service.skip_suggestion(essay_id, body.suggestion_uuid)
    return {"success": True}


# ------------------------------------------------------------
# Counselor
# ------------------------------------------------------------

@app.post("/api/essay-assist/{essay_id}/messages", status_code=201)
async def add_message(essay_id: str, body: MessageRequest, store: EssayStore = Depends(get_store)):
    """Append a counselor chat message to the record."""
    message = store.add_message(essay_id, body.role, body.content, body.highlights)
    return {"success": True, "message": message}


@app.post("/api/counselor", response_model=CounselorReply)
async def counselor(body: CounselorRequest, ai: EssayAIClient = Depends(get_ai_client)):
    """Short counselor answer about the essay, optionally with highlights to mark."""
    return await ai.counsel(
        essay=body.essay,
        question=body.question,
        suggestions=body.suggestions,
        request_highlights=body.request_highlights,
        highlight_type=body.highlight_type,
    )


def _summary(record: dict) -> dict:
    """Record fields safe to list; serialized review state stays internal."""
    return {
        'id': record['id'],
        'prompt': record['prompt'],
        'essay_type': record['essay_type'],
        'max_words': record['max_words'],
        'status': record['status'],
        'current_content': record['current_content'],
        'word_count': record['word_count'],
        'last_review_at': record['last_review_at'],
        'created_at': record['created_at'],
        'updated_at': record['updated_at'],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
