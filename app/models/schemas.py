"""
Request and response schemas for the essay assist API.
"""

from typing import List, Literal

from pydantic import BaseModel, Field

from app.models.essay import ScoreMetric, SubGrade, Suggestion


class ReviewRequest(BaseModel):
    """Entry point into the review pipeline."""
    assist_id: str
    content: str
    prompt: str | None = None
    applied_suggestion_ids: List[str] = Field(default_factory=list)
    is_first_review: bool = False
    previous_version_id: str | None = None


class ReviewPayload(BaseModel):
    """Score plus the suggestions the UI should show after a review."""
    overall_score: float
    metrics: List[ScoreMetric]
    sub_grades: List[SubGrade]
    suggestions: List[Suggestion]
    version: str
    generation_type: str
    focused_regions: List[str]


class ReviewResponse(BaseModel):
    """Response from the review endpoint."""
    success: bool = True
    review: ReviewPayload
    change_type: str
    changes_count: int
    suggestion_count: int
    generation_type: str
    version_id: str | None = None


class ApplySuggestionRequest(BaseModel):
    """Recorded when the user accepts a suggestion in the editor."""
    suggestion_uuid: str
    applied_text: str
    original_text: str = ""
    start_index: int = 0
    end_index: int = 0
    category: str | None = None


class SkipSuggestionRequest(BaseModel):
    suggestion_uuid: str


class CreateEssayRequest(BaseModel):
    prompt: str
    essay_type: str = "personal"
    max_words: int = 500


class UpdateEssayRequest(BaseModel):
    """Autosave payload; only the fields present are written."""
    current_content: str | None = None
    essay_type: str | None = None
    max_words: int | None = None
    status: str | None = None


class MessageRequest(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    highlights: List[dict] = Field(default_factory=list)


class Highlight(BaseModel):
    """Span of essay text the counselor wants the editor to mark."""
    text: str
    type: Literal["positive", "negative", "warning", "neutral"] = "neutral"


class CounselorRequest(BaseModel):
    essay: str
    question: str
    suggestions: List[Suggestion] = Field(default_factory=list)
    request_highlights: bool = False
    highlight_type: str | None = None


class CounselorReply(BaseModel):
    answer: str
    highlights: List[Highlight] = Field(default_factory=list)
