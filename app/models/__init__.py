"""
Models package - data structures and schemas.
"""

from app.models.enums import (
    Region,
    TextChangeType,
    DiffChangeType,
    VersionChangeType,
    GenerationType,
    SuggestionCategory,
    Priority,
)
from app.models.essay import (
    TextChange,
    NoChangeDiff,
    ManualEditDiff,
    SuggestionAppliedDiff,
    MixedDiff,
    DiffResult,
    EssayVersion,
    AppliedSuggestion,
    SuggestionImpact,
    Suggestion,
    ScoreMetric,
    SubGrade,
    ReviewScore,
)
from app.models.schemas import (
    ReviewRequest,
    ReviewPayload,
    ReviewResponse,
    ApplySuggestionRequest,
    SkipSuggestionRequest,
    CreateEssayRequest,
    UpdateEssayRequest,
    MessageRequest,
    Highlight,
    CounselorRequest,
    CounselorReply,
)

__all__ = [
    "Region",
    "TextChangeType",
    "DiffChangeType",
    "VersionChangeType",
    "GenerationType",
    "SuggestionCategory",
    "Priority",
    "TextChange",
    "NoChangeDiff",
    "ManualEditDiff",
    "SuggestionAppliedDiff",
    "MixedDiff",
    "DiffResult",
    "EssayVersion",
    "AppliedSuggestion",
    "SuggestionImpact",
    "Suggestion",
    "ScoreMetric",
    "SubGrade",
    "ReviewScore",
    "ReviewRequest",
    "ReviewPayload",
    "ReviewResponse",
    "ApplySuggestionRequest",
    "SkipSuggestionRequest",
    "CreateEssayRequest",
    "UpdateEssayRequest",
    "MessageRequest",
    "Highlight",
    "CounselorRequest",
    "CounselorReply",
]
