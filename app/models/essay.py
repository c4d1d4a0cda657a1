"""
Domain models for essay versions, diffs, suggestions and scores.

Transient values produced per request (text changes, diff results) are
dataclasses. Anything that is persisted with an essay is a pydantic model so
it survives a JSON round-trip with its datetimes intact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, FrozenSet, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import (
    DiffChangeType,
    Priority,
    Region,
    SuggestionCategory,
    TextChangeType,
    VersionChangeType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# DIFF VALUES
# ============================================================

@dataclass(frozen=True)
class TextChange:
    """A localized change between two snapshots of essay text."""
    start_index: int            # Offset into the old text
    end_index: int              # start_index + len(old_text)
    old_text: str               # Empty for additions
    new_text: str               # Empty for deletions
    change_type: TextChangeType
    region: Region


@dataclass(frozen=True)
class NoChangeDiff:
    """Both snapshots are identical once surrounding whitespace is ignored."""
    change_type: ClassVar[DiffChangeType] = DiffChangeType.NO_CHANGE


@dataclass(frozen=True)
class ManualEditDiff:
    """The user edited the text by hand."""
    changes: Tuple[TextChange, ...]
    affected_regions: FrozenSet[Region] = frozenset()
    change_type: ClassVar[DiffChangeType] = DiffChangeType.MANUAL_EDIT


@dataclass(frozen=True)
class SuggestionAppliedDiff:
    """The text changed because the user accepted one or more suggestions."""
    change_type: DiffChangeType
    changes: Tuple[TextChange, ...]
    applied_suggestion_ids: Tuple[str, ...]
    affected_regions: FrozenSet[Region] = frozenset()

    def __post_init__(self):
        if self.change_type not in (
            DiffChangeType.SUGGESTION_APPLIED,
            DiffChangeType.BULK_SUGGESTION_APPLIED,
        ):
            raise ValueError(f"Invalid change type for applied suggestions: {self.change_type}")
        if not self.applied_suggestion_ids:
            raise ValueError("SuggestionAppliedDiff needs at least one suggestion id")


@dataclass(frozen=True)
class MixedDiff:
    """Suggestions were applied and the user also edited other text."""
    changes: Tuple[TextChange, ...]
    manual_changes: Tuple[TextChange, ...]
    applied_suggestion_ids: Tuple[str, ...]
    affected_regions: FrozenSet[Region] = field(default_factory=frozenset)
    change_type: ClassVar[DiffChangeType] = DiffChangeType.MIXED


DiffResult = Union[NoChangeDiff, ManualEditDiff, SuggestionAppliedDiff, MixedDiff]


# ============================================================
# PERSISTED RECORDS
# ============================================================

class EssayVersion(BaseModel):
    """Immutable snapshot of essay text plus how it was produced."""
    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    word_count: int
    change_type: VersionChangeType
    applied_suggestion_ids: Optional[Tuple[str, ...]] = None
    parent_version_id: Optional[str] = None


class AppliedSuggestion(BaseModel):
    """Record of a suggestion the user accepted."""
    model_config = ConfigDict(frozen=True)

    id: str
    original_text: str = ""
    replacement_text: str
    start_index: int = 0
    end_index: int = 0
    applied_at: datetime = Field(default_factory=utcnow)
    category: Optional[str] = None


class SuggestionImpact(BaseModel):
    """Which parts of the score a suggestion improves once applied."""
    suggestion_id: str
    category: SuggestionCategory
    region: Region
    affected_metrics: List[str] = Field(default_factory=list)
    affected_sub_grades: List[str] = Field(default_factory=list)
    score_boost: int = Field(default=1, ge=1, le=3)


class Suggestion(BaseModel):
    """An AI-proposed text replacement."""
    uuid: str
    category: SuggestionCategory = SuggestionCategory.CLARITY
    title: str = ""
    description: str = ""
    start_index: int = 0
    end_index: int = 0
    replacement: str = ""
    original_text: str = ""
    region: Region = Region.BEGINNING
    priority: Priority = Priority.MEDIUM
    impact: Optional[SuggestionImpact] = None


class ScoreMetric(BaseModel):
    label: str
    value: float = Field(ge=0, le=100)


class SubGrade(BaseModel):
    label: str
    grade: str


class ReviewScore(BaseModel):
    """Overall score, percentage metrics and letter sub-grades at one point in time."""
    overall_score: float = Field(ge=0, le=100)
    metrics: List[ScoreMetric] = Field(default_factory=list)
    sub_grades: List[SubGrade] = Field(default_factory=list)
    version: str = "v1"
    timestamp: datetime = Field(default_factory=utcnow)
