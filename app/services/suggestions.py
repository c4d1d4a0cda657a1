"""
Suggestion lifecycle service.
Tracks applied/skipped suggestions for one essay, filters stale ones out, and
decides what kind of suggestion generation a review needs.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from pydantic import BaseModel, Field

from app.config import settings
from app.models import (
    DiffResult,
    GenerationType,
    ManualEditDiff,
    MixedDiff,
    NoChangeDiff,
    Priority,
    Region,
    Suggestion,
    SuggestionAppliedDiff,
    SuggestionCategory,
    SuggestionImpact,
    TextChange,
)

logger = logging.getLogger(__name__)

ALL_REGIONS = (Region.BEGINNING, Region.MIDDLE, Region.END)
REGION_ORDER = {Region.BEGINNING: 0, Region.MIDDLE: 1, Region.END: 2}
PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}

# category -> (metrics, sub-grades, score boost)
CATEGORY_IMPACTS = {
    SuggestionCategory.GRAMMAR: (['Clarity'], [], 1),
    SuggestionCategory.SPELLING: (['Clarity'], [], 1),
    SuggestionCategory.WORD_CHOICE: (['Clarity', 'Quality'], [], 2),
    SuggestionCategory.CLARITY: (['Clarity', 'Quality'], [], 2),
    SuggestionCategory.TONE_AND_VOICE: (['Delivery', 'Quality'], ['Uniqueness'], 3),
    SuggestionCategory.IDEA_STRENGTH: (['Delivery', 'Quality'], ['Uniqueness'], 3),
    SuggestionCategory.STRUCTURE: (['Delivery'], ['Structure'], 2),
    SuggestionCategory.REPHRASE: (['Quality'], [], 2),
}


class SuggestionSource(Protocol):
    """Anything that can produce suggestions for an essay (normally the AI client)."""

    async def generate_suggestions(
        self,
        content: str,
        prompt: str = "",
        mode: GenerationType = GenerationType.FULL,
        context: str = "",
        count: int = 20,
        focused_regions: Sequence[Region] = (),
    ) -> List[Suggestion]:
        ...


@dataclass
class GenerationRequest:
    content: str
    prompt: str = ""
    diff: Optional[DiffResult] = None
    previous_suggestions: List[Suggestion] = field(default_factory=list)
    applied_suggestion_ids: List[str] = field(default_factory=list)
    is_first_review: bool = False


@dataclass
class GenerationResult:
    suggestions: List[Suggestion]
    focused_regions: List[Region]
    suggestion_count: int
    generation_type: GenerationType


class TrackingState(BaseModel):
    """Serialized form of a SuggestionTracker."""
    applied_ids: List[str] = Field(default_factory=list)
    skipped_ids: List[str] = Field(default_factory=list)


# ============================================================
# PURE HELPERS
# ============================================================

def filter_active(
    suggestions: Iterable[Suggestion],
    content: str,
    applied_ids: Iterable[str] = (),
    skipped_ids: Iterable[str] = (),
) -> List[Suggestion]:
    """
    Drop suggestions that were applied or skipped, or whose original text is
    no longer in the content (the user fixed it by hand). Order is preserved.
    """
    decided = set(applied_ids) | set(skipped_ids)
    active = []
    for suggestion in suggestions:
        if suggestion.uuid in decided:
            continue
        if suggestion.original_text and suggestion.original_text not in content:
            logger.debug("Hiding suggestion %s: original text no longer present", suggestion.uuid)
            continue
        active.append(suggestion)
    return active


def derive_impact(suggestion: Suggestion) -> SuggestionImpact:
    """Deterministic score impact of a suggestion from its category and region."""
    metrics, sub_grades, boost = CATEGORY_IMPACTS.get(suggestion.category, ([], [], 1))
    sub_grades = list(sub_grades)
    if suggestion.region == Region.BEGINNING:
        sub_grades.append('Hook')
    return SuggestionImpact(
        suggestion_id=suggestion.uuid,
        category=suggestion.category,
        region=suggestion.region,
        affected_metrics=list(metrics),
        affected_sub_grades=sub_grades,
        score_boost=min(3, boost),
    )


def order_suggestions(suggestions: Iterable[Suggestion]) -> List[Suggestion]:
    """Sort by region, then position in the essay, then priority."""
    return sorted(
        suggestions,
        key=lambda s: (REGION_ORDER[s.region], s.start_index, PRIORITY_ORDER[s.priority]),
    )


def build_change_context(changes: Sequence[TextChange], content: str, context_length: int = 100) -> str:
    """Describe each change with some surrounding text for the AI."""
    parts = []
    for change in changes:
        start = max(0, change.start_index - context_length)
        end = min(len(content), change.end_index + context_length)
        parts.append(
            f'Changed in {change.region.value} section: "{change.old_text}" → "{change.new_text}"\n'
            f"Context: ...{content[start:end]}..."
        )
    return '\n\n'.join(parts)


# ============================================================
# TRACKER
# ============================================================

class SuggestionTracker:
    """
    Applied/skipped decisions for one essay plus the generation policy.

    Decisions are permanent: once a uuid is applied or skipped it never shows
    up as active again.
    """

    def __init__(
        self,
        full_review_range: Tuple[int, int] | None = None,
        targeted_max: int | None = None,
        rng: random.Random | None = None,
    ):
        self.full_review_range = full_review_range or (
            settings.FULL_REVIEW_MIN_SUGGESTIONS,
            settings.FULL_REVIEW_MAX_SUGGESTIONS,
        )
        self.targeted_max = settings.TARGETED_MAX_SUGGESTIONS if targeted_max is None else targeted_max
        self.rng = rng or random.Random()
        self._applied: Set[str] = set()
        self._skipped: Set[str] = set()

    @property
    def applied_ids(self) -> Set[str]:
        return set(self._applied)

    @property
    def skipped_ids(self) -> Set[str]:
        return set(self._skipped)

    def mark_applied(self, *suggestion_ids: str) -> None:
        self._applied.update(suggestion_ids)

    def mark_skipped(self, *suggestion_ids: str) -> None:
        self._skipped.update(suggestion_ids)

    def active_suggestions(self, suggestions: Iterable[Suggestion], content: str) -> List[Suggestion]:
        return filter_active(suggestions, content, self._applied, self._skipped)

    async def generate(self, request: GenerationRequest, source: SuggestionSource) -> GenerationResult:
        """
        Pick a generation strategy for this review and run it.

        - first review: full scan, count drawn from the configured range
        - no change: nothing
        - suggestions applied: previous list minus applied ids, no AI call
        - manual edit (or mixed): a few high-priority suggestions for the edited regions
        """
        self.mark_applied(*request.applied_suggestion_ids)
        diff = request.diff

        if request.is_first_review:
            return await self._generate_full(request, source)

        if diff is None or isinstance(diff, NoChangeDiff):
            return GenerationResult([], [], 0, GenerationType.SCORE_UPDATE_ONLY)

        if isinstance(diff, SuggestionAppliedDiff):
            remaining = [s for s in request.previous_suggestions if s.uuid not in self._applied]
            return GenerationResult(remaining, [], 0, GenerationType.SCORE_UPDATE_ONLY)

        if isinstance(diff, MixedDiff):
            return await self._generate_targeted(request, source, diff.manual_changes)

        if isinstance(diff, ManualEditDiff):
            return await self._generate_targeted(request, source, diff.changes)

        return await self._generate_full(request, source)

    def full_review_count(self) -> int:
        low, high = self.full_review_range
        return self.rng.randint(low, high)

    def targeted_count(self, num_changes: int) -> int:
        return min(self.targeted_max, num_changes * 3)

    async def _generate_full(self, request: GenerationRequest, source: SuggestionSource) -> GenerationResult:
        count = self.full_review_count()
        logger.info("Requesting %d suggestions for full review", count)
        suggestions = await source.generate_suggestions(
            request.content,
            request.prompt,
            mode=GenerationType.FULL,
            count=count,
            focused_regions=ALL_REGIONS,
        )
        suggestions = [_with_impact(s) for s in suggestions]
        return GenerationResult(
            suggestions=order_suggestions(suggestions),
            focused_regions=list(ALL_REGIONS),
            suggestion_count=len(suggestions),
            generation_type=GenerationType.FULL,
        )

    async def _generate_targeted(
        self,
        request: GenerationRequest,
        source: SuggestionSource,
        changes: Sequence[TextChange],
    ) -> GenerationResult:
        if not changes:
            return GenerationResult([], [], 0, GenerationType.TARGETED)

        count = self.targeted_count(len(changes))
        regions = [r for r in ALL_REGIONS if r in {c.region for c in changes}]
        logger.info("Requesting %d targeted suggestions for regions %s", count, [r.value for r in regions])
        suggestions = await source.generate_suggestions(
            request.content,
            request.prompt,
            mode=GenerationType.TARGETED,
            context=build_change_context(changes, request.content),
            count=count,
            focused_regions=regions,
        )
        suggestions = [
            _with_impact(s.model_copy(update={'priority': Priority.HIGH}))
            for s in suggestions[:count]
        ]
        return GenerationResult(
            suggestions=order_suggestions(suggestions),
            focused_regions=regions,
            suggestion_count=len(suggestions),
            generation_type=GenerationType.TARGETED,
        )

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------

    def serialize(self) -> str:
        return TrackingState(
            applied_ids=sorted(self._applied),
            skipped_ids=sorted(self._skipped),
        ).model_dump_json()

    @classmethod
    def deserialize(cls, data: str | None, **kwargs) -> "SuggestionTracker":
        tracker = cls(**kwargs)
        if not data:
            return tracker
        state = TrackingState.model_validate_json(data)
        tracker._applied = set(state.applied_ids)
        tracker._skipped = set(state.skipped_ids)
        return tracker


def _with_impact(suggestion: Suggestion) -> Suggestion:
    return suggestion.model_copy(update={'impact': derive_impact(suggestion)})
