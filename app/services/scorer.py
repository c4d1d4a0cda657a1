"""
Progressive scoring service.
Derives each new essay score from the previous one plus the latest diff
instead of re-scoring the whole essay.
"""

import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from app.errors import EmptyHistoryError, IllegalStateError
from app.models import (
    DiffResult,
    ManualEditDiff,
    MixedDiff,
    Region,
    ReviewScore,
    ScoreMetric,
    SubGrade,
    SuggestionAppliedDiff,
    SuggestionImpact,
    TextChange,
    TextChangeType,
)

logger = logging.getLogger(__name__)

GRADE_BAND = ['F', 'D-', 'D', 'D+', 'C-', 'C', 'C+', 'B-', 'B', 'B+', 'A-', 'A', 'A+']

MAX_SUGGESTION_BOOST = 3
MANUAL_DELTA_MIN = -5
MANUAL_DELTA_MAX = 3
DEFAULT_SUGGESTION_BOOST = 1

_WORD = re.compile(r"[a-z']+")

# Which metrics / sub-grades a manual edit in each region touches
REGION_METRICS = {
    Region.BEGINNING: ['Clarity'],
    Region.MIDDLE: ['Delivery', 'Quality'],
    Region.END: ['Quality'],
}
REGION_SUB_GRADES = {
    Region.BEGINNING: ['Hook', 'Structure'],
    Region.MIDDLE: ['Structure', 'Uniqueness'],
    Region.END: ['Structure'],
}


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def step_grade(grade: str, steps: int) -> str:
    """Move a letter grade along the band; never off either end. Unknown grades pass through."""
    if grade not in GRADE_BAND:
        return grade
    index = GRADE_BAND.index(grade) + steps
    return GRADE_BAND[max(0, min(len(GRADE_BAND) - 1, index))]


# ============================================================
# QUALITY ESTIMATION (manual edits)
# ============================================================

class QualityEstimator(Protocol):
    """Scores a single manual change in [-2, 2]."""

    def estimate(self, change: TextChange, content: str) -> float:
        ...


class HeuristicQualityEstimator:
    """Keyword and length heuristics standing in for a model call."""

    STRONG_WORDS = ('demonstrate', 'illustrate', 'exemplify', 'articulate')
    WEAK_WORDS = ('show', 'tell', 'say', 'do')
    FILLER_WORDS = ('very', 'really')
    GRAMMAR_FIXES = (
        ('there is', 'there are'),
        ('alot', 'a lot'),
    )

    def estimate(self, change: TextChange, content: str) -> float:
        old_text, new_text = change.old_text, change.new_text
        delta = 0.0

        if change.change_type == TextChangeType.ADDITION and len(new_text) > len(old_text):
            delta += 1 if len(new_text.split()) > 5 else 0.5
        elif change.change_type == TextChangeType.DELETION and len(new_text) < len(old_text):
            removed = old_text.lower().split()
            delta += 1 if any(word in removed for word in self.FILLER_WORDS) else -0.5

        old_lower, new_lower = old_text.lower(), new_text.lower()
        old_words = set(_WORD.findall(old_lower))
        new_words = _WORD.findall(new_lower)
        # strong words may be inflected (demonstrated), weak ones must match whole
        if (any(w.startswith(strong) for w in new_words for strong in self.STRONG_WORDS)
                and old_words.intersection(self.WEAK_WORDS)):
            delta += 1

        for wrong, right in self.GRAMMAR_FIXES:
            if wrong in old_lower and right in new_lower:
                delta += 0.5

        return clamp(delta, -2, 2)


# ============================================================
# PROGRESSIVE SCORER
# ============================================================

class ScoringState(BaseModel):
    """Serialized form of a ProgressiveScorer."""
    baseline_score: Optional[ReviewScore] = None
    score_history: List[ReviewScore] = Field(default_factory=list)
    suggestion_impacts: Dict[str, SuggestionImpact] = Field(default_factory=dict)


class ProgressiveScorer:
    """
    Score history for one essay.

    UNSCORED until set_baseline() is called; every calculate() afterwards
    appends one score derived from the previous one.
    """

    def __init__(self, estimator: Optional[QualityEstimator] = None):
        self.estimator = estimator or HeuristicQualityEstimator()
        self._baseline: Optional[ReviewScore] = None
        self._history: List[ReviewScore] = []
        self._impacts: Dict[str, SuggestionImpact] = {}

    @property
    def baseline_score(self) -> Optional[ReviewScore]:
        return self._baseline

    @property
    def impacts(self) -> Dict[str, SuggestionImpact]:
        return dict(self._impacts)

    def set_baseline(self, score: ReviewScore) -> ReviewScore:
        """Start a new history from a freshly computed full review."""
        baseline = _normalized(score).model_copy(update={'version': 'v1'})
        self._baseline = baseline
        self._history = [baseline]
        return baseline

    def register_impact(self, impact: SuggestionImpact) -> None:
        self._impacts[impact.suggestion_id] = impact

    def register_impacts(self, impacts: Iterable[SuggestionImpact]) -> None:
        for impact in impacts:
            self.register_impact(impact)

    def latest_score(self) -> ReviewScore:
        if not self._history:
            raise EmptyHistoryError("No scores available")
        return self._history[-1]

    def history(self) -> List[ReviewScore]:
        return list(self._history)

    def calculate(
        self,
        diff: DiffResult,
        applied_suggestion_ids: Sequence[str] = (),
        previous_score: Optional[ReviewScore] = None,
        impacts: Optional[Mapping[str, SuggestionImpact]] = None,
        content: str = "",
    ) -> ReviewScore:
        """
        Derive and record the next score.

        Args:
            diff: Classified transition since the previous score
            applied_suggestion_ids: Suggestions accepted this turn
            previous_score: Score to start from; defaults to the latest
            impacts: Suggestion impact lookup; defaults to the registered impacts
            content: Current essay text, passed to the quality estimator

        Raises:
            IllegalStateError: no baseline has been set
        """
        if self._baseline is None:
            raise IllegalStateError("Baseline score must be set first")

        base = previous_score or self.latest_score()
        lookup = self._impacts if impacts is None else impacts
        score = base.model_copy(deep=True)

        if isinstance(diff, SuggestionAppliedDiff):
            self._apply_suggestion_boosts(score, applied_suggestion_ids or diff.applied_suggestion_ids, lookup)
        elif isinstance(diff, ManualEditDiff):
            self._apply_manual_edits(score, diff.changes, content)
        elif isinstance(diff, MixedDiff):
            self._apply_suggestion_boosts(score, applied_suggestion_ids or diff.applied_suggestion_ids, lookup)
            self._apply_manual_edits(score, diff.manual_changes, content)

        result = _normalized(score).model_copy(update={'version': f"v{len(self._history) + 1}"})
        logger.info(
            "Score %s: %.1f -> %.1f (%s)",
            result.version, base.overall_score, result.overall_score, diff.change_type.value,
        )
        self._history.append(result)
        return result

    def _apply_suggestion_boosts(
        self,
        score: ReviewScore,
        suggestion_ids: Sequence[str],
        lookup: Mapping[str, SuggestionImpact],
    ) -> None:
        total_boost = 0
        metric_boosts: Dict[str, float] = defaultdict(float)
        grade_steps: Dict[str, int] = defaultdict(int)

        for suggestion_id in suggestion_ids:
            impact = lookup.get(suggestion_id)
            if impact is None:
                total_boost += DEFAULT_SUGGESTION_BOOST
                continue
            total_boost += impact.score_boost
            for metric in impact.affected_metrics:
                metric_boosts[metric] += impact.score_boost
            for sub_grade in impact.affected_sub_grades:
                grade_steps[sub_grade] += 1

        # Only the overall boost is capped; metric boosts are not
        score.overall_score = clamp(score.overall_score + min(MAX_SUGGESTION_BOOST, total_boost))
        score.metrics = [
            ScoreMetric(label=m.label, value=clamp(m.value + metric_boosts.get(m.label, 0)))
            for m in score.metrics
        ]
        score.sub_grades = [
            SubGrade(label=g.label, grade=step_grade(g.grade, grade_steps.get(g.label, 0)))
            for g in score.sub_grades
        ]

    def _apply_manual_edits(self, score: ReviewScore, changes: Sequence[TextChange], content: str) -> None:
        quality_delta = 0.0
        metric_deltas: Dict[str, float] = defaultdict(float)
        grade_deltas: Dict[str, float] = defaultdict(float)

        for change in changes:
            delta = self.estimator.estimate(change, content)
            quality_delta += delta
            for metric in REGION_METRICS[change.region]:
                metric_deltas[metric] += delta
            for sub_grade in REGION_SUB_GRADES[change.region]:
                grade_deltas[sub_grade] += delta

        capped = clamp(quality_delta, MANUAL_DELTA_MIN, MANUAL_DELTA_MAX)
        score.overall_score = clamp(score.overall_score + capped)
        score.metrics = [
            ScoreMetric(label=m.label, value=clamp(m.value + metric_deltas.get(m.label, 0)))
            for m in score.metrics
        ]
        # Fractional deltas move a grade by whole steps only
        score.sub_grades = [
            SubGrade(label=g.label, grade=step_grade(g.grade, int(grade_deltas.get(g.label, 0))))
            for g in score.sub_grades
        ]

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------

    def serialize(self) -> str:
        return ScoringState(
            baseline_score=self._baseline,
            score_history=self._history,
            suggestion_impacts=self._impacts,
        ).model_dump_json()

    @classmethod
    def deserialize(cls, data: str | None, estimator: Optional[QualityEstimator] = None) -> "ProgressiveScorer":
        scorer = cls(estimator=estimator)
        if not data:
            return scorer
        state = ScoringState.model_validate_json(data)
        scorer._baseline = state.baseline_score
        scorer._history = list(state.score_history)
        scorer._impacts = dict(state.suggestion_impacts)
        return scorer


def _normalized(score: ReviewScore) -> ReviewScore:
    """Round and clamp every number of a score into [0, 100]."""
    return score.model_copy(update={
        'overall_score': round(clamp(score.overall_score), 2),
        'metrics': [ScoreMetric(label=m.label, value=round(clamp(m.value), 2)) for m in score.metrics],
        'sub_grades': [SubGrade(label=g.label, grade=g.grade) for g in score.sub_grades],
    })
