"""
Review orchestration service.
Runs one review request end to end: classify the edit, generate suggestions,
update the score, append the version and persist the essay's state.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from app.config import settings
from app.errors import ConcurrentModificationError, InputError, UpstreamGenerationError
from app.models import (
    AppliedSuggestion,
    ApplySuggestionRequest,
    DiffResult,
    EssayVersion,
    GenerationType,
    NoChangeDiff,
    ReviewPayload,
    ReviewRequest,
    ReviewResponse,
    ReviewScore,
    Suggestion,
    SuggestionAppliedDiff,
    UpdateEssayRequest,
)
from app.services.ai_client import EssayAIClient
from app.services.classifier import applied_ids_of, classify_changes, detect_mixed_changes, diff_changes
from app.services.scorer import ProgressiveScorer, QualityEstimator
from app.services.suggestions import (
    GenerationRequest,
    GenerationResult,
    SuggestionTracker,
    order_suggestions,
)
from app.services.versions import VersionStore
from app.utils.storage import EssayStore

logger = logging.getLogger(__name__)


@dataclass
class _EssayState:
    """Per-essay state objects rebuilt from one stored record."""
    record: dict
    versions: VersionStore
    tracker: SuggestionTracker
    scorer: ProgressiveScorer
    suggestions: List[Suggestion]


@dataclass
class _ReviewOutcome:
    score: ReviewScore
    generation: GenerationResult
    suggestions: List[Suggestion]
    version: EssayVersion
    change_type: str
    changes_count: int


class ReviewService:
    """
    Entry point from the API layer into the review core.

    Operations on one essay are serialized with a per-essay lock, and every
    state write is checked against the revision that was read.
    """

    def __init__(
        self,
        store: EssayStore,
        ai: EssayAIClient,
        timeout: float | None = None,
        estimator: Optional[QualityEstimator] = None,
        tracker_options: Optional[dict] = None,
    ):
        self.store = store
        self.ai = ai
        self.timeout = settings.AI_TIMEOUT_SECONDS if timeout is None else timeout
        self.estimator = estimator
        self.tracker_options = tracker_options or {}
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, essay_id: str) -> asyncio.Lock:
        lock = self._locks.get(essay_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[essay_id] = lock
        return lock

    def _load_state(self, essay_id: str) -> _EssayState:
        record = self.store.load(essay_id)
        return _EssayState(
            record=record,
            versions=VersionStore.deserialize(record['version_state']),
            tracker=SuggestionTracker.deserialize(record['tracking_state'], **self.tracker_options),
            scorer=ProgressiveScorer.deserialize(record['scoring_state'], estimator=self.estimator),
            suggestions=[Suggestion.model_validate(s) for s in record['suggestions']],
        )

    # ------------------------------------------------------------
    # Review
    # ------------------------------------------------------------

    async def generate_review(self, request: ReviewRequest) -> ReviewResponse:
        """
        Review the submitted content.

        Raises:
            InputError: missing id/content or content below the minimum length
            NotFoundError: unknown essay
            UpstreamGenerationError: AI failed or timed out; nothing was saved
            ConcurrentModificationError: state changed twice under us
        """
        self._validate(request)
        async with self._lock_for(request.assist_id):
            try:
                return await self._review_once(request)
            except ConcurrentModificationError:
                logger.warning("Essay %s changed during review; retrying once", request.assist_id)
                return await self._review_once(request)

    def _validate(self, request: ReviewRequest) -> None:
        if not request.assist_id or not request.content:
            raise InputError("Missing required fields")
        if len(request.content.strip()) < settings.MIN_REVIEW_CHARS:
            raise InputError(
                f"Essay must be at least {settings.MIN_REVIEW_CHARS} characters to review"
            )

    async def _review_once(self, request: ReviewRequest) -> ReviewResponse:
        state = self._load_state(request.assist_id)
        revision = state.record['revision']
        prompt = request.prompt or state.record.get('prompt') or ''

        first = (
            request.is_first_review
            or state.scorer.baseline_score is None
            or state.versions.latest_version() is None
        )
        if first:
            outcome = await self._first_review(state, request, prompt)
        else:
            outcome = await self._follow_up_review(state, request, prompt)

        payload = ReviewPayload(
            overall_score=outcome.score.overall_score,
            metrics=outcome.score.metrics,
            sub_grades=outcome.score.sub_grades,
            suggestions=outcome.suggestions,
            version=outcome.score.version,
            generation_type=outcome.generation.generation_type.value,
            focused_regions=[r.value for r in outcome.generation.focused_regions],
        )

        self.store.save(
            request.assist_id,
            {
                'version_state': state.versions.serialize(),
                'tracking_state': state.tracker.serialize(),
                'scoring_state': state.scorer.serialize(),
                'suggestions': [s.model_dump(mode='json') for s in outcome.suggestions],
                'last_review_data': payload.model_dump(mode='json'),
                'last_review_at': datetime.now(timezone.utc),
            },
            expected_revision=revision,
        )

        logger.info(
            "Review for %s: %s, %d changes, %s, %d new suggestions, score %.1f",
            request.assist_id, outcome.change_type, outcome.changes_count,
            outcome.generation.generation_type.value, outcome.generation.suggestion_count,
            outcome.score.overall_score,
        )
        return ReviewResponse(
            review=payload,
            change_type=outcome.change_type,
            changes_count=outcome.changes_count,
            suggestion_count=outcome.generation.suggestion_count,
            generation_type=outcome.generation.generation_type.value,
            version_id=outcome.version.id,
        )

    async def _first_review(self, state: _EssayState, request: ReviewRequest, prompt: str) -> _ReviewOutcome:
        content = request.content
        state.tracker.mark_applied(*request.applied_suggestion_ids)
        review_task = asyncio.ensure_future(self.ai.generate_full_review(content, prompt))
        generation_task = asyncio.ensure_future(state.tracker.generate(
            GenerationRequest(content=content, prompt=prompt, is_first_review=True),
            self.ai,
        ))
        try:
            score, generation = await self._call_ai(asyncio.gather(review_task, generation_task))
        finally:
            # When one call fails the other must not keep running unobserved
            for task in (review_task, generation_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(review_task, generation_task, return_exceptions=True)

        # AI work succeeded; only now touch the state objects
        version = state.versions.create_initial_version(content)
        state.scorer = ProgressiveScorer(estimator=self.estimator)
        state.scorer.register_impacts(s.impact for s in generation.suggestions if s.impact)
        baseline = state.scorer.set_baseline(score)

        return _ReviewOutcome(
            score=baseline,
            generation=generation,
            suggestions=state.tracker.active_suggestions(generation.suggestions, content),
            version=version,
            change_type='initial',
            changes_count=0,
        )

    async def _follow_up_review(self, state: _EssayState, request: ReviewRequest, prompt: str) -> _ReviewOutcome:
        content = request.content
        if request.previous_version_id:
            previous = state.versions.require_version(request.previous_version_id)
        else:
            previous = state.versions.require_latest_version()

        diff = self._classify(state.versions, previous, content, request.applied_suggestion_ids)
        logger.info("Classified edit on %s as %s", request.assist_id, diff.change_type.value)

        generation = await self._call_ai(state.tracker.generate(
            GenerationRequest(
                content=content,
                prompt=prompt,
                diff=diff,
                previous_suggestions=state.suggestions,
                applied_suggestion_ids=list(request.applied_suggestion_ids),
                is_first_review=False,
            ),
            self.ai,
        ))

        state.scorer.register_impacts(s.impact for s in generation.suggestions if s.impact)
        score = state.scorer.calculate(diff, applied_ids_of(diff), content=content)
        version = previous if isinstance(diff, NoChangeDiff) else state.versions.append(content, previous.id, diff)

        return _ReviewOutcome(
            score=score,
            generation=generation,
            suggestions=self._visible_suggestions(state, generation, diff, content),
            version=version,
            change_type=diff.change_type.value,
            changes_count=len(diff_changes(diff)),
        )

    def _classify(
        self,
        versions: VersionStore,
        previous: EssayVersion,
        content: str,
        applied_ids: List[str],
    ) -> DiffResult:
        records = versions.applied_suggestions_for(applied_ids)
        if applied_ids and len(records) == len(applied_ids):
            return detect_mixed_changes(previous.content, content, records)
        return classify_changes(previous.content, content, applied_ids)

    def _visible_suggestions(
        self,
        state: _EssayState,
        generation: GenerationResult,
        diff: DiffResult,
        content: str,
    ) -> List[Suggestion]:
        tracker = state.tracker
        if generation.generation_type == GenerationType.TARGETED:
            fresh = {s.uuid for s in generation.suggestions}
            carried = [s for s in state.suggestions if s.uuid not in fresh]
            return order_suggestions(tracker.active_suggestions(generation.suggestions + carried, content))
        if isinstance(diff, SuggestionAppliedDiff):
            return tracker.active_suggestions(generation.suggestions, content)
        return tracker.active_suggestions(state.suggestions, content)

    async def _call_ai(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamGenerationError(f"AI generation timed out after {self.timeout}s") from e

    # ------------------------------------------------------------
    # Suggestion decisions
    # ------------------------------------------------------------

    async def apply_suggestion(self, essay_id: str, request: ApplySuggestionRequest) -> AppliedSuggestion:
        """Record that the user accepted a suggestion in the editor."""
        if not request.suggestion_uuid or not request.applied_text:
            raise InputError("Missing required fields")
        async with self._lock_for(essay_id):
            state = self._load_state(essay_id)
            applied = AppliedSuggestion(
                id=request.suggestion_uuid,
                original_text=request.original_text,
                replacement_text=request.applied_text,
                start_index=request.start_index,
                end_index=request.end_index,
                category=request.category,
            )
            state.versions.record_applied_suggestion(applied)
            state.tracker.mark_applied(request.suggestion_uuid)
            self.store.save(
                essay_id,
                {
                    'version_state': state.versions.serialize(),
                    'tracking_state': state.tracker.serialize(),
                },
                expected_revision=state.record['revision'],
            )
        logger.info("Applied suggestion tracked for %s: %s", essay_id, request.suggestion_uuid)
        return applied

    async def skip_suggestion(self, essay_id: str, suggestion_uuid: str) -> None:
        """Record that the user dismissed a suggestion."""
        if not suggestion_uuid:
            raise InputError("Missing suggestion id")
        async with self._lock_for(essay_id):
            state = self._load_state(essay_id)
            state.tracker.mark_skipped(suggestion_uuid)
            self.store.save(
                essay_id,
                {'tracking_state': state.tracker.serialize()},
                expected_revision=state.record['revision'],
            )
        logger.info("Skipped suggestion for %s: %s", essay_id, suggestion_uuid)

    # ------------------------------------------------------------
    # Record views
    # ------------------------------------------------------------

    def get_essay(self, essay_id: str) -> dict:
        """Stored record with only the suggestions that are still actionable."""
        state = self._load_state(essay_id)
        record = state.record
        active = state.tracker.active_suggestions(state.suggestions, record['current_content'])
        latest = state.versions.latest_version()
        return {
            'id': record['id'],
            'prompt': record['prompt'],
            'essay_type': record['essay_type'],
            'max_words': record['max_words'],
            'status': record['status'],
            'current_content': record['current_content'],
            'word_count': record['word_count'],
            'suggestions': [s.model_dump(mode='json') for s in active],
            'last_review_data': record['last_review_data'],
            'last_review_at': record['last_review_at'],
            'latest_version_id': latest.id if latest else None,
            'version_count': len(state.versions),
            'score_history': [s.model_dump(mode='json') for s in state.scorer.history()],
            'messages': record['messages'],
            'created_at': record['created_at'],
            'updated_at': record['updated_at'],
        }

    def autosave(self, essay_id: str, request: UpdateEssayRequest) -> dict:
        """Write raw editor content and metadata; never touches review state."""
        patch = request.model_dump(exclude_none=True)
        return self.store.save(essay_id, patch, bump_revision=False)
