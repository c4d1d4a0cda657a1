"""Tests for the suggestion lifecycle tracker."""

from __future__ import annotations

import random
from unittest.mock import AsyncMock

import pytest

from app.models import (
    DiffChangeType,
    GenerationType,
    ManualEditDiff,
    MixedDiff,
    NoChangeDiff,
    Priority,
    Region,
    Suggestion,
    SuggestionAppliedDiff,
    SuggestionCategory,
)
from app.services.ai_client import EssayAIClient
from app.services.classifier import classify_changes
from app.services.suggestions import (
    GenerationRequest,
    SuggestionTracker,
    build_change_context,
    derive_impact,
    filter_active,
    order_suggestions,
)
from tests.conftest import ESSAY, make_suggestion

LONG_ESSAY = " ".join(["word"] * 500)


def _source() -> AsyncMock:
    """AI stand-in that returns exactly as many suggestions as requested."""
    source = AsyncMock(spec=EssayAIClient)

    async def _generate(content, prompt="", mode=GenerationType.FULL, context="", count=20, focused_regions=()):
        return [
            Suggestion(uuid=f"g{i}", original_text="word", start_index=i * 5, end_index=i * 5 + 4)
            for i in range(count)
        ]

    source.generate_suggestions.side_effect = _generate
    return source


class TestFilterActive:
    def test_drops_applied_and_skipped(self, full_review_suggestions):
        active = filter_active(full_review_suggestions, ESSAY, applied_ids={"s1"}, skipped_ids={"s3"})
        assert [s.uuid for s in active] == ["s2"]

    def test_drops_suggestions_whose_text_is_gone(self, full_review_suggestions):
        content = ESSAY.replace("alot", "a lot")
        active = filter_active(full_review_suggestions, content)
        assert "s1" not in [s.uuid for s in active]

    def test_preserves_order(self, full_review_suggestions):
        reversed_input = list(reversed(full_review_suggestions))
        assert filter_active(reversed_input, ESSAY) == reversed_input

    @pytest.mark.parametrize("applied", [set(), {"s1"}, {"s1", "s2"}, {"s1", "s2", "s3"}])
    def test_applied_never_survive(self, full_review_suggestions, applied):
        active = filter_active(full_review_suggestions, ESSAY, applied_ids=applied)
        assert not {s.uuid for s in active} & applied


class TestImpactAndOrdering:
    @pytest.mark.parametrize(
        "category,metrics,boost",
        [
            (SuggestionCategory.GRAMMAR, ["Clarity"], 1),
            (SuggestionCategory.SPELLING, ["Clarity"], 1),
            (SuggestionCategory.WORD_CHOICE, ["Clarity", "Quality"], 2),
            (SuggestionCategory.CLARITY, ["Clarity", "Quality"], 2),
            (SuggestionCategory.TONE_AND_VOICE, ["Delivery", "Quality"], 3),
            (SuggestionCategory.IDEA_STRENGTH, ["Delivery", "Quality"], 3),
            (SuggestionCategory.STRUCTURE, ["Delivery"], 2),
            (SuggestionCategory.REPHRASE, ["Quality"], 2),
        ],
    )
    def test_impact_by_category(self, category, metrics, boost):
        suggestion = Suggestion(uuid="x", category=category, region=Region.MIDDLE)
        impact = derive_impact(suggestion)
        assert impact.suggestion_id == "x"
        assert impact.affected_metrics == metrics
        assert impact.score_boost == boost
        assert "Hook" not in impact.affected_sub_grades

    def test_beginning_adds_hook(self):
        impact = derive_impact(Suggestion(uuid="x", category=SuggestionCategory.TONE_AND_VOICE, region=Region.BEGINNING))
        assert impact.affected_sub_grades == ["Uniqueness", "Hook"]

    def test_structure_affects_structure_grade(self):
        impact = derive_impact(Suggestion(uuid="x", category=SuggestionCategory.STRUCTURE, region=Region.END))
        assert impact.affected_sub_grades == ["Structure"]

    def test_order_by_region_then_position_then_priority(self):
        suggestions = [
            Suggestion(uuid="end", region=Region.END, start_index=5),
            Suggestion(uuid="mid-low", region=Region.MIDDLE, start_index=50, priority=Priority.LOW),
            Suggestion(uuid="mid-high", region=Region.MIDDLE, start_index=50, priority=Priority.HIGH),
            Suggestion(uuid="mid-early", region=Region.MIDDLE, start_index=40, priority=Priority.LOW),
            Suggestion(uuid="begin", region=Region.BEGINNING, start_index=90),
        ]
        assert [s.uuid for s in order_suggestions(suggestions)] == [
            "begin", "mid-early", "mid-high", "mid-low", "end",
        ]

    def test_change_context_mentions_region_and_text(self):
        diff = classify_changes(ESSAY, ESSAY.replace("small acts", "tiny acts"))
        context = build_change_context(diff.changes, ESSAY.replace("small acts", "tiny acts"))
        assert 'Changed in end section: "small" → "tiny"' in context


class TestGenerate:
    @pytest.mark.asyncio
    async def test_first_review_is_full(self):
        """First review asks for 20-50 suggestions across the whole essay."""
        source = _source()
        tracker = SuggestionTracker(rng=random.Random(42))

        result = await tracker.generate(GenerationRequest(content=LONG_ESSAY, is_first_review=True), source)

        assert result.generation_type == GenerationType.FULL
        assert 20 <= len(result.suggestions) <= 50
        assert result.suggestion_count == len(result.suggestions)
        assert result.focused_regions == [Region.BEGINNING, Region.MIDDLE, Region.END]
        assert all(s.impact is not None for s in result.suggestions)
        assert source.generate_suggestions.call_args.kwargs["mode"] == GenerationType.FULL

    @pytest.mark.asyncio
    async def test_no_change_generates_nothing(self):
        source = _source()
        tracker = SuggestionTracker()

        result = await tracker.generate(GenerationRequest(content=ESSAY, diff=NoChangeDiff()), source)

        assert result.generation_type == GenerationType.SCORE_UPDATE_ONLY
        assert result.suggestions == []
        source.generate_suggestions.assert_not_called()

    @pytest.mark.asyncio
    async def test_applied_suggestions_reuse_previous_list(self):
        """Applying suggestions never triggers a new AI call."""
        source = _source()
        tracker = SuggestionTracker()
        previous = [Suggestion(uuid=uid) for uid in ("a", "b", "c", "d")]
        diff = SuggestionAppliedDiff(
            change_type=DiffChangeType.SUGGESTION_APPLIED, changes=(), applied_suggestion_ids=("a", "b")
        )

        result = await tracker.generate(
            GenerationRequest(content=ESSAY, diff=diff, previous_suggestions=previous, applied_suggestion_ids=["a", "b"]),
            source,
        )

        assert result.generation_type == GenerationType.SCORE_UPDATE_ONLY
        assert [s.uuid for s in result.suggestions] == ["c", "d"]
        assert result.suggestion_count == 0
        assert tracker.applied_ids == {"a", "b"}
        source.generate_suggestions.assert_not_called()

    @pytest.mark.asyncio
    async def test_manual_edit_requests_three_per_change(self):
        source = _source()
        tracker = SuggestionTracker()
        new = ESSAY.replace("really", "truly").replace("small", "tiny")
        diff = classify_changes(ESSAY, new)
        assert isinstance(diff, ManualEditDiff)
        assert len(diff.changes) == 2

        result = await tracker.generate(GenerationRequest(content=new, diff=diff), source)

        assert source.generate_suggestions.call_args.kwargs["count"] == 6
        assert source.generate_suggestions.call_args.kwargs["mode"] == GenerationType.TARGETED
        assert result.generation_type == GenerationType.TARGETED
        assert result.focused_regions == [Region.BEGINNING, Region.END]
        assert len(result.suggestions) == 6
        assert all(s.priority == Priority.HIGH for s in result.suggestions)

    def test_targeted_count_is_capped(self):
        tracker = SuggestionTracker()
        assert tracker.targeted_count(2) == 6
        assert tracker.targeted_count(7) == 10

    @pytest.mark.asyncio
    async def test_mixed_targets_manual_changes_only(self):
        source = _source()
        tracker = SuggestionTracker()
        new = ESSAY.replace("small acts", "tiny acts")
        manual = classify_changes(ESSAY, new).changes
        diff = MixedDiff(changes=manual, manual_changes=manual, applied_suggestion_ids=("s1",))

        result = await tracker.generate(GenerationRequest(content=new, diff=diff), source)

        assert result.generation_type == GenerationType.TARGETED
        assert source.generate_suggestions.call_args.kwargs["count"] == 3
        assert tracker.applied_ids == set()


class TestTrackerState:
    def test_full_review_range_is_configurable(self):
        tracker = SuggestionTracker(full_review_range=(5, 5))
        assert tracker.full_review_count() == 5

    def test_decisions_survive_round_trip(self):
        tracker = SuggestionTracker()
        tracker.mark_applied("a", "b")
        tracker.mark_skipped("c")

        restored = SuggestionTracker.deserialize(tracker.serialize())

        assert restored.applied_ids == {"a", "b"}
        assert restored.skipped_ids == {"c"}

    def test_active_suggestions_uses_decisions(self):
        tracker = SuggestionTracker()
        tracker.mark_skipped("s2")
        suggestions = [make_suggestion("s1", "alot", "a lot"), make_suggestion("s2", "really like", "love")]
        assert [s.uuid for s in tracker.active_suggestions(suggestions, ESSAY)] == ["s1"]
