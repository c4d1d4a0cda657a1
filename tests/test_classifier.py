"""Tests for edit classification."""

from __future__ import annotations

import pytest

from app.models import (
    AppliedSuggestion,
    DiffChangeType,
    ManualEditDiff,
    MixedDiff,
    NoChangeDiff,
    Region,
    SuggestionAppliedDiff,
)
from app.services.classifier import (
    applied_ids_of,
    calculate_similarity,
    classify_changes,
    detect_applied_suggestions,
    detect_mixed_changes,
    diff_changes,
    replay_suggestions,
)

OLD = "The quick brown fox jumps over the lazy dog. It was a sunny day in the park."


def _applied(sid: str, original: str, replacement: str, content: str = OLD) -> AppliedSuggestion:
    start = content.find(original)
    return AppliedSuggestion(
        id=sid,
        original_text=original,
        replacement_text=replacement,
        start_index=start,
        end_index=start + len(original),
    )


class TestClassifyChanges:
    @pytest.mark.parametrize("text", ["", "   ", "Hello world.", OLD, "a\n\nb"])
    def test_same_text_is_no_change(self, text):
        """classify(X, X) never reports changes."""
        result = classify_changes(text, text)
        assert isinstance(result, NoChangeDiff)
        assert result.change_type == DiffChangeType.NO_CHANGE
        assert diff_changes(result) == ()

    def test_surrounding_whitespace_is_ignored(self):
        assert isinstance(classify_changes("Hello world.", "  Hello world.\n"), NoChangeDiff)

    def test_no_ids_is_manual_edit(self):
        result = classify_changes(OLD, OLD.replace("quick", "slow"))
        assert isinstance(result, ManualEditDiff)
        assert result.change_type == DiffChangeType.MANUAL_EDIT
        assert result.affected_regions == frozenset({Region.BEGINNING})
        assert applied_ids_of(result) == ()

    def test_ids_make_suggestion_applied(self):
        result = classify_changes(OLD, OLD.replace("quick", "swift"), ["a", "b"])
        assert isinstance(result, SuggestionAppliedDiff)
        assert result.change_type == DiffChangeType.SUGGESTION_APPLIED
        assert result.applied_suggestion_ids == ("a", "b")

    def test_three_ids_is_not_bulk(self):
        result = classify_changes(OLD, OLD.replace("quick", "swift"), ["a", "b", "c"])
        assert result.change_type == DiffChangeType.SUGGESTION_APPLIED

    def test_more_than_three_ids_is_bulk(self):
        result = classify_changes(OLD, OLD.replace("quick", "swift"), ["a", "b", "c", "d"])
        assert result.change_type == DiffChangeType.BULK_SUGGESTION_APPLIED

    def test_bulk_threshold_is_configurable(self):
        result = classify_changes(OLD, OLD.replace("quick", "swift"), ["a", "b"], bulk_threshold=1)
        assert result.change_type == DiffChangeType.BULK_SUGGESTION_APPLIED

    def test_regions_cover_every_change(self):
        new = OLD.replace("The quick", "A quick").replace("park.", "garden.")
        result = classify_changes(OLD, new)
        assert result.affected_regions == frozenset({Region.BEGINNING, Region.END})


class TestSuggestionAppliedDiff:
    def test_rejects_manual_change_type(self):
        with pytest.raises(ValueError):
            SuggestionAppliedDiff(
                change_type=DiffChangeType.MANUAL_EDIT,
                changes=(),
                applied_suggestion_ids=("a",),
            )

    def test_rejects_empty_ids(self):
        with pytest.raises(ValueError):
            SuggestionAppliedDiff(
                change_type=DiffChangeType.SUGGESTION_APPLIED,
                changes=(),
                applied_suggestion_ids=(),
            )


class TestDetectMixedChanges:
    def test_only_suggestion_applied(self):
        """A recorded suggestion that fully explains the edit gives suggestion_applied."""
        applied = _applied("s1", "quick", "swift")
        result = detect_mixed_changes(OLD, OLD.replace("quick", "swift"), [applied])
        assert isinstance(result, SuggestionAppliedDiff)
        assert result.applied_suggestion_ids == ("s1",)

    def test_suggestion_plus_manual_edit_is_mixed(self):
        applied = _applied("s1", "quick", "swift")
        new = OLD.replace("quick", "swift") + " Afterwards we went home and had a wonderful dinner together."
        result = detect_mixed_changes(OLD, new, [applied])
        assert isinstance(result, MixedDiff)
        assert result.change_type == DiffChangeType.MIXED
        assert result.applied_suggestion_ids == ("s1",)
        assert result.manual_changes
        assert all("swift" not in c.new_text for c in result.manual_changes)

    def test_small_residual_is_not_a_manual_edit(self):
        applied = _applied("s1", "quick", "swift")
        new = OLD.replace("quick", "swift").replace("park.", "park!")
        result = detect_mixed_changes(OLD, new, [applied])
        assert isinstance(result, SuggestionAppliedDiff)

    def test_undetected_suggestion_falls_back_to_manual_edit(self):
        applied = _applied("s1", "lazy", "sleepy")
        result = detect_mixed_changes(OLD, OLD.replace("quick", "slow"), [applied])
        assert isinstance(result, ManualEditDiff)

    def test_unchanged_text(self):
        applied = _applied("s1", "quick", "swift")
        assert isinstance(detect_mixed_changes(OLD, OLD, [applied]), NoChangeDiff)


class TestDetectAppliedSuggestions:
    def test_context_match(self):
        applied = _applied("s1", "lazy", "sleepy")
        assert detect_applied_suggestions(OLD, OLD.replace("lazy", "sleepy"), [applied]) == [applied]

    def test_presence_fallback(self):
        """Replacement present and original gone counts even when context moved."""
        applied = _applied("s1", "lazy", "sleepy")
        new = "Some new opening. " + OLD.replace("lazy", "sleepy").replace("over the", "past a")
        assert detect_applied_suggestions(OLD, new, [applied]) == [applied]

    def test_not_applied(self):
        applied = _applied("s1", "lazy", "sleepy")
        assert detect_applied_suggestions(OLD, OLD, [applied]) == []


class TestHelpers:
    def test_replay_uses_recorded_span(self):
        suggestions = [_applied("a", "quick", "swift"), _applied("b", "sunny", "bright")]
        assert replay_suggestions(OLD, suggestions) == OLD.replace("quick", "swift").replace("sunny", "bright")

    def test_replay_falls_back_to_search_when_span_is_stale(self):
        stale = AppliedSuggestion(id="a", original_text="lazy", replacement_text="sleepy", start_index=0, end_index=4)
        assert replay_suggestions(OLD, [stale]) == OLD.replace("lazy", "sleepy")

    def test_similarity_ignores_case_and_spacing(self):
        assert calculate_similarity("Hello   World", "hello world") == 1.0
        assert calculate_similarity("abc", "xyz") < 0.5
