"""Tests for the per-essay version ledger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.errors import StateError
from app.models import (
    AppliedSuggestion,
    DiffChangeType,
    MixedDiff,
    NoChangeDiff,
    SuggestionAppliedDiff,
    VersionChangeType,
)
from app.services.classifier import classify_changes
from app.services.versions import VersionStore

TEXT = "My first draft talks about the summer I spent at camp."


class TestVersionChain:
    def test_initial_version(self):
        store = VersionStore()
        version = store.create_initial_version(TEXT)
        assert version.change_type == VersionChangeType.INITIAL
        assert version.parent_version_id is None
        assert version.word_count == 11
        assert store.latest_version() == version
        assert len(store) == 1

    def test_add_version_links_to_parent(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        version, diff = store.add_version(TEXT.replace("camp", "summer camp"), root.id)
        assert diff.change_type == DiffChangeType.MANUAL_EDIT
        assert version.parent_version_id == root.id
        assert version.change_type == VersionChangeType.MANUAL_EDIT
        assert version.applied_suggestion_ids is None
        assert store.latest_version() == version

    def test_add_version_without_change_records_nothing(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        version, diff = store.add_version(TEXT + "  ", root.id)
        assert version is None
        assert isinstance(diff, NoChangeDiff)
        assert len(store) == 1

    def test_suggestion_ids_are_recorded(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        version, _ = store.add_version(TEXT.replace("talks", "speaks"), root.id, ["a", "b", "c", "d"])
        assert version.change_type == VersionChangeType.BULK_SUGGESTION_APPLIED
        assert version.applied_suggestion_ids == ("a", "b", "c", "d")

    def test_mixed_diff_is_stored_as_suggestion_applied(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        new = TEXT.replace("talks", "speaks") + " It changed me."
        changes = classify_changes(TEXT, new).changes
        diff = MixedDiff(changes=changes, manual_changes=changes[-1:], applied_suggestion_ids=("a",))
        version = store.append(new, root.id, diff)
        assert version.change_type == VersionChangeType.SUGGESTION_APPLIED
        assert version.applied_suggestion_ids == ("a",)

    def test_append_rejects_no_change(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        with pytest.raises(StateError):
            store.append(TEXT, root.id, NoChangeDiff())

    def test_unknown_parent(self):
        store = VersionStore()
        diff = SuggestionAppliedDiff(
            change_type=DiffChangeType.SUGGESTION_APPLIED, changes=(), applied_suggestion_ids=("a",)
        )
        with pytest.raises(StateError):
            store.append(TEXT, "missing", diff)

    def test_require_latest_on_empty_store(self):
        with pytest.raises(StateError):
            VersionStore().require_latest_version()

    def test_lineage_and_history(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        second, _ = store.add_version(TEXT + " More.", root.id)
        third, _ = store.add_version(TEXT + " More and more.", second.id)
        assert [v.id for v in store.lineage(third.id)] == [root.id, second.id, third.id]
        assert [v.id for v in store.history()] == [root.id, second.id, third.id]


class TestAppliedSuggestions:
    def test_first_record_wins(self):
        store = VersionStore()
        first = AppliedSuggestion(id="s1", original_text="a", replacement_text="b")
        store.record_applied_suggestion(first)
        store.record_applied_suggestion(AppliedSuggestion(id="s1", original_text="x", replacement_text="y"))
        assert store.applied_suggestions() == [first]

    def test_filter_since(self):
        store = VersionStore()
        now = datetime.now(timezone.utc)
        old = AppliedSuggestion(id="old", replacement_text="b", applied_at=now - timedelta(hours=1))
        new = AppliedSuggestion(id="new", replacement_text="c", applied_at=now)
        store.record_applied_suggestion(old)
        store.record_applied_suggestion(new)
        assert store.applied_suggestions(since=now - timedelta(minutes=5)) == [new]
        assert store.applied_suggestions_for(["new", "unknown"]) == [new]


class TestPersistence:
    def test_serialize_round_trip(self):
        store = VersionStore()
        root = store.create_initial_version(TEXT)
        second, _ = store.add_version(TEXT.replace("camp", "band camp"), root.id, ["s1"])
        store.record_applied_suggestion(AppliedSuggestion(id="s1", original_text="camp", replacement_text="band camp"))

        restored = VersionStore.deserialize(store.serialize())

        assert restored.history() == store.history()
        assert restored.latest_version().id == second.id
        assert isinstance(restored.latest_version().created_at, datetime)
        assert restored.applied_suggestions()[0].id == "s1"

    def test_deserialize_nothing(self):
        assert len(VersionStore.deserialize(None)) == 0
