"""
Version ledger service.
Append-only history of one essay's versions and the suggestions applied to it.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from app.config import settings
from app.errors import StateError
from app.models import (
    AppliedSuggestion,
    DiffChangeType,
    DiffResult,
    EssayVersion,
    NoChangeDiff,
    VersionChangeType,
)
from app.services.classifier import applied_ids_of, classify_changes
from app.services.differ import word_count

logger = logging.getLogger(__name__)


class VersionState(BaseModel):
    """Serialized form of a VersionStore."""
    versions: List[EssayVersion] = Field(default_factory=list)
    applied_suggestions: List[AppliedSuggestion] = Field(default_factory=list)


class VersionStore:
    """
    Ledger of essay versions for a single essay.

    Versions form a chain through parent_version_id. The store is a plain
    value: build one per request from the persisted state, mutate it, and
    serialize it back only once the whole operation succeeded.
    """

    def __init__(self):
        self._versions: Dict[str, EssayVersion] = {}
        self._order: List[str] = []
        self._applied: Dict[str, AppliedSuggestion] = {}

    def __len__(self) -> int:
        return len(self._order)

    def create_initial_version(self, content: str) -> EssayVersion:
        """Start a new chain with content as its root."""
        version = EssayVersion(
            id=str(uuid.uuid4()),
            content=content,
            word_count=word_count(content),
            change_type=VersionChangeType.INITIAL,
        )
        self._store(version)
        return version

    def classify(
        self,
        content: str,
        previous_version_id: str,
        applied_suggestion_ids: Sequence[str] = (),
    ) -> DiffResult:
        """Classify content against a stored version without recording anything."""
        previous = self.require_version(previous_version_id)
        return classify_changes(previous.content, content, applied_suggestion_ids)

    def append(self, content: str, previous_version_id: str, diff: DiffResult) -> EssayVersion:
        """
        Record content as the child of previous_version_id.

        Raises:
            StateError: previous version unknown, or the diff says nothing changed
        """
        self.require_version(previous_version_id)
        if isinstance(diff, NoChangeDiff):
            raise StateError("Cannot append a version for an unchanged essay")

        applied_ids = applied_ids_of(diff)
        version = EssayVersion(
            id=str(uuid.uuid4()),
            content=content,
            word_count=word_count(content),
            change_type=_version_change_type(diff),
            applied_suggestion_ids=applied_ids or None,
            parent_version_id=previous_version_id,
        )
        self._store(version)
        return version

    def add_version(
        self,
        content: str,
        previous_version_id: str,
        applied_suggestion_ids: Sequence[str] = (),
    ) -> Tuple[Optional[EssayVersion], DiffResult]:
        """
        Classify and record in one step.

        Returns:
            (new version or None when nothing changed, diff result)
        """
        diff = self.classify(content, previous_version_id, applied_suggestion_ids)
        if isinstance(diff, NoChangeDiff):
            return None, diff
        return self.append(content, previous_version_id, diff), diff

    def _store(self, version: EssayVersion) -> None:
        self._versions[version.id] = version
        self._order.append(version.id)
        logger.debug("Stored version %s (%s)", version.id, version.change_type.value)

    # ------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------

    def get_version(self, version_id: str) -> Optional[EssayVersion]:
        return self._versions.get(version_id)

    def require_version(self, version_id: str) -> EssayVersion:
        version = self._versions.get(version_id)
        if version is None:
            raise StateError(f"Version not found: {version_id}")
        return version

    def latest_version(self) -> Optional[EssayVersion]:
        if not self._order:
            return None
        return self._versions[self._order[-1]]

    def require_latest_version(self) -> EssayVersion:
        latest = self.latest_version()
        if latest is None:
            raise StateError("Essay has no versions yet")
        return latest

    def history(self) -> List[EssayVersion]:
        """All versions in the order they were recorded."""
        return [self._versions[vid] for vid in self._order]

    def lineage(self, version_id: str) -> List[EssayVersion]:
        """Chain from the root version down to version_id."""
        chain = []
        current = self.get_version(version_id)
        while current is not None:
            chain.append(current)
            current = self.get_version(current.parent_version_id) if current.parent_version_id else None
        return list(reversed(chain))

    # ------------------------------------------------------------
    # Applied suggestions
    # ------------------------------------------------------------

    def record_applied_suggestion(self, suggestion: AppliedSuggestion) -> None:
        """Remember an accepted suggestion; the first record for an id wins."""
        if suggestion.id in self._applied:
            logger.debug("Suggestion %s already recorded as applied", suggestion.id)
            return
        self._applied[suggestion.id] = suggestion

    def applied_suggestions(self, since: Optional[datetime] = None) -> List[AppliedSuggestion]:
        suggestions = list(self._applied.values())
        if since is None:
            return suggestions
        return [s for s in suggestions if s.applied_at >= since]

    def applied_suggestions_for(self, suggestion_ids: Sequence[str]) -> List[AppliedSuggestion]:
        return [self._applied[sid] for sid in suggestion_ids if sid in self._applied]

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------

    def serialize(self) -> str:
        state = VersionState(
            versions=self.history(),
            applied_suggestions=list(self._applied.values()),
        )
        return state.model_dump_json()

    @classmethod
    def deserialize(cls, data: str | None) -> "VersionStore":
        store = cls()
        if not data:
            return store
        state = VersionState.model_validate_json(data)
        for version in state.versions:
            store._store(version)
        for suggestion in state.applied_suggestions:
            store._applied[suggestion.id] = suggestion
        return store


def _version_change_type(diff: DiffResult) -> VersionChangeType:
    if diff.change_type == DiffChangeType.BULK_SUGGESTION_APPLIED:
        return VersionChangeType.BULK_SUGGESTION_APPLIED
    if diff.change_type == DiffChangeType.SUGGESTION_APPLIED:
        return VersionChangeType.SUGGESTION_APPLIED
    if diff.change_type == DiffChangeType.MIXED:
        # Versions only distinguish single from bulk application
        if len(applied_ids_of(diff)) > settings.BULK_SUGGESTION_THRESHOLD:
            return VersionChangeType.BULK_SUGGESTION_APPLIED
        return VersionChangeType.SUGGESTION_APPLIED
    return VersionChangeType.MANUAL_EDIT
