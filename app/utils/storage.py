"""
Essay record storage utility.
In-memory record store keyed by essay assist id (can be swapped for a database later).
"""

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from app.errors import ConcurrentModificationError, NotFoundError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EssayStore:
    """
    In-memory storage for essay assist records.

    Every record carries a `revision` counter. `save()` is a single atomic
    read-modify-write; passing `expected_revision` turns it into an
    optimistic-concurrency check.

    For production with multiple instances, replace with a database row per
    essay and a version column.
    """

    def __init__(self):
        self._storage: dict = {}
        self._lock = threading.Lock()

    def create(
        self,
        prompt: str,
        essay_type: str = "personal",
        max_words: int = 500,
        content: str = "Start writing your essay here!",
    ) -> dict:
        """Create a record and return a copy of it."""
        now = _now()
        essay_id = uuid.uuid4().hex
        record = {
            'id': essay_id,
            'prompt': prompt,
            'essay_type': essay_type,
            'max_words': max_words,
            'status': 'draft',
            'current_content': content,
            'word_count': len(content.split()),
            'version_state': None,
            'tracking_state': None,
            'scoring_state': None,
            'suggestions': [],
            'last_review_data': None,
            'last_review_at': None,
            'messages': [],
            'revision': 0,
            'created_at': now,
            'updated_at': now,
        }
        with self._lock:
            self._storage[essay_id] = record
            return copy.deepcopy(record)

    def get(self, essay_id: str) -> Optional[dict]:
        """Retrieve a copy of a record by ID, or None."""
        with self._lock:
            record = self._storage.get(essay_id)
            return copy.deepcopy(record) if record is not None else None

    def load(self, essay_id: str) -> dict:
        """Retrieve a copy of a record by ID; raises NotFoundError."""
        record = self.get(essay_id)
        if record is None:
            raise NotFoundError(f"Essay assist not found: {essay_id}")
        return record

    def save(
        self,
        essay_id: str,
        patch: dict,
        expected_revision: Optional[int] = None,
        bump_revision: bool = True,
    ) -> dict:
        """
        Merge patch into the record.

        Review state writes bump the revision; autosave of raw content passes
        bump_revision=False so it never invalidates an in-flight review.

        Raises:
            NotFoundError: unknown id
            ConcurrentModificationError: stored revision differs from expected_revision
        """
        with self._lock:
            record = self._storage.get(essay_id)
            if record is None:
                raise NotFoundError(f"Essay assist not found: {essay_id}")
            if expected_revision is not None and record['revision'] != expected_revision:
                raise ConcurrentModificationError(
                    f"Essay {essay_id} changed (revision {record['revision']}, expected {expected_revision})"
                )
            record.update(copy.deepcopy(patch))
            if 'current_content' in patch:
                record['word_count'] = len(record['current_content'].split())
            if bump_revision:
                record['revision'] += 1
            record['updated_at'] = _now()
            return copy.deepcopy(record)

    def add_message(self, essay_id: str, role: str, content: str, highlights: list) -> dict:
        """Append a chat message; messages do not bump the review revision."""
        message = {
            'id': uuid.uuid4().hex,
            'role': role,
            'content': content,
            'highlights': copy.deepcopy(highlights),
            'created_at': _now(),
        }
        with self._lock:
            record = self._storage.get(essay_id)
            if record is None:
                raise NotFoundError(f"Essay assist not found: {essay_id}")
            record['messages'].append(message)
            return copy.deepcopy(message)

    def list_records(self) -> List[dict]:
        """All records, most recently updated first."""
        with self._lock:
            records = [copy.deepcopy(r) for r in self._storage.values()]
        return sorted(records, key=lambda r: r['updated_at'], reverse=True)

    def delete(self, essay_id: str) -> bool:
        """Delete a record by ID."""
        with self._lock:
            if essay_id in self._storage:
                del self._storage[essay_id]
                return True
            return False


# Singleton instance
essay_store = EssayStore()
