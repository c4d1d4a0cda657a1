"""
Change classification service.
Decides whether a transition between two essay versions is a manual edit,
an application of AI suggestions, both, or nothing at all.
"""

import logging
from difflib import SequenceMatcher
from typing import List, Sequence

from app.config import settings
from app.models import (
    AppliedSuggestion,
    DiffChangeType,
    DiffResult,
    ManualEditDiff,
    MixedDiff,
    NoChangeDiff,
    Region,
    SuggestionAppliedDiff,
    TextChange,
)
from app.services.differ import diff_texts

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 20


# ============================================================
# CALLER-DECLARED CLASSIFICATION
# ============================================================

def classify_changes(
    old_content: str,
    new_content: str,
    applied_suggestion_ids: Sequence[str] = (),
    bulk_threshold: int | None = None,
) -> DiffResult:
    """
    Classify the transition old_content -> new_content.

    Rules, in order:
    1. Identical after trimming -> no change
    2. Suggestion ids supplied -> suggestion(s) applied; bulk above the threshold
    3. Otherwise -> manual edit

    Args:
        old_content: Text of the previous version
        new_content: Text being reviewed
        applied_suggestion_ids: Suggestions the caller says were accepted
        bulk_threshold: Count above which an application is "bulk"

    Returns:
        One DiffResult variant
    """
    if old_content.strip() == new_content.strip():
        return NoChangeDiff()

    threshold = settings.BULK_SUGGESTION_THRESHOLD if bulk_threshold is None else bulk_threshold
    changes = tuple(diff_texts(old_content, new_content))
    regions = affected_regions(changes)

    if applied_suggestion_ids:
        ids = tuple(applied_suggestion_ids)
        change_type = (
            DiffChangeType.BULK_SUGGESTION_APPLIED
            if len(ids) > threshold
            else DiffChangeType.SUGGESTION_APPLIED
        )
        return SuggestionAppliedDiff(
            change_type=change_type,
            changes=changes,
            applied_suggestion_ids=ids,
            affected_regions=regions,
        )

    return ManualEditDiff(changes=changes, affected_regions=regions)


def affected_regions(changes: Sequence[TextChange]) -> frozenset[Region]:
    """Union of the regions touched by a set of changes."""
    return frozenset(change.region for change in changes)


def diff_changes(diff: DiffResult) -> tuple[TextChange, ...]:
    """All text changes carried by a diff result (none for no-change)."""
    if isinstance(diff, NoChangeDiff):
        return ()
    return diff.changes


def applied_ids_of(diff: DiffResult) -> tuple[str, ...]:
    """Suggestion ids carried by a diff result."""
    if isinstance(diff, (SuggestionAppliedDiff, MixedDiff)):
        return diff.applied_suggestion_ids
    return ()


# ============================================================
# DETECTED CLASSIFICATION (applied suggestions + manual edits)
# ============================================================

def calculate_similarity(text1: str, text2: str) -> float:
    """Similarity in [0, 1] of whitespace- and case-normalized texts."""
    a = ' '.join(text1.split()).lower()
    b = ' '.join(text2.split()).lower()
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def detect_mixed_changes(
    old_content: str,
    new_content: str,
    applied_suggestions: Sequence[AppliedSuggestion],
    similarity_threshold: float = 0.95,
    min_length_delta: int = 10,
    bulk_threshold: int | None = None,
) -> DiffResult:
    """
    Classify a transition by detecting which recorded suggestions actually
    landed in the new text and whether anything else was edited by hand.

    Detected suggestions are replayed on the old text. If the result still
    differs meaningfully from the new text (similarity below the threshold and
    length delta above the minimum), the residual changes are manual edits.

    Returns:
        MixedDiff when both are present, SuggestionAppliedDiff when only
        suggestions are found, otherwise the caller-declared classification
        with no suggestion ids.
    """
    if old_content.strip() == new_content.strip():
        return NoChangeDiff()

    detected = detect_applied_suggestions(old_content, new_content, applied_suggestions)
    if not detected:
        logger.info("No recorded suggestion found in new content; treating as manual edit")
        return classify_changes(old_content, new_content, ())

    expected = replay_suggestions(old_content, detected)
    manual_changes: List[TextChange] = []
    if expected != new_content:
        length_delta = abs(len(new_content) - len(expected))
        similarity = calculate_similarity(expected, new_content)
        logger.debug(
            "Residual after replaying %d suggestions: similarity=%.3f length_delta=%d",
            len(detected), similarity, length_delta,
        )
        if similarity < similarity_threshold and length_delta > min_length_delta:
            manual_changes = diff_texts(expected, new_content)

    ids = tuple(s.id for s in detected)
    changes = tuple(diff_texts(old_content, new_content))

    if manual_changes:
        return MixedDiff(
            changes=changes,
            manual_changes=tuple(manual_changes),
            applied_suggestion_ids=ids,
            affected_regions=affected_regions(changes),
        )

    return classify_changes(old_content, new_content, ids, bulk_threshold=bulk_threshold)


def detect_applied_suggestions(
    old_content: str,
    new_content: str,
    known_suggestions: Sequence[AppliedSuggestion],
) -> List[AppliedSuggestion]:
    """
    Keep the recorded suggestions whose replacement is visible in new_content.

    A suggestion matches when its replacement sits between the same context
    the original text had in old_content, or failing that when the replacement
    is present and the original text is gone.
    """
    detected = []
    for suggestion in known_suggestions:
        if _context_matches(old_content, new_content, suggestion):
            detected.append(suggestion)
        elif (
            suggestion.replacement_text
            and suggestion.replacement_text in new_content
            and (not suggestion.original_text or suggestion.original_text not in new_content)
        ):
            detected.append(suggestion)
        else:
            logger.debug("Applied suggestion %s not found in new content", suggestion.id)
    return detected


def _context_matches(old_content: str, new_content: str, suggestion: AppliedSuggestion) -> bool:
    original = suggestion.original_text
    replacement = suggestion.replacement_text
    if not original:
        return False
    old_index = old_content.find(original)
    new_index = new_content.find(replacement)
    if old_index == -1 or new_index == -1:
        return False

    before_old = old_content[max(0, old_index - CONTEXT_CHARS):old_index]
    after_old = old_content[old_index + len(original):old_index + len(original) + CONTEXT_CHARS]
    before_new = new_content[max(0, new_index - CONTEXT_CHARS):new_index]
    after_new = new_content[new_index + len(replacement):new_index + len(replacement) + CONTEXT_CHARS]

    return before_old == before_new and after_old == after_new


def replay_suggestions(content: str, suggestions: Sequence[AppliedSuggestion]) -> str:
    """
    Apply suggestions to content, right to left by start index.

    Uses the recorded span when it still holds the original text, otherwise
    the first occurrence of the original text.
    """
    result = content
    for suggestion in sorted(suggestions, key=lambda s: s.start_index, reverse=True):
        start, end = suggestion.start_index, suggestion.end_index
        if result[start:end] != suggestion.original_text:
            start = result.find(suggestion.original_text) if suggestion.original_text else -1
            if start == -1:
                continue
            end = start + len(suggestion.original_text)
        result = result[:start] + suggestion.replacement_text + result[end:]
    return result
