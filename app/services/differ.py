"""
Diff engine service.
Compares two snapshots of essay text and identifies localized word-level changes.
"""

import re
from typing import List

from app.models import Region, TextChange, TextChangeType

# Splitting on a captured group keeps the whitespace runs as tokens
_TOKEN_SPLIT = re.compile(r"(\s+)")

DEFAULT_LOOKAHEAD = 10


def tokenize(text: str) -> List[str]:
    """Split text into alternating word and whitespace tokens, dropping empties."""
    return [token for token in _TOKEN_SPLIT.split(text) if token]


def word_count(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def get_region(index: int, total_length: int) -> Region:
    """Map a character offset to the third of the text it falls in."""
    if total_length <= 0:
        return Region.BEGINNING
    ratio = index / total_length
    if ratio < 0.33:
        return Region.BEGINNING
    if ratio < 0.67:
        return Region.MIDDLE
    return Region.END


def diff_texts(old_text: str, new_text: str, lookahead: int = DEFAULT_LOOKAHEAD) -> List[TextChange]:
    """
    Compare two texts and return an ordered list of localized changes.

    Walks both token sequences in step. On a mismatch it looks ahead up to
    `lookahead` tokens on each side for the first pair of equal tokens and
    reports the tokens in between as one modification. If nothing matches
    within the window, a single token is substituted on each side. Any tail
    left on one side becomes one addition or deletion.

    This is not a minimal edit script, only a plausible set of changes.

    Args:
        old_text: Previous snapshot
        new_text: Current snapshot
        lookahead: Resynchronization window in tokens

    Returns:
        TextChange list; offsets refer to old_text
    """
    old_tokens = tokenize(old_text)
    new_tokens = tokenize(new_text)
    total = len(old_text)

    changes: List[TextChange] = []
    old_idx = 0
    new_idx = 0
    offset = 0  # Character offset into old_text

    while old_idx < len(old_tokens) or new_idx < len(new_tokens):
        if old_idx >= len(old_tokens):
            added = ''.join(new_tokens[new_idx:])
            changes.append(TextChange(
                start_index=offset,
                end_index=offset,
                old_text="",
                new_text=added,
                change_type=TextChangeType.ADDITION,
                region=get_region(offset, total),
            ))
            break

        if new_idx >= len(new_tokens):
            deleted = ''.join(old_tokens[old_idx:])
            changes.append(TextChange(
                start_index=offset,
                end_index=offset + len(deleted),
                old_text=deleted,
                new_text="",
                change_type=TextChangeType.DELETION,
                region=get_region(offset, total),
            ))
            break

        if old_tokens[old_idx] == new_tokens[new_idx]:
            offset += len(old_tokens[old_idx])
            old_idx += 1
            new_idx += 1
            continue

        sync = _find_resync(old_tokens, new_tokens, old_idx, new_idx, lookahead)
        if sync is not None:
            i, j = sync
        else:
            i, j = 1, 1

        old_span = ''.join(old_tokens[old_idx:old_idx + i])
        new_span = ''.join(new_tokens[new_idx:new_idx + j])
        changes.append(TextChange(
            start_index=offset,
            end_index=offset + len(old_span),
            old_text=old_span,
            new_text=new_span,
            change_type=TextChangeType.MODIFICATION,
            region=get_region(offset, total),
        ))
        offset += len(old_span)
        old_idx += i
        new_idx += j

    return changes


def _find_resync(
    old_tokens: List[str],
    new_tokens: List[str],
    old_idx: int,
    new_idx: int,
    lookahead: int,
) -> tuple[int, int] | None:
    """Return the first (i, j) with old[old_idx+i] == new[new_idx+j], or None."""
    for i in range(1, lookahead + 1):
        if old_idx + i >= len(old_tokens):
            break
        candidate = old_tokens[old_idx + i]
        for j in range(1, lookahead + 1):
            if new_idx + j >= len(new_tokens):
                break
            if candidate == new_tokens[new_idx + j]:
                return i, j
    return None


def apply_changes(old_text: str, changes: List[TextChange]) -> str:
    """Replay changes produced by diff_texts against old_text."""
    result = old_text
    for change in sorted(changes, key=lambda c: c.start_index, reverse=True):
        result = result[:change.start_index] + change.new_text + result[change.end_index:]
    return result

