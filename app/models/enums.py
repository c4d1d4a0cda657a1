"""
Enums for essay versioning, diffing and scoring.
"""

from enum import Enum


class Region(str, Enum):
    """Third of the essay a change or suggestion falls in."""
    BEGINNING = "beginning"
    MIDDLE = "middle"
    END = "end"


class TextChangeType(str, Enum):
    """Shape of a single localized text change."""
    ADDITION = "addition"
    DELETION = "deletion"
    MODIFICATION = "modification"


class DiffChangeType(str, Enum):
    """Classification of a transition between two essay versions."""
    NO_CHANGE = "no_change"
    MANUAL_EDIT = "manual_edit"
    SUGGESTION_APPLIED = "suggestion_applied"
    BULK_SUGGESTION_APPLIED = "bulk_suggestion_applied"
    MIXED = "mixed"


class VersionChangeType(str, Enum):
    """How a stored essay version came to be."""
    INITIAL = "initial"
    MANUAL_EDIT = "manual_edit"
    SUGGESTION_APPLIED = "suggestion_applied"
    BULK_SUGGESTION_APPLIED = "bulk_suggestion_applied"


class GenerationType(str, Enum):
    """Which suggestion generation strategy a review used."""
    FULL = "full"
    TARGETED = "targeted"
    SCORE_UPDATE_ONLY = "score_update_only"


class SuggestionCategory(str, Enum):
    """Kind of edit an AI suggestion proposes."""
    GRAMMAR = "Grammar"
    SPELLING = "Spelling"
    WORD_CHOICE = "Word choice"
    TONE_AND_VOICE = "Tone & voice"
    IDEA_STRENGTH = "Idea strength"
    REPHRASE = "Rephrase"
    STRUCTURE = "Structure"
    CLARITY = "Clarity"


class Priority(str, Enum):
    """Suggestion priority."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
