"""
Services package - business logic.
"""

from app.services.differ import diff_texts, apply_changes, get_region, word_count
from app.services.classifier import classify_changes, detect_mixed_changes, detect_applied_suggestions
from app.services.versions import VersionStore
from app.services.suggestions import SuggestionTracker, GenerationRequest, GenerationResult, filter_active
from app.services.scorer import ProgressiveScorer, HeuristicQualityEstimator
from app.services.ai_client import EssayAIClient
from app.services.review import ReviewService

__all__ = [
    "diff_texts",
    "apply_changes",
    "get_region",
    "word_count",
    "classify_changes",
    "detect_mixed_changes",
    "detect_applied_suggestions",
    "VersionStore",
    "SuggestionTracker",
    "GenerationRequest",
    "GenerationResult",
    "filter_active",
    "ProgressiveScorer",
    "HeuristicQualityEstimator",
    "EssayAIClient",
    "ReviewService",
]
