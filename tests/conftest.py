"""Shared test fixtures."""

from __future__ import annotations

import random
from unittest.mock import AsyncMock

import pytest

from app.models import (
    GenerationType,
    Priority,
    ReviewScore,
    ScoreMetric,
    SubGrade,
    Suggestion,
    SuggestionCategory,
)
from app.services.ai_client import EssayAIClient
from app.services.differ import get_region
from app.services.review import ReviewService
from app.utils.storage import EssayStore

ESSAY = (
    "I really like to help people in my community. Every weekend I volunteer at "
    "the local food bank and there is alot of work to do. It taught me that small "
    "acts matter."
)


def make_suggestion(
    uuid: str,
    original: str,
    replacement: str,
    category: SuggestionCategory = SuggestionCategory.CLARITY,
    content: str = ESSAY,
    priority: Priority = Priority.MEDIUM,
) -> Suggestion:
    """Suggestion whose span points at the first occurrence of original in content."""
    start = content.find(original)
    return Suggestion(
        uuid=uuid,
        category=category,
        title=f"Improve '{original}'",
        start_index=start,
        end_index=start + len(original),
        original_text=original,
        replacement=replacement,
        region=get_region(start, len(content)),
        priority=priority,
    )


def make_score(overall: float = 70) -> ReviewScore:
    return ReviewScore(
        overall_score=overall,
        metrics=[
            ScoreMetric(label="Clarity", value=overall),
            ScoreMetric(label="Delivery", value=overall),
            ScoreMetric(label="Quality", value=overall),
        ],
        sub_grades=[
            SubGrade(label="Structure", grade="B"),
            SubGrade(label="Uniqueness", grade="B"),
            SubGrade(label="Hook", grade="B"),
        ],
    )


@pytest.fixture
def essay() -> str:
    return ESSAY


@pytest.fixture
def full_review_suggestions() -> list[Suggestion]:
    return [
        make_suggestion("s1", "alot", "a lot", SuggestionCategory.GRAMMAR),
        make_suggestion("s2", "really like", "love", SuggestionCategory.WORD_CHOICE),
        make_suggestion("s3", "small acts matter", "small acts matter most", SuggestionCategory.STRUCTURE),
    ]


@pytest.fixture
def mock_ai_client(full_review_suggestions) -> AsyncMock:
    """AI client returning a 70-point review and fixed suggestion lists per mode."""
    client = AsyncMock(spec=EssayAIClient)
    client.generate_full_review.return_value = make_score(70)

    async def _suggestions(content, prompt="", mode=GenerationType.FULL, context="", count=20, focused_regions=()):
        if mode == GenerationType.TARGETED:
            last = content.split()[-1]
            return [make_suggestion("t1", last, last.upper(), content=content)]
        return list(full_review_suggestions)

    client.generate_suggestions.side_effect = _suggestions
    return client


@pytest.fixture
def store() -> EssayStore:
    return EssayStore()


@pytest.fixture
def review_service(store, mock_ai_client) -> ReviewService:
    return ReviewService(
        store,
        mock_ai_client,
        timeout=5,
        tracker_options={'full_review_range': (3, 3), 'rng': random.Random(7)},
    )
