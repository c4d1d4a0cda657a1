"""
AI generation service.
Full essay reviews, suggestion generation and counselor answers via OpenAI.
"""

import json
import logging
import time
import uuid
from typing import Any, List, Sequence

import openai
from openai import AsyncOpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.errors import UpstreamGenerationError
from app.models import (
    CounselorReply,
    GenerationType,
    Highlight,
    Priority,
    Region,
    ReviewScore,
    ScoreMetric,
    SubGrade,
    Suggestion,
    SuggestionCategory,
)
from app.services.differ import get_region
from app.services.scorer import GRADE_BAND, clamp

logger = logging.getLogger(__name__)

DEFAULT_METRICS = ['Clarity', 'Delivery', 'Quality']
DEFAULT_SUB_GRADES = ['Structure', 'Uniqueness', 'Hook']

TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)

_CATEGORY_ALIASES = {
    "wordchoice": SuggestionCategory.WORD_CHOICE,
    "word": SuggestionCategory.WORD_CHOICE,
    "style": SuggestionCategory.WORD_CHOICE,
    "tone": SuggestionCategory.TONE_AND_VOICE,
    "voice": SuggestionCategory.TONE_AND_VOICE,
    "toneandvoice": SuggestionCategory.TONE_AND_VOICE,
    "idea": SuggestionCategory.IDEA_STRENGTH,
    "ideastrength": SuggestionCategory.IDEA_STRENGTH,
    "content": SuggestionCategory.IDEA_STRENGTH,
}


class EssayAIClient:
    """Talks to the OpenAI chat API and turns its JSON into domain models."""

    def __init__(self, api_key: str = None, model: str = None, counselor_model: str = None):
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.client = (
            AsyncOpenAI(api_key=self.api_key, timeout=settings.AI_TIMEOUT_SECONDS, max_retries=0)
            if self.api_key else None
        )
        self.model = model or settings.OPENAI_MODEL
        self.counselor_model = counselor_model or settings.COUNSELOR_MODEL

    # ------------------------------------------------------------
    # Public capabilities
    # ------------------------------------------------------------

    async def generate_full_review(self, content: str, prompt: str = "") -> ReviewScore:
        """Score the whole essay from scratch; used for the baseline."""
        data = await self._complete_json(
            system=self._get_review_system_prompt(),
            user=f"Essay: {content}\n\nPrompt: {prompt or settings.DEFAULT_PROMPT}",
            model=self.model,
            temperature=0.3,
            max_tokens=1000,
        )
        return self._parse_review_score(data)

    async def generate_suggestions(
        self,
        content: str,
        prompt: str = "",
        mode: GenerationType = GenerationType.FULL,
        context: str = "",
        count: int = 20,
        focused_regions: Sequence[Region] = (),
    ) -> List[Suggestion]:
        """
        Ask for `count` suggestions; targeted mode restricts the AI to the
        edited regions described in `context`.
        """
        if mode == GenerationType.TARGETED:
            system = self._get_targeted_system_prompt(count, context, focused_regions)
            max_tokens = 2000
        else:
            system = self._get_full_system_prompt(count)
            max_tokens = 4000

        data = await self._complete_json(
            system=system,
            user=f"Essay: {content}\n\nPrompt: {prompt or settings.DEFAULT_PROMPT}",
            model=self.model,
            temperature=0.3,
            max_tokens=max_tokens,
        )
        raw_items = data.get("suggestions")
        if not isinstance(raw_items, list):
            raise UpstreamGenerationError("AI response has no suggestions list")

        suggestions = []
        for raw in raw_items:
            suggestion = self._coerce_suggestion(raw, content)
            if suggestion is not None:
                suggestions.append(suggestion)
        logger.info("Parsed %d/%d %s suggestions", len(suggestions), len(raw_items), mode.value)
        return suggestions

    async def counsel(
        self,
        essay: str,
        question: str,
        suggestions: Sequence[Suggestion] = (),
        request_highlights: bool = False,
        highlight_type: str | None = None,
    ) -> CounselorReply:
        """Short counselor answer about the current essay, optionally with highlights."""
        suggestion_json = json.dumps(
            [s.model_dump(mode="json", exclude={"impact"}) for s in suggestions], indent=2
        )
        user = f"Essay:\n{essay}\n\nSuggestions:\n{suggestion_json}\n\nCurrent Question:\n{question}\n\n"
        if request_highlights:
            user += f"Highlight Context: {highlight_type or 'neutral'} - Respond in JSON format with highlights."
        else:
            user += "Respond in JSON format."

        data = await self._complete_json(
            system=self._get_counselor_system_prompt(request_highlights),
            user=user,
            model=self.counselor_model,
            temperature=0.7,
            max_tokens=500,
        )

        highlights = []
        for item in data.get("highlights") or []:
            if isinstance(item, dict) and item.get("text"):
                kind = item.get("type", "neutral")
                if kind not in ("positive", "negative", "warning", "neutral"):
                    kind = "neutral"
                highlights.append(Highlight(text=str(item["text"]), type=kind))
        if data.get("highlight"):
            highlights.append(Highlight(text=str(data["highlight"])))

        return CounselorReply(answer=str(data.get("answer", "")).strip(), highlights=highlights)

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(settings.AI_MAX_RETRIES),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _call_api(self, system: str, user: str, model: str, temperature: float, max_tokens: int):
        """Make the actual API call with retry logic."""
        return await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def _complete_json(self, system: str, user: str, model: str, temperature: float, max_tokens: int) -> dict:
        if not self.client:
            raise UpstreamGenerationError("AI generation is not configured (missing OPENAI_API_KEY)")

        start = time.time()
        try:
            response = await self._call_api(system, user, model, temperature, max_tokens)
        except Exception as e:
            logger.error("AI call failed: %s", e, exc_info=True)
            raise UpstreamGenerationError(f"AI call failed: {e}") from e
        elapsed_ms = int((time.time() - start) * 1000)

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise UpstreamGenerationError("Empty response from AI")
        logger.debug("AI response received in %dms: %s...", elapsed_ms, text[:200])
        return self._parse_response(text)

    def _parse_response(self, response_text: str) -> dict:
        """Parse a JSON object, tolerating markdown code fences."""
        text = response_text.strip()
        if text.startswith("```json"):
            text = text[7:]
        if text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("JSON parse error: %s; raw response: %s", e, response_text[:500])
            raise UpstreamGenerationError("AI returned unparseable data") from e
        if not isinstance(parsed, dict):
            raise UpstreamGenerationError("AI returned JSON that is not an object")
        return parsed

    # ------------------------------------------------------------
    # Validation / defaults
    # ------------------------------------------------------------

    def _parse_review_score(self, data: dict) -> ReviewScore:
        overall = _pick(data, "overall_score", "overallScore")
        try:
            overall = clamp(float(overall))
        except (TypeError, ValueError) as e:
            raise UpstreamGenerationError("AI review is missing an overall score") from e

        metrics = []
        for item in _pick(data, "metrics", default=None) or []:
            try:
                metrics.append(ScoreMetric(label=str(item["label"]), value=clamp(float(item["value"]))))
            except (KeyError, TypeError, ValueError):
                logger.debug("Dropping malformed metric: %r", item)
        if not metrics:
            metrics = [ScoreMetric(label=label, value=overall) for label in DEFAULT_METRICS]

        sub_grades = []
        for item in _pick(data, "sub_grades", "subGrades", default=None) or []:
            if isinstance(item, dict) and item.get("label") and item.get("grade") in GRADE_BAND:
                sub_grades.append(SubGrade(label=str(item["label"]), grade=item["grade"]))
        if not sub_grades:
            fallback = _grade_for_score(overall)
            sub_grades = [SubGrade(label=label, grade=fallback) for label in DEFAULT_SUB_GRADES]

        return ReviewScore(overall_score=overall, metrics=metrics, sub_grades=sub_grades)

    def _coerce_suggestion(self, raw: Any, content: str) -> Suggestion | None:
        if not isinstance(raw, dict):
            return None

        original = str(_pick(raw, "original_text", "originalText", "from", default="") or "")
        try:
            start = int(_pick(raw, "start_index", "startIndex", "position", default=0) or 0)
            end = int(_pick(raw, "end_index", "endIndex", default=start + len(original)) or 0)
        except (TypeError, ValueError):
            start, end = 0, len(original)

        # Trust the quoted text over the AI's offsets
        if original and content[start:end] != original:
            found = content.find(original)
            if found != -1:
                start, end = found, found + len(original)
        if not original and 0 <= start < end <= len(content):
            original = content[start:end]
        start = max(0, min(start, len(content)))
        end = max(start, min(end, len(content)))

        return Suggestion(
            uuid=str(raw.get("uuid") or uuid.uuid4()),
            category=normalize_category(_pick(raw, "category", "type", default=None)),
            title=str(raw.get("title") or ""),
            description=str(raw.get("description") or ""),
            start_index=start,
            end_index=end,
            replacement=str(_pick(raw, "replacement", "to", default="") or ""),
            original_text=original,
            region=get_region(start, len(content)),
            priority=normalize_priority(raw.get("priority")),
        )

    # ------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------

    def _get_review_system_prompt(self) -> str:
        return """You are a Harvard admissions officer reviewing a college application essay.

Score the essay with:
1. Overall score (0-100)
2. 3 metrics (Clarity, Delivery, Quality) with scores 0-100
3. 3 sub-grades (Structure, Uniqueness, Hook) with letter grades from F, D-, D, D+, C-, C, C+, B-, B, B+, A-, A, A+

Return JSON in this exact format:
{
  "overall_score": 75,
  "metrics": [
    {"label": "Clarity", "value": 80},
    {"label": "Delivery", "value": 75},
    {"label": "Quality", "value": 70}
  ],
  "sub_grades": [
    {"label": "Structure", "grade": "B+"},
    {"label": "Uniqueness", "grade": "B"},
    {"label": "Hook", "grade": "B"}
  ]
}"""

    def _get_full_system_prompt(self, count: int) -> str:
        return f"""You are a Harvard admissions officer reviewing a college application essay.

Generate {count} specific, actionable suggestions for improvement. Focus on:
- Grammar and spelling errors
- Word choice improvements
- Tone and voice enhancements
- Clarity improvements
- Structural suggestions
- Content strengthening

{_SUGGESTION_FORMAT}

Order suggestions by position in essay (beginning to end). Each suggestion must have valid start_index/end_index and exact text matches."""

    def _get_targeted_system_prompt(self, count: int, context: str, regions: Sequence[Region]) -> str:
        region_list = ', '.join(r.value for r in regions) or 'all'
        return f"""You are a Harvard admissions officer. The user made manual edits to their essay.

Focus ONLY on the edited sections and generate at most {count} targeted suggestions for improvement.

Recently edited sections:
{context}

Focused regions: {region_list}

{_SUGGESTION_FORMAT}

Focus suggestions on areas that were recently changed. Each suggestion must have valid start_index/end_index and exact text matches."""

    def _get_counselor_system_prompt(self, request_highlights: bool) -> str:
        base = """You are Ivy, an AI college-essay counselor. Your job is to help students improve their essays.

ANALYSIS SCOPE:
- Analyze ONLY the current essay content provided
- Each question is treated independently

RESPONSE RULES:
- Keep responses under 50 words
- Be specific and actionable
"""
        if request_highlights:
            return base + """
HIGHLIGHT TYPES:
- "positive": Strong parts
- "negative": Weak parts
- "warning": Needs improvement
- "neutral": General references

RESPONSE FORMAT (JSON):
{ "answer": "<concise response>", "highlights": [{"text": "<exact text>", "type": "positive|negative|warning|neutral"}] }"""
        return base + """
RESPONSE FORMAT (JSON):
{ "answer": "<concise response>", "highlight": "<exact text if relevant>" }"""


_SUGGESTION_FORMAT = """Allowed categories: Grammar, Spelling, Word choice, Tone & voice, Idea strength, Rephrase, Structure, Clarity.

Return JSON in this exact format:
{
  "suggestions": [
    {
      "category": "Grammar",
      "title": "Fix subject-verb agreement",
      "description": "Change 'The students is' to 'The students are' for correct grammar",
      "start_index": 45,
      "end_index": 60,
      "original_text": "The students is",
      "replacement": "The students are",
      "priority": "high"
    }
  ]
}"""


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key wins; lets the parser accept snake_case or camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def normalize_category(value: Any) -> SuggestionCategory:
    """Map free-form AI category names onto the fixed set; unknown -> Clarity."""
    if isinstance(value, SuggestionCategory):
        return value
    text = str(value or "").strip()
    for category in SuggestionCategory:
        if text.lower() == category.value.lower():
            return category
    key = ''.join(ch for ch in text.lower() if ch.isalpha())
    for category in SuggestionCategory:
        if key == ''.join(ch for ch in category.value.lower() if ch.isalpha()):
            return category
    return _CATEGORY_ALIASES.get(key, SuggestionCategory.CLARITY)


def normalize_priority(value: Any) -> Priority:
    try:
        return Priority(str(value).lower())
    except ValueError:
        return Priority.MEDIUM


def _grade_for_score(score: float) -> str:
    return GRADE_BAND[round(clamp(score) / 100 * (len(GRADE_BAND) - 1))]
