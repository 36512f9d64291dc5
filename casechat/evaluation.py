"""Turn a coach model's free-form evaluation text into an EvaluationResult.

Models do not always follow the requested schema. Over time three shapes have
shown up in practice, and all of them must still parse:

    {"criteria": [{"question", "score", "feedback"}, ...], ...}
    {"evaluation_criteria": [{"criterion", "score", "feedback"}, ...], ...}
    {"q1_score", "q1_feedback", "q2_score", ..., "q3_feedback", ...}

Each shape has its own recognizer; the first one that matches wins.
"""

import json
import logging
import math
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from config.config_loader import EvaluationConfig, PromptsConfig
from casechat.models import CaseData, ChatMessage, EvaluationCriterion, EvaluationResult, RouteConfig
from casechat.router import LLMRouter

logger = logging.getLogger(__name__)

NO_SUMMARY = "No summary provided."

# The fixed rubric questions behind the q1/q2/q3 flat schema.
RUBRIC_QUESTIONS = (
    "Did the student appear to have studied the reading material?",
    "Did the student provide solid answers to chatbot questions?",
    "Did the student justify the answer using relevant reading information?",
)

_TOTAL_KEYS = ("totalScore", "total_score", "overall_score", "score")
_SUMMARY_KEYS = ("summary", "overall_summary", "general_feedback", "overall_feedback")
_HINT_KEYS = ("hints", "hint_count", "total_hints", "hints_used")

_LEADING_FENCE = re.compile(r"^```(?:json)?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```$")


class EvaluationParseError(ValueError):
    """The model output could not be decoded as a JSON object."""


def clean_json_string(text: str) -> str:
    """Strip markdown fences and any prose around the outermost {...}."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned).strip()
    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]
    return cleaned


def as_number(value: Any) -> float | int | None:
    """Numeric value of an int, float or numeric string; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            float(value)
        except OverflowError:
            return None
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return None


def _score(value: Any) -> float | int:
    number = as_number(value)
    return 0 if number is None else number


def _text(value: Any) -> str:
    # Falsy values (None, "", 0) read as empty, like the feedback fields models omit.
    return str(value) if value else ""


def _from_criteria(raw: Mapping[str, Any]) -> list[EvaluationCriterion] | None:
    items = raw.get("criteria")
    if not isinstance(items, list):
        return None
    return [
        EvaluationCriterion(
            question=_text(item.get("question")) or "Question",
            score=_score(item.get("score")),
            feedback=_text(item.get("feedback")),
        )
        for item in (i if isinstance(i, Mapping) else {} for i in items)
    ]


def _from_evaluation_criteria(raw: Mapping[str, Any]) -> list[EvaluationCriterion] | None:
    items = raw.get("evaluation_criteria")
    if not isinstance(items, list):
        return None
    return [
        EvaluationCriterion(
            question=_text(item.get("question")) or _text(item.get("criterion")) or "Question",
            score=_score(item.get("score")),
            feedback=_text(item.get("feedback")),
        )
        for item in (i if isinstance(i, Mapping) else {} for i in items)
    ]


def _from_question_scores(raw: Mapping[str, Any]) -> list[EvaluationCriterion] | None:
    if not any(f"q{n}_score" in raw for n in (1, 2, 3)):
        return None
    return [
        EvaluationCriterion(
            question=question,
            score=_score(raw.get(f"q{n}_score")),
            feedback=_text(raw.get(f"q{n}_feedback")),
        )
        for n, question in enumerate(RUBRIC_QUESTIONS, start=1)
    ]


CriteriaRecognizer = Callable[[Mapping[str, Any]], list[EvaluationCriterion] | None]

CRITERIA_RECOGNIZERS: tuple[CriteriaRecognizer, ...] = (
    _from_criteria,
    _from_evaluation_criteria,
    _from_question_scores,
)


def _first_present(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def normalize_evaluation(raw: Mapping[str, Any]) -> EvaluationResult:
    """Map any recognized schema onto EvaluationResult.

    totalScore: explicit total if numeric, otherwise the sum of criterion scores.
    summary: first non-blank of summary/overall_summary/general_feedback/overall_feedback.
    hints: first numeric of hints/hint_count/total_hints/hints_used, else 0.
    """
    criteria: list[EvaluationCriterion] = []
    for recognizer in CRITERIA_RECOGNIZERS:
        recognized = recognizer(raw)
        if recognized is not None:
            criteria = recognized
            break

    total = as_number(_first_present(raw, _TOTAL_KEYS))
    if total is None:
        total = sum(c.score for c in criteria)

    summary = next(
        (raw[k] for k in _SUMMARY_KEYS if isinstance(raw.get(k), str) and raw[k].strip()),
        NO_SUMMARY,
    )

    hints = as_number(_first_present(raw, _HINT_KEYS))

    return EvaluationResult(
        criteria=criteria,
        total_score=total,
        summary=summary,
        hints=int(hints) if hints is not None else 0,
    )


def parse_evaluation(raw: str | Mapping[str, Any]) -> EvaluationResult:
    """Decode model output (text or an already-decoded object) and normalize it.

    Raises:
        EvaluationParseError: If the text is not a JSON object even after cleanup.
    """
    if isinstance(raw, Mapping):
        data: Any = raw
        preview = json.dumps(dict(raw), default=str)[:200]
    else:
        cleaned = clean_json_string(raw or "{}")
        preview = cleaned[:200]
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise EvaluationParseError(f"Invalid evaluation JSON: {exc}") from exc

    if not isinstance(data, Mapping):
        raise EvaluationParseError(
            f"Invalid evaluation JSON: expected an object, got {type(data).__name__}"
        )

    result = normalize_evaluation(data)

    if not result.criteria and result.total_score == 0 and result.summary == NO_SUMMARY:
        logger.warning(
            "Normalized evaluation appears empty (criteria=%d, total=%s, raw=%r)",
            len(result.criteria),
            result.total_score,
            preview,
        )

    return result


def format_transcript(
    messages: Sequence[ChatMessage],
    student_label: str = "Student",
    protagonist_label: str = "CEO",
) -> str:
    return "\n\n".join(
        f"{student_label if m.role == 'user' else protagonist_label}: {m.content}"
        for m in messages
    )


def build_coach_prompt(
    template: str,
    transcript: str,
    student_name: str,
    case: CaseData,
    free_hints: int = 1,
) -> str:
    return template.format(
        case_content=case.case_content,
        protagonist=case.protagonist,
        case_title=case.case_title,
        free_hints=free_hints,
        hint_word="hint" if free_hints == 1 else "hints",
        student_name=student_name,
        transcript=transcript,
    )


async def evaluate_conversation(
    router: LLMRouter,
    model_id: str,
    messages: Sequence[ChatMessage],
    case: CaseData,
    student_name: str,
    prompts: PromptsConfig,
    settings: EvaluationConfig | None = None,
    config: RouteConfig | Mapping[str, Any] | None = None,
) -> EvaluationResult:
    """Build the coach prompt, ask the model, and normalize its answer.

    Raises:
        ProviderError: If the vendor call fails.
        EvaluationParseError: If the answer is not a JSON object.
    """
    settings = settings or EvaluationConfig()
    transcript = format_transcript(messages, settings.student_label, settings.protagonist_label)
    prompt = build_coach_prompt(
        prompts.coach, transcript, student_name, case, free_hints=settings.free_hints
    )
    raw = await router.evaluate(model_id, prompt, config)
    return parse_evaluation(raw)
