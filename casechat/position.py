"""Infer a student's stance on the case question from a chat transcript.

Inference is best-effort: anything that goes wrong (vendor failure, malformed
JSON, a position outside the allowed set) is logged and returns None.
"""

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from config.config_loader import InferenceConfig
from casechat.evaluation import as_number, clean_json_string
from casechat.models import CaseData, ChatTranscript, PositionInferenceResult, RouteConfig
from casechat.providers.base import ProviderError
from casechat.router import LLMRouter

logger = logging.getLogger(__name__)

DEFAULT_POSITION_OPTIONS = ("for", "against")
DEFAULT_CONFIDENCE = 0.5


def _effective_options(
    position_options: Sequence[str] | None,
    defaults: Sequence[str] = DEFAULT_POSITION_OPTIONS,
) -> list[str]:
    options = [str(o) for o in (position_options or [])]
    if len(options) >= 2:
        return options
    fallback = [str(o) for o in defaults]
    return fallback if len(fallback) >= 2 else list(DEFAULT_POSITION_OPTIONS)


def build_position_prompt(
    template: str,
    transcript: str,
    case: CaseData,
    position_options: Sequence[str],
) -> str:
    arguments = []
    if case.arguments_for:
        arguments.append(f"ARGUMENTS FOR:\n{case.arguments_for}\n")
    if case.arguments_against:
        arguments.append(f"ARGUMENTS AGAINST:\n{case.arguments_against}\n")
    return template.format(
        case_title=case.case_title or "Unknown Case",
        chat_question=case.chat_question or "What should be done?",
        arguments_block="\n".join(arguments),
        transcript=transcript,
        options=", ".join(position_options),
    )


def parse_position_response(
    text: str,
    position_options: Sequence[str],
) -> PositionInferenceResult | None:
    """Validate the model's JSON answer against the allowed positions.

    Raises:
        json.JSONDecodeError: If the text is not valid JSON after cleanup.
    """
    data = json.loads(clean_json_string(text))
    if not isinstance(data, Mapping):
        logger.error("Position inference returned %s, expected an object", type(data).__name__)
        return None

    raw_position = data.get("position")
    by_lower = {o.lower(): o for o in position_options}
    if not isinstance(raw_position, str) or raw_position.strip().lower() not in by_lower:
        logger.error("Invalid position in inference response: %r", raw_position)
        return None

    confidence = as_number(data.get("confidence"))
    confidence = DEFAULT_CONFIDENCE if confidence is None else min(1.0, max(0.0, float(confidence)))

    reasoning = data.get("reasoning")
    return PositionInferenceResult(
        position=by_lower[raw_position.strip().lower()],
        confidence=confidence,
        reasoning=reasoning if isinstance(reasoning, str) and reasoning else "No reasoning provided",
    )


class PositionInferrer:
    """Classifies transcripts into one of a small set of positions via the router."""

    def __init__(
        self,
        router: LLMRouter,
        prompt_template: str,
        settings: InferenceConfig | None = None,
    ) -> None:
        self._router = router
        self._template = prompt_template
        self._settings = settings or InferenceConfig()

    async def infer(
        self,
        transcript: str,
        case: CaseData,
        position_options: Sequence[str] | None,
        model_id: str,
    ) -> PositionInferenceResult | None:
        if not transcript or not transcript.strip():
            logger.info("No transcript provided, skipping position inference")
            return None

        options = _effective_options(position_options, self._settings.default_position_options)
        prompt = build_position_prompt(self._template, transcript, case, options)
        config = RouteConfig(temperature=self._settings.temperature)

        try:
            result = await self._router.complete(model_id, prompt, config)
            return parse_position_response(result.text, options)
        except (ProviderError, ValueError) as exc:
            logger.error("Position inference failed for case %s: %s", case.case_id, exc)
            return None

    async def infer_batch(
        self,
        chats: Iterable[ChatTranscript],
        case: CaseData,
        position_options: Sequence[str] | None,
        model_id: str,
    ) -> dict[str, PositionInferenceResult]:
        """Infer each chat in turn; failures are left out of the mapping.

        Sequential on purpose so a class-sized batch stays under the vendor's
        per-minute rate limit.
        """
        results: dict[str, PositionInferenceResult] = {}
        for chat in chats:
            result = await self.infer(chat.transcript, case, position_options, model_id)
            if result is not None:
                results[chat.chat_id] = result
        logger.info("Position inference: %d results for case %s", len(results), case.case_id)
        return results


def result_as_dict(result: PositionInferenceResult) -> dict[str, Any]:
    return {
        "position": result.position,
        "confidence": result.confidence,
        "reasoning": result.reasoning,
    }
