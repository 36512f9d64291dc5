"""Gemini provider using google-genai SDK with native async."""

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ProviderConfig
from casechat.history import to_gemini_history
from casechat.models import ProviderKind, ProviderReply, ProviderRequest, RequestKind
from casechat.providers.base import ConfigurationError, LLMClient, ProviderError, empty_response
from casechat.usage import gemini_cache_metrics

logger = logging.getLogger(__name__)

_TOP_P = 0.9


def _text_accessor(obj: Any) -> str | None:
    """`.text` as a method (older SDKs) or a property (google-genai)."""
    text = getattr(obj, "text", None)
    if callable(text):
        try:
            text = text()
        except ValueError as exc:
            # Older SDKs raise when the candidate was blocked or has no parts.
            logger.debug("Gemini text() accessor failed: %s", exc)
            return None
    return text if isinstance(text, str) else None


def _first_candidate_text(obj: Any) -> str | None:
    candidates = getattr(obj, "candidates", None)
    if not isinstance(candidates, (list, tuple)) or not candidates:
        return None
    parts = getattr(getattr(candidates[0], "content", None), "parts", None)
    if not isinstance(parts, (list, tuple)) or not parts:
        return None
    text = getattr(parts[0], "text", None)
    return text if isinstance(text, str) else None


def _wrapped(strategy: Callable[[Any], str | None]) -> Callable[[Any], str | None]:
    """Apply a strategy to the legacy `.response` wrapper, when present."""

    def extract(response: Any) -> str | None:
        inner = getattr(response, "response", None)
        return strategy(inner) if inner is not None else None

    return extract


# Tried in order until one yields non-empty text. Append new SDK shapes here.
TEXT_EXTRACTORS: tuple[Callable[[Any], str | None], ...] = (
    _wrapped(_text_accessor),
    _wrapped(_first_candidate_text),
    _text_accessor,
    _first_candidate_text,
)


def extract_text(response: Any) -> str:
    """Return the first non-empty text any extractor finds, or ""."""
    for extractor in TEXT_EXTRACTORS:
        text = extractor(response)
        if text and text.strip():
            return text.strip()
    return ""


def _usage_metadata(response: Any) -> Any:
    usage = getattr(response, "usage_metadata", None)
    if usage is None:
        usage = getattr(getattr(response, "response", None), "usage_metadata", None)
    return usage


class GeminiProvider(LLMClient):
    """Google Gemini provider via google-genai SDK."""

    provider = ProviderKind.GOOGLE

    def __init__(
        self,
        config: ProviderConfig,
        token_limits: dict[str, int] | None = None,
        client: Any = None,
    ) -> None:
        self._config = config
        self._token_limits = token_limits or {}
        if client is None:
            api_key = config.api_key()
            if not api_key:
                raise ConfigurationError(
                    self.provider, f"{' or '.join(config.api_key_envs)} is not set on the server"
                )
            client = genai.Client(api_key=api_key)
        self._client = client

    def build_config(self, request: ProviderRequest) -> genai_types.GenerateContentConfig:
        kwargs: dict[str, Any] = {}
        if request.config.temperature is not None:
            kwargs["temperature"] = request.config.temperature

        if request.kind is RequestKind.CHAT:
            if request.system_prompt:
                kwargs["system_instruction"] = request.system_prompt
            kwargs["top_p"] = _TOP_P
        elif request.kind is RequestKind.EVALUATION:
            kwargs["response_mime_type"] = "application/json"
        elif request.kind is RequestKind.OUTLINE:
            kwargs["top_p"] = _TOP_P

        limit = self._token_limits.get(request.kind.value)
        if limit:
            kwargs["max_output_tokens"] = limit
        return genai_types.GenerateContentConfig(**kwargs)

    async def _send(self, request: ProviderRequest) -> Any:
        config = self.build_config(request)
        if request.kind is RequestKind.CHAT:
            chat = self._client.aio.chats.create(
                model=request.model_id,
                history=to_gemini_history(request.history),
                config=config,
            )
            return await chat.send_message(request.message)
        return await self._client.aio.models.generate_content(
            model=request.model_id,
            contents=request.message,
            config=config,
        )

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        start = time.monotonic()
        try:
            response = await self._send(request)
        except genai_errors.APIError as exc:
            raise ProviderError(self.provider, str(exc)) from exc
        except httpx.HTTPError as exc:
            # google-genai lets transport failures through unwrapped.
            raise ProviderError(self.provider, str(exc) or type(exc).__name__) from exc

        latency = time.monotonic() - start

        text = extract_text(response)
        if not text:
            raise empty_response(self.provider, request.kind)

        usage = gemini_cache_metrics(_usage_metadata(response))

        logger.info(
            "Gemini %s %s: %.2fs, %d in / %d out tokens",
            request.kind.value,
            request.model_id,
            latency,
            usage.input_tokens,
            usage.output_tokens,
        )

        return ProviderReply(text=text, usage=usage)
