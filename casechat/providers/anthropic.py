"""Anthropic Claude provider using anthropic SDK with native async."""

import logging
import time
from typing import Any

import anthropic as anthropic_sdk

from config.config_loader import ProviderConfig
from casechat.history import to_anthropic_history
from casechat.models import ProviderKind, ProviderReply, ProviderRequest, RequestKind
from casechat.providers.base import ConfigurationError, LLMClient, ProviderError, empty_response
from casechat.usage import anthropic_cache_metrics

logger = logging.getLogger(__name__)

PROMPT_CACHING_BETA = "prompt-caching-2024-07-31"

_DEFAULT_MAX_TOKENS = {
    RequestKind.CHAT.value: 1024,
    RequestKind.EVALUATION.value: 1024,
    RequestKind.OUTLINE.value: 8192,
    RequestKind.INFERENCE.value: 200,
}


class AnthropicProvider(LLMClient):
    """Anthropic Claude messages API via anthropic SDK."""

    provider = ProviderKind.ANTHROPIC

    def __init__(
        self,
        config: ProviderConfig,
        token_limits: dict[str, int] | None = None,
        evaluation_system: str = "Return only JSON matching the expected evaluation schema.",
        client: Any = None,
    ) -> None:
        self._config = config
        self._token_limits = {**_DEFAULT_MAX_TOKENS, **(token_limits or {})}
        self._evaluation_system = evaluation_system
        if client is None:
            api_key = config.api_key()
            if not api_key:
                raise ConfigurationError(
                    self.provider, f"{' or '.join(config.api_key_envs)} is not set on the server"
                )
            client = anthropic_sdk.AsyncAnthropic(api_key=api_key)
        self._client = client

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model_id,
            "max_tokens": self._token_limits[request.kind.value],
        }

        if request.kind is RequestKind.CHAT:
            # The system prompt carries the case document, the stable prefix worth caching.
            if request.system_prompt:
                payload["system"] = [
                    {
                        "type": "text",
                        "text": request.system_prompt,
                        "cache_control": {"type": "ephemeral"},
                    }
                ]
                payload["extra_headers"] = {"anthropic-beta": PROMPT_CACHING_BETA}
            messages = to_anthropic_history(request.history)
        else:
            if request.kind is RequestKind.EVALUATION:
                payload["system"] = self._evaluation_system
            messages = []

        messages.append({"role": "user", "content": [{"type": "text", "text": request.message}]})
        payload["messages"] = messages

        if request.config.temperature is not None:
            payload["temperature"] = request.config.temperature
        return payload

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        payload = self.build_payload(request)
        start = time.monotonic()
        try:
            response = await self._client.messages.create(**payload)
        except anthropic_sdk.APIStatusError as exc:
            raise ProviderError(self.provider, exc.response.text) from exc
        except anthropic_sdk.AnthropicError as exc:
            raise ProviderError(self.provider, str(exc)) from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]
        text = text_blocks[0].strip() if text_blocks else ""
        if not text:
            raise empty_response(self.provider, request.kind)

        usage = anthropic_cache_metrics(response.usage)

        logger.info(
            "Anthropic %s %s: %.2fs, %d in / %d cached / %d out tokens (cache %s)",
            request.kind.value,
            request.model_id,
            latency,
            usage.input_tokens,
            usage.cached_tokens,
            usage.output_tokens,
            "hit" if usage.cache_hit else "miss",
        )

        return ProviderReply(text=text, usage=usage)
