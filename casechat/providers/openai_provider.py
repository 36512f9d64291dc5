"""OpenAI provider using openai SDK with native async."""

import logging
import time
from typing import Any

import openai
from openai import AsyncOpenAI

from config.config_loader import ProviderConfig
from casechat.detection import is_reasoning_model
from casechat.history import to_openai_history
from casechat.models import ProviderKind, ProviderReply, ProviderRequest, RequestKind
from casechat.providers.base import ConfigurationError, LLMClient, ProviderError, empty_response
from casechat.usage import openai_cache_metrics

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMClient):
    """OpenAI chat completions via openai SDK."""

    provider = ProviderKind.OPENAI

    def __init__(
        self,
        config: ProviderConfig,
        token_limits: dict[str, int] | None = None,
        evaluation_system: str = "Return only JSON matching the expected evaluation schema.",
        client: Any = None,
    ) -> None:
        self._config = config
        self._token_limits = token_limits or {}
        self._evaluation_system = evaluation_system
        if client is None:
            api_key = config.api_key()
            if not api_key:
                raise ConfigurationError(
                    self.provider, f"{' or '.join(config.api_key_envs)} is not set on the server"
                )
            client = AsyncOpenAI(api_key=api_key)
        self._client = client

    def _messages(self, request: ProviderRequest) -> list[dict[str, str]]:
        if request.kind is RequestKind.CHAT:
            messages = []
            if request.system_prompt:
                messages.append({"role": "system", "content": request.system_prompt})
            messages.extend(to_openai_history(request.history))
            messages.append({"role": "user", "content": request.message})
            return messages
        if request.kind is RequestKind.EVALUATION:
            return [
                {"role": "system", "content": self._evaluation_system},
                {"role": "user", "content": request.message},
            ]
        return [{"role": "user", "content": request.message}]

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        reasoning = is_reasoning_model(request.model_id)
        payload: dict[str, Any] = {
            "model": request.model_id,
            "messages": self._messages(request),
        }
        # Reasoning models reject temperature; other models reject reasoning_effort.
        if request.config.temperature is not None and not reasoning:
            payload["temperature"] = request.config.temperature
        if request.config.reasoning_effort and reasoning:
            payload["reasoning_effort"] = request.config.reasoning_effort
        if request.kind is RequestKind.EVALUATION:
            payload["response_format"] = {"type": "json_object"}

        limit = self._token_limits.get(request.kind.value)
        if limit:
            # Reasoning models reject max_tokens.
            payload["max_completion_tokens" if reasoning else "max_tokens"] = limit
        return payload

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        payload = self.build_payload(request)
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**payload)
        except openai.APIStatusError as exc:
            raise ProviderError(self.provider, exc.response.text) from exc
        except openai.OpenAIError as exc:
            raise ProviderError(self.provider, str(exc)) from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        text = (choice.message.content or "").strip() if choice else ""
        if not text:
            raise empty_response(self.provider, request.kind)

        usage = openai_cache_metrics(response.usage)

        logger.info(
            "OpenAI %s %s: %.2fs, %d in / %d cached / %d out tokens",
            request.kind.value,
            request.model_id,
            latency,
            usage.input_tokens,
            usage.cached_tokens,
            usage.output_tokens,
        )

        return ProviderReply(text=text, usage=usage)
