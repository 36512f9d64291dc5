"""Route chat, evaluation, outline and inference requests to the right vendor.

Every public operation goes through one dispatch path:

    resolve config -> detect provider -> provider client -> usage metrics -> result

Provider clients are built lazily, so a missing API key only fails the calls
that actually need that provider.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from config.config_loader import AppConfig, ProviderConfig
from casechat.detection import detect_provider, is_reasoning_model
from casechat.history import coerce_history
from casechat.metrics import MetricsSink, MetricsStore
from casechat.models import (
    ChatMessage,
    NormalizedResult,
    ProviderKind,
    ProviderReply,
    ProviderRequest,
    RequestKind,
    ResultMeta,
    RouteConfig,
)
from casechat.providers.anthropic import AnthropicProvider
from casechat.providers.base import LLMClient
from casechat.providers.gemini import GeminiProvider
from casechat.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

_DEFAULT_KEY_ENVS = {
    ProviderKind.OPENAI: ["OPENAI_API_KEY"],
    ProviderKind.ANTHROPIC: ["ANTHROPIC_API_KEY"],
    ProviderKind.GOOGLE: ["GEMINI_API_KEY", "API_KEY"],
}


def resolve_route_config(
    model_id: str,
    config: RouteConfig | Mapping[str, Any] | None = None,
) -> RouteConfig:
    """Validate route options once and drop the ones the model cannot take.

    temperature is kept only for non-reasoning models, reasoning_effort only
    for reasoning models. Mappings such as a stored model row are accepted;
    the case id may be spelled case_id or caseId.

    Raises:
        ValueError: If temperature is not numeric.
    """
    if config is None:
        raw: Mapping[str, Any] = {}
    elif isinstance(config, RouteConfig):
        raw = {
            "temperature": config.temperature,
            "reasoning_effort": config.reasoning_effort,
            "case_id": config.case_id,
        }
    else:
        raw = config

    temperature = raw.get("temperature")
    if temperature is not None:
        try:
            temperature = float(temperature)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"temperature must be numeric, got {temperature!r}") from exc

    reasoning_effort = raw.get("reasoning_effort")
    if reasoning_effort is not None:
        reasoning_effort = str(reasoning_effort).strip().lower() or None

    case_id = raw.get("case_id")
    if case_id is None:
        case_id = raw.get("caseId")

    if is_reasoning_model(model_id):
        temperature = None
    else:
        reasoning_effort = None

    return RouteConfig(
        temperature=temperature,
        reasoning_effort=reasoning_effort,
        case_id=str(case_id) if case_id else None,
    )


class LLMRouter:
    """Uniform front for the OpenAI, Anthropic and Gemini clients."""

    def __init__(
        self,
        config: AppConfig,
        metrics_sink: MetricsSink | None = None,
        clients: Mapping[ProviderKind, LLMClient] | None = None,
    ) -> None:
        self._config = config
        self._sink = metrics_sink
        self._clients: dict[ProviderKind, LLMClient] = dict(clients or {})

    @classmethod
    def from_config(cls, config: AppConfig) -> "LLMRouter":
        """Router with a SQLite-backed metrics sink at the configured path."""
        store = MetricsStore(
            config.metrics.db_path,
            regular_cost_per_1k=config.metrics.regular_cost_per_1k,
            cached_cost_per_1k=config.metrics.cached_cost_per_1k,
        )
        return cls(config, metrics_sink=MetricsSink(store))

    @property
    def metrics_sink(self) -> MetricsSink | None:
        return self._sink

    def _build_client(self, provider: ProviderKind) -> LLMClient:
        provider_cfg = self._config.providers.get(provider.value) or ProviderConfig(
            name=provider.value, api_key_envs=_DEFAULT_KEY_ENVS[provider]
        )
        limits = self._config.token_limits.limits.get(provider.value, {})
        evaluation_system = self._config.prompts.evaluation_system
        if provider is ProviderKind.OPENAI:
            return OpenAIProvider(provider_cfg, limits, evaluation_system)
        if provider is ProviderKind.ANTHROPIC:
            return AnthropicProvider(provider_cfg, limits, evaluation_system)
        return GeminiProvider(provider_cfg, limits)

    def client_for(self, provider: ProviderKind) -> LLMClient:
        """Return the cached client, building it on first use.

        Raises:
            ConfigurationError: If the provider's API key is not set.
        """
        client = self._clients.get(provider)
        if client is None:
            client = self._build_client(provider)
            self._clients[provider] = client
        return client

    async def _dispatch(
        self,
        kind: RequestKind,
        model_id: str,
        message: str,
        config: RouteConfig | Mapping[str, Any] | None,
        system_prompt: str | None = None,
        history: Sequence[ChatMessage | dict] | None = None,
    ) -> NormalizedResult:
        route_config = resolve_route_config(model_id, config)
        provider = detect_provider(model_id)
        client = self.client_for(provider)

        request = ProviderRequest(
            kind=kind,
            model_id=model_id,
            config=route_config,
            message=message,
            system_prompt=system_prompt,
            history=coerce_history(history),
        )
        logger.debug("Routing %s request for %s to %s", kind.value, model_id, provider.value)
        reply: ProviderReply = await client.complete(request)

        self._track(route_config, provider, model_id, reply, kind)

        return NormalizedResult(
            text=reply.text,
            meta=ResultMeta(
                provider=provider,
                temperature=route_config.temperature,
                reasoning_effort=route_config.reasoning_effort,
                cache_metrics=reply.usage,
            ),
        )

    def _track(
        self,
        route_config: RouteConfig,
        provider: ProviderKind,
        model_id: str,
        reply: ProviderReply,
        kind: RequestKind,
    ) -> None:
        if self._sink is None:
            return
        try:
            self._sink.track(route_config.case_id, provider.value, model_id, reply.usage, kind.value)
        except Exception as exc:
            logger.warning("Could not schedule cache metrics for %s: %s", model_id, exc)

    async def chat(
        self,
        model_id: str,
        system_prompt: str | None,
        history: Sequence[ChatMessage | dict] | None,
        message: str,
        config: RouteConfig | Mapping[str, Any] | None = None,
    ) -> NormalizedResult:
        """One protagonist turn. The caller owns the history and appends to it."""
        return await self._dispatch(
            RequestKind.CHAT,
            model_id,
            message,
            config,
            system_prompt=system_prompt,
            history=history,
        )

    async def evaluate(
        self,
        model_id: str,
        prompt: str,
        config: RouteConfig | Mapping[str, Any] | None = None,
    ) -> str:
        """Return the raw JSON text; normalize it with casechat.evaluation."""
        result = await self._dispatch(RequestKind.EVALUATION, model_id, prompt, config)
        return result.text

    async def generate_outline(
        self,
        model_id: str,
        prompt: str,
        config: RouteConfig | Mapping[str, Any] | None = None,
    ) -> NormalizedResult:
        return await self._dispatch(RequestKind.OUTLINE, model_id, prompt, config)

    async def complete(
        self,
        model_id: str,
        prompt: str,
        config: RouteConfig | Mapping[str, Any] | None = None,
    ) -> NormalizedResult:
        """Single-shot free-text prompt with a short output ceiling."""
        return await self._dispatch(RequestKind.INFERENCE, model_id, prompt, config)
