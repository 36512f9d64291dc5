"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    EvaluationConfig,
    InferenceConfig,
    MetricsConfig,
    PromptsConfig,
    ProviderConfig,
    TokenLimitsConfig,
)
from casechat.metrics import MetricsSink, MetricsStore
from casechat.models import (
    CacheMetrics,
    CaseData,
    ChatMessage,
    ProviderKind,
    ProviderReply,
    ProviderRequest,
)
from casechat.providers.base import LLMClient
from casechat.router import LLMRouter


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        evaluation_system="Return only JSON matching the expected evaluation schema.",
        coach="Case {case_title} with {protagonist}.\n{case_content}\nHints: {free_hints} {hint_word}\n"
              "Student: {student_name}\n---\n{transcript}\n---",
        position_inference="CASE: {case_title}\nQ: {chat_question}\n{arguments_block}\n"
                           "TRANSCRIPT:\n{transcript}\nOptions: {options}\n"
                           '{{"position": "<one of: {options}>"}}',
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(
        providers={
            "openai": ProviderConfig(name="openai", api_key_envs=["TEST_OPENAI_KEY"]),
            "anthropic": ProviderConfig(name="anthropic", api_key_envs=["TEST_ANTHROPIC_KEY"]),
            "google": ProviderConfig(name="google", api_key_envs=["TEST_GEMINI_KEY", "TEST_API_KEY"]),
        },
        token_limits=TokenLimitsConfig(
            limits={
                "openai": {"outline": 16000, "inference": 200},
                "anthropic": {"chat": 1024, "evaluation": 1024, "outline": 8192, "inference": 200},
                "google": {"outline": 8192, "inference": 200},
            }
        ),
        metrics=MetricsConfig(db_path=tmp_path / "metrics.db"),
        inference=InferenceConfig(),
        evaluation=EvaluationConfig(),
        prompts=sample_prompts_config,
    )


@pytest.fixture
def sample_case() -> CaseData:
    return CaseData(
        case_id="malawi-pizza",
        case_title="Malawi's Pizza",
        protagonist="Kent Bowen",
        chat_question="Should Malawi's open a second location?",
        arguments_for="Demand exceeds capacity.",
        arguments_against="Cash reserves are thin.",
        case_content="Malawi's Pizza is a family restaurant in Iowa.",
    )


@pytest.fixture
def sample_history() -> list[ChatMessage]:
    return [
        ChatMessage(role="user", content="Hello, I read the case."),
        ChatMessage(role="model", content="Great. What would you do?"),
        ChatMessage(role="user", content="Open the second store."),
    ]


@pytest.fixture
def metrics_store(tmp_path: Path) -> MetricsStore:
    return MetricsStore(tmp_path / "metrics.db")


class FakeClient(LLMClient):
    """Test double LLMClient that records every request it receives."""

    def __init__(
        self,
        provider: ProviderKind,
        text: str = "Fake reply",
        usage: CacheMetrics | None = None,
    ) -> None:
        self.provider = provider
        self.requests: list[ProviderRequest] = []
        self._reply = ProviderReply(
            text=text,
            usage=usage or CacheMetrics(cache_hit=False, input_tokens=10, cached_tokens=0, output_tokens=5),
        )
        self.complete = AsyncMock(side_effect=self._record)  # type: ignore[assignment]

    async def _record(self, request: ProviderRequest) -> ProviderReply:
        self.requests.append(request)
        return self._reply

    async def complete(self, request: ProviderRequest) -> ProviderReply:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._reply


@pytest.fixture
def fake_clients() -> dict[ProviderKind, FakeClient]:
    return {kind: FakeClient(kind, text=f"Reply from {kind.value}") for kind in ProviderKind}


@pytest.fixture
def router(sample_app_config: AppConfig, fake_clients, metrics_store: MetricsStore) -> LLMRouter:
    return LLMRouter(sample_app_config, metrics_sink=MetricsSink(metrics_store), clients=fake_clients)
