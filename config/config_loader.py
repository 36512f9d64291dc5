"""Load settings.yaml into typed dataclasses. Logs API key availability at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ProviderConfig:
    name: str                      # "openai", "anthropic", "google"
    api_key_envs: list[str]

    def api_key(self) -> str | None:
        """Return the first non-empty key among api_key_envs, or None."""
        for env_name in self.api_key_envs:
            value = os.environ.get(env_name, "").strip()
            if value:
                return value
        return None


@dataclass
class TokenLimitsConfig:
    # provider name -> request kind -> max output tokens
    limits: dict[str, dict[str, int]] = field(default_factory=dict)

    def get(self, provider: str, request_kind: str) -> int | None:
        return self.limits.get(provider, {}).get(request_kind)


@dataclass
class MetricsConfig:
    db_path: Path
    regular_cost_per_1k: float = 0.003
    cached_cost_per_1k: float = 0.0003


@dataclass
class InferenceConfig:
    default_position_options: list[str] = field(default_factory=lambda: ["for", "against"])
    temperature: float = 0.3


@dataclass
class EvaluationConfig:
    student_label: str = "Student"
    protagonist_label: str = "CEO"
    free_hints: int = 1


@dataclass
class PromptsConfig:
    evaluation_system: str
    coach: str
    position_inference: str


@dataclass
class AppConfig:
    providers: dict[str, ProviderConfig]
    token_limits: TokenLimitsConfig
    metrics: MetricsConfig
    inference: InferenceConfig
    evaluation: EvaluationConfig
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Missing API keys are only logged here; the router raises when a call
    actually needs the key.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        provider_cfg = ProviderConfig(
            name=provider_name,
            api_key_envs=[str(e) for e in provider_raw["api_key_envs"]],
        )
        providers[provider_name] = provider_cfg

        if provider_cfg.api_key():
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider has no API key: %s (set %s in .env)",
                provider_name,
                " or ".join(provider_cfg.api_key_envs),
            )

    token_limits = TokenLimitsConfig(
        limits={
            provider_name: {kind: int(value) for kind, value in (kinds or {}).items()}
            for provider_name, kinds in raw.get("token_limits", {}).items()
        }
    )

    metrics_raw = raw["metrics"]
    metrics = MetricsConfig(
        db_path=Path(metrics_raw["db_path"]),
        regular_cost_per_1k=float(metrics_raw.get("regular_cost_per_1k", 0.003)),
        cached_cost_per_1k=float(metrics_raw.get("cached_cost_per_1k", 0.0003)),
    )

    inference_raw = raw.get("inference", {})
    inference = InferenceConfig(
        default_position_options=[
            str(o) for o in inference_raw.get("default_position_options", ["for", "against"])
        ],
        temperature=float(inference_raw.get("temperature", 0.3)),
    )

    evaluation_raw = raw.get("evaluation", {})
    evaluation = EvaluationConfig(
        student_label=str(evaluation_raw.get("student_label", "Student")),
        protagonist_label=str(evaluation_raw.get("protagonist_label", "CEO")),
        free_hints=int(evaluation_raw.get("free_hints", 1)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        evaluation_system=prompts_raw["evaluation_system"],
        coach=prompts_raw["coach"],
        position_inference=prompts_raw["position_inference"],
    )

    return AppConfig(
        providers=providers,
        token_limits=token_limits,
        metrics=metrics,
        inference=inference,
        evaluation=evaluation,
        prompts=prompts,
        available_providers=available_providers,
    )
