"""Model id heuristics: which vendor serves a model, and whether it is a reasoning model."""

from casechat.models import ProviderKind

_OPENAI_PREFIXES = ("gpt", "o1")
_ANTHROPIC_PREFIXES = ("claude",)
_REASONING_PREFIXES = ("o1", "gpt-5")


def detect_provider(model_id: str | None) -> ProviderKind:
    """Map a model id to its provider. Unknown ids fall through to Google."""
    model = (model_id or "").lower()
    if model.startswith(_OPENAI_PREFIXES) or "openai" in model:
        return ProviderKind.OPENAI
    if model.startswith(_ANTHROPIC_PREFIXES) or "anthropic" in model:
        return ProviderKind.ANTHROPIC
    return ProviderKind.GOOGLE


def is_reasoning_model(model_id: str | None) -> bool:
    """Reasoning models reject temperature and accept reasoning_effort instead."""
    return (model_id or "").lower().startswith(_REASONING_PREFIXES)
