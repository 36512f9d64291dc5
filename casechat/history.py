"""Convert the internal user/model conversation into each vendor's message shape.

All three adapters keep order and length; nothing is dropped or truncated.
"""

from collections.abc import Sequence

from google.genai import types as genai_types

from casechat.models import ChatMessage


def _vendor_role(role: str) -> str:
    return "assistant" if role == "model" else "user"


def to_openai_history(history: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": _vendor_role(m.role), "content": m.content} for m in history]


def to_anthropic_history(history: Sequence[ChatMessage]) -> list[dict]:
    return [
        {"role": _vendor_role(m.role), "content": [{"type": "text", "text": m.content}]}
        for m in history
    ]


def to_gemini_history(history: Sequence[ChatMessage]) -> list[genai_types.Content]:
    """Gemini already speaks user/model, so roles pass through unchanged."""
    return [
        genai_types.Content(role=m.role, parts=[genai_types.Part(text=m.content)])
        for m in history
    ]


def coerce_history(items: Sequence[ChatMessage | dict] | None) -> list[ChatMessage]:
    """Accept ChatMessage objects or {role, content} dicts (e.g. from JSON)."""
    history: list[ChatMessage] = []
    for item in items or []:
        if isinstance(item, ChatMessage):
            history.append(item)
            continue
        role = item.get("role")
        if role not in ("user", "model"):
            raise ValueError(f"History role must be 'user' or 'model', got {role!r}")
        history.append(ChatMessage(role=role, content=str(item.get("content", ""))))
    return history
