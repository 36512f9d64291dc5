"""Tests for casechat/history.py."""

import pytest

from casechat.history import coerce_history, to_anthropic_history, to_gemini_history, to_openai_history
from casechat.models import ChatMessage


def test_openai_history_maps_model_to_assistant(sample_history):
    mapped = to_openai_history(sample_history)
    assert len(mapped) == len(sample_history)
    assert [m["role"] for m in mapped] == ["user", "assistant", "user"]
    assert [m["content"] for m in mapped] == [m.content for m in sample_history]


def test_anthropic_history_wraps_content_blocks(sample_history):
    mapped = to_anthropic_history(sample_history)
    assert len(mapped) == len(sample_history)
    assert mapped[1] == {
        "role": "assistant",
        "content": [{"type": "text", "text": "Great. What would you do?"}],
    }


def test_gemini_history_keeps_native_roles(sample_history):
    mapped = to_gemini_history(sample_history)
    assert [c.role for c in mapped] == ["user", "model", "user"]
    assert mapped[2].parts[0].text == "Open the second store."


def test_adapters_handle_empty_history():
    assert to_openai_history([]) == []
    assert to_anthropic_history([]) == []
    assert to_gemini_history([]) == []


def test_adapters_do_not_mutate_input(sample_history):
    before = list(sample_history)
    to_openai_history(sample_history)
    to_anthropic_history(sample_history)
    assert sample_history == before


def test_coerce_history_accepts_dicts_and_messages():
    history = coerce_history([
        {"role": "user", "content": "Hi"},
        ChatMessage(role="model", content="Hello"),
    ])
    assert history == [ChatMessage("user", "Hi"), ChatMessage("model", "Hello")]


def test_coerce_history_rejects_unknown_role():
    with pytest.raises(ValueError, match="role"):
        coerce_history([{"role": "assistant", "content": "Hi"}])


def test_coerce_history_none_is_empty():
    assert coerce_history(None) == []
