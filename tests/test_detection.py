"""Tests for casechat/detection.py."""

import pytest

from casechat.detection import detect_provider, is_reasoning_model
from casechat.models import ProviderKind


@pytest.mark.parametrize(
    "model_id, expected",
    [
        ("gpt-4o", ProviderKind.OPENAI),
        ("GPT-4o-mini", ProviderKind.OPENAI),
        ("o1-preview", ProviderKind.OPENAI),
        ("azure-openai-deployment", ProviderKind.OPENAI),
        ("claude-3-opus", ProviderKind.ANTHROPIC),
        ("Claude-3-5-Sonnet-Latest", ProviderKind.ANTHROPIC),
        ("bedrock/anthropic.claude-v2", ProviderKind.ANTHROPIC),
        ("gemini-pro", ProviderKind.GOOGLE),
        ("gemini-2.0-flash", ProviderKind.GOOGLE),
        ("some-unknown-model", ProviderKind.GOOGLE),
        ("", ProviderKind.GOOGLE),
    ],
)
def test_detect_provider(model_id, expected):
    assert detect_provider(model_id) is expected


def test_detect_provider_none_falls_back_to_google():
    assert detect_provider(None) is ProviderKind.GOOGLE


def test_detect_provider_openai_rule_wins_over_anthropic():
    """Rules are checked in order; 'openai' anywhere beats a later anthropic match."""
    assert detect_provider("openai-proxy-for-anthropic") is ProviderKind.OPENAI


@pytest.mark.parametrize(
    "model_id, expected",
    [
        ("o1-preview", True),
        ("O1-mini", True),
        ("gpt-5-mini", True),
        ("gpt-5", True),
        ("gpt-4o", False),
        ("claude-3-opus", False),
        ("gemini-pro", False),
        ("", False),
    ],
)
def test_is_reasoning_model(model_id, expected):
    assert is_reasoning_model(model_id) is expected
