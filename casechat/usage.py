"""Normalize vendor usage envelopes into CacheMetrics.

Each vendor reports token usage under different names. SDK responses expose
them as attributes, raw JSON as dict keys (Gemini's REST shape is camelCase),
so every lookup accepts both. Absent fields read as 0, never None.
"""

from typing import Any

from casechat.models import CacheMetrics


def _read(source: Any, *names: str) -> Any:
    """Return the first non-None value found under any of names."""
    if source is None:
        return None
    for name in names:
        if isinstance(source, dict):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value is not None:
            return value
    return None


def _count(source: Any, *names: str) -> int:
    value = _read(source, *names)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)


def openai_cache_metrics(usage: Any) -> CacheMetrics:
    """OpenAI reports cached prompt tokens either flat or under prompt_tokens_details."""
    cached = _count(usage, "cached_tokens")
    if not cached:
        cached = _count(_read(usage, "prompt_tokens_details"), "cached_tokens")
    return CacheMetrics(
        cache_hit=cached > 0,
        input_tokens=_count(usage, "prompt_tokens"),
        cached_tokens=cached,
        output_tokens=_count(usage, "completion_tokens"),
    )


def anthropic_cache_metrics(usage: Any) -> CacheMetrics:
    """A cache write alone is not a hit; only cache reads count."""
    created = _count(usage, "cache_creation_input_tokens")
    read = _count(usage, "cache_read_input_tokens")
    return CacheMetrics(
        cache_hit=read > 0,
        input_tokens=_count(usage, "input_tokens"),
        cached_tokens=created + read,
        output_tokens=_count(usage, "output_tokens"),
    )


def gemini_cache_metrics(usage_metadata: Any) -> CacheMetrics:
    # Standard calls never use explicit context caching, so cache_hit stays False.
    return CacheMetrics(
        cache_hit=False,
        input_tokens=_count(usage_metadata, "prompt_token_count", "promptTokenCount"),
        cached_tokens=_count(usage_metadata, "cached_content_token_count", "cachedContentTokenCount"),
        output_tokens=_count(usage_metadata, "candidates_token_count", "candidatesTokenCount"),
    )
