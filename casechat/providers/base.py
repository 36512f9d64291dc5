"""Abstract base and error types for all vendor clients."""

from abc import ABC, abstractmethod

from casechat.models import ProviderKind, ProviderReply, ProviderRequest, RequestKind

_VENDOR_LABELS = {
    ProviderKind.OPENAI: "OpenAI",
    ProviderKind.ANTHROPIC: "Anthropic",
    ProviderKind.GOOGLE: "Gemini",
}


def vendor_label(provider: ProviderKind) -> str:
    return _VENDOR_LABELS[provider]


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider: ProviderKind, message: str) -> None:
        self.provider = provider
        self.detail = message
        super().__init__(self._format(provider, message))

    @staticmethod
    def _format(provider: ProviderKind, message: str) -> str:
        return f"{vendor_label(provider)} error: {message}"


class ConfigurationError(ProviderError):
    """The API key required by the resolved provider is not set."""

    @staticmethod
    def _format(provider: ProviderKind, message: str) -> str:
        return message


class EmptyResponseError(ProviderError):
    """The vendor answered successfully but produced no usable text."""

    @staticmethod
    def _format(provider: ProviderKind, message: str) -> str:
        return message


class LLMClient(ABC):
    """One vendor's completion endpoint behind a single call."""

    provider: ProviderKind

    @abstractmethod
    async def complete(self, request: ProviderRequest) -> ProviderReply:
        """Run one request against the vendor.

        Args:
            request: Kind, model id, effective route config, prompt material.

        Returns:
            ProviderReply with non-empty text and normalized usage.

        Raises:
            ProviderError: On a non-success status or transport failure.
            EmptyResponseError: When the vendor returns no text.
        """
        ...


_EMPTY_WHAT = {
    RequestKind.CHAT: "chat response",
    RequestKind.EVALUATION: "evaluation response",
    RequestKind.OUTLINE: "outline",
    RequestKind.INFERENCE: "inference response",
}


def empty_response(provider: ProviderKind, kind: RequestKind) -> EmptyResponseError:
    """e.g. 'Gemini returned an empty evaluation response'."""
    return EmptyResponseError(
        provider, f"{vendor_label(provider)} returned an empty {_EMPTY_WHAT[kind]}"
    )
