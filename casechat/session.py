"""Caller-side chat session: owns the conversation and appends each completed turn."""

from collections.abc import Mapping, Sequence
from typing import Any

from casechat.models import ChatMessage, NormalizedResult, RouteConfig
from casechat.router import LLMRouter


class ChatSession:
    def __init__(
        self,
        router: LLMRouter,
        model_id: str,
        system_prompt: str,
        history: Sequence[ChatMessage] | None = None,
        config: RouteConfig | Mapping[str, Any] | None = None,
    ) -> None:
        self._router = router
        self.model_id = model_id
        self.system_prompt = system_prompt
        self.config = config
        self._history: list[ChatMessage] = list(history or [])

    @property
    def history(self) -> list[ChatMessage]:
        return list(self._history)

    async def send_message(self, message: str) -> NormalizedResult:
        """Send one student turn. On failure the history is left unchanged."""
        result = await self._router.chat(
            self.model_id,
            self.system_prompt,
            list(self._history),
            message,
            self.config,
        )
        self._history = [
            *self._history,
            ChatMessage(role="user", content=message),
            ChatMessage(role="model", content=result.text),
        ]
        return result
