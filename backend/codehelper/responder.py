"""Assistant reply generation for chat messages."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from .api_models import MessagePayload
from .config import get_settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are Code Helper, a patient programming tutor. Guide the learner toward the "
    "answer with hints and questions before giving full solutions."
)

FALLBACK_REPLY = (
    "Thanks! I've noted your message. Walk me through what you have tried so far "
    "and where you got stuck, and we'll work through it together."
)


class Responder(Protocol):
    async def reply(self, history: Sequence[MessagePayload]) -> str: ...


class EchoResponder:
    """Deterministic responder used when no model is configured."""

    async def reply(self, history: Sequence[MessagePayload]) -> str:
        return FALLBACK_REPLY


class OpenAIResponder:
    def __init__(self, model: str, client: Optional[AsyncOpenAI] = None) -> None:
        self._model = model
        self._client = client or AsyncOpenAI()

    async def reply(self, history: Sequence[MessagePayload]) -> str:
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend({"role": item.role, "content": item.content} for item in history)
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,  # type: ignore[arg-type]
            )
        except OpenAIError as exc:
            logger.error("OpenAI request failed while generating a chat reply: %s", exc)
            return FALLBACK_REPLY
        content = completion.choices[0].message.content if completion.choices else None
        return content or FALLBACK_REPLY


_responder: Optional[Responder] = None


def get_responder() -> Responder:
    global _responder
    if _responder is None:
        settings = get_settings()
        if settings.openai_api_key:
            _responder = OpenAIResponder(
                settings.responder_model,
                client=AsyncOpenAI(api_key=settings.openai_api_key),
            )
        else:
            logger.info("OPENAI_API_KEY not configured; chat replies use the built-in responder.")
            _responder = EchoResponder()
    return _responder


def reset_responder() -> None:
    global _responder
    _responder = None


__all__ = ["EchoResponder", "OpenAIResponder", "Responder", "get_responder", "reset_responder"]
