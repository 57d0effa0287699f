from __future__ import annotations

import time
from functools import lru_cache
from typing import Optional, Protocol, Sequence

from langchain_core.messages import BaseMessage, SystemMessage
from langchain_openai import ChatOpenAI
from loguru import logger

from .config import get_settings
from .errors import CompletionError
from .states import ErrorKind


@lru_cache(maxsize=8)
def get_openai_chat(model: Optional[str] = None, temperature: Optional[float] = None) -> Optional[ChatOpenAI]:
    """Return a cached LangChain ChatOpenAI client using env configuration.

    Env vars:
      - OPENAI_API_KEY (required)
      - OPENAI_MODEL (optional; default: gpt-4o-mini)
      - OPENAI_TEMPERATURE, OPENAI_MAX_TOKENS (optional)
    """
    settings = get_settings()
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY not set; cannot initialize OpenAI chat client")
        return None
    mdl = model or settings.openai_model
    if temperature is None:
        temperature = settings.openai_temperature
    logger.debug(f"Initializing OpenAI chat model={mdl} temperature={temperature}")
    kwargs = {"model": mdl, "temperature": temperature, "api_key": settings.openai_api_key}
    if settings.openai_max_tokens:
        kwargs["max_tokens"] = settings.openai_max_tokens
    return ChatOpenAI(**kwargs)


class CompletionProvider(Protocol):
    async def complete(self, system_prompt: str, history: Sequence[BaseMessage]) -> str:
        ...


def classify_completion_error(exc: Exception) -> CompletionError:
    """Map a client exception onto rate-limit / quota / generic upstream."""
    if isinstance(exc, CompletionError):
        return exc
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    code = str(getattr(exc, "code", "") or "").lower()
    if status == 402 or code == "insufficient_quota":
        return CompletionError("AI credits exhausted. Please add funds.", ErrorKind.QUOTA_EXHAUSTED, status or 402)
    if status == 429:
        return CompletionError("Rate limited. Please wait a moment.", ErrorKind.RATE_LIMITED, status)
    if status is not None:
        return CompletionError(f"AI gateway error: {status}", ErrorKind.UPSTREAM, status)
    return CompletionError(f"AI gateway error: {type(exc).__name__}: {exc}", ErrorKind.UPSTREAM)


class LangChainCompletionProvider:
    """complete(system_prompt, history) over a LangChain chat model (non-streaming)."""

    def __init__(self, chat: Optional[ChatOpenAI] = None, label: str = "openai") -> None:
        self._chat = chat
        self.label = label

    @property
    def chat(self) -> ChatOpenAI:
        if self._chat is None:
            self._chat = get_openai_chat()
        if self._chat is None:
            raise CompletionError("OPENAI_API_KEY not configured", ErrorKind.UPSTREAM)
        return self._chat

    async def complete(self, system_prompt: str, history: Sequence[BaseMessage]) -> str:
        chat = self.chat
        messages = [SystemMessage(content=system_prompt), *history]
        t0 = time.perf_counter()
        try:
            result = await chat.ainvoke(messages)
        except Exception as e:
            err = classify_completion_error(e)
            logger.error(f"llm_error | provider={self.label} kind={err.kind.value} status={err.status} | {e}")
            raise err from e
        dt = time.perf_counter() - t0
        logger.info(f"llm_call | provider={self.label} messages={len(messages)} dt={dt:.2f}s")
        content = result.content
        if isinstance(content, list):
            content = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
        return content or ""
