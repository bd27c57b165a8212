"""Planner collaborators for the worldbook agent.

A planner turns a fully rendered prompt into free-form response text.  The
engine and its analysis services only ever see ``BasePlanner``; the
``ChatModelPlanner`` adapter plugs in any LangChain chat model.

Classes
-------
BasePlanner
    Abstract ``render(prompt) -> str`` contract plus token accounting.
ChatModelPlanner
    Adapter over ``langchain_core`` ``BaseChatModel`` with optional token
    streaming and a per-call timeout.
"""

from __future__ import annotations

import concurrent.futures
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from worldbook_agent.infrastructure.config import PlannerConfig

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], None]


# ===================================================================== #
#  Contract                                                              #
# ===================================================================== #

class BasePlanner(ABC):
    """Generative planner consumed by the execution loop."""

    @abstractmethod
    def render(self, prompt: str) -> str:
        """Return the model's response text for *prompt*."""

    def consume_usage(self) -> int:
        """Tokens spent since the previous call; planners without accounting report 0."""
        return 0


# ===================================================================== #
#  LangChain adapter                                                     #
# ===================================================================== #

def _content_text(content: Any) -> str:
    """Flatten string or content-block message content to plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content or "")


class ChatModelPlanner(BasePlanner):
    """Planner backed by a LangChain chat model.

    Parameters
    ----------
    model:
        Any ``BaseChatModel``.
    config:
        Sampling, timeout and streaming settings.
    on_token:
        Receives each streamed text chunk when ``config.stream`` is set.
        Purely observational; the full text is returned either way.
    """

    def __init__(
        self,
        model: BaseChatModel,
        config: PlannerConfig | None = None,
        on_token: TokenCallback | None = None,
    ) -> None:
        self.model = model
        self.config = config or PlannerConfig()
        self.config.validate()
        self.on_token = on_token
        self._pending_tokens = 0
        self._runnable = self._build_runnable()

    def _build_runnable(self) -> Any:
        bind_kwargs: dict[str, Any] = {}
        if self.config.temperature is not None:
            bind_kwargs["temperature"] = self.config.temperature
        if self.config.max_tokens is not None:
            bind_kwargs["max_tokens"] = self.config.max_tokens
        return self.model.bind(**bind_kwargs) if bind_kwargs else self.model

    # -- invocation ---------------------------------------------------------

    def _call(self, messages: list[BaseMessage]) -> AIMessage:
        if self.config.stream and self.on_token is not None:
            return self._stream(messages)
        return self._runnable.invoke(messages)

    def _stream(self, messages: list[BaseMessage]) -> AIMessage:
        merged = None
        for chunk in self._runnable.stream(messages):
            text = _content_text(chunk.content)
            if text:
                self.on_token(text)
            merged = chunk if merged is None else merged + chunk
        if merged is None:
            return AIMessage(content="")
        return AIMessage(
            content=merged.content,
            usage_metadata=getattr(merged, "usage_metadata", None),
        )

    def _invoke_with_timeout(self, messages: list[BaseMessage]) -> AIMessage:
        if self.config.timeout is None:
            return self._call(messages)
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            future = pool.submit(self._call, messages)
            return future.result(timeout=self.config.timeout)
        finally:
            # a timed-out call keeps running in its worker; do not wait for it
            pool.shutdown(wait=False)

    def render(self, prompt: str) -> str:
        """Send *prompt* as a single human message and return the reply text.

        Errors propagate; callers decide how to degrade.
        """
        response = self._invoke_with_timeout([HumanMessage(content=prompt)])
        text = _content_text(response.content)
        self._pending_tokens += self._usage_of(response, prompt, text)
        return text

    # -- accounting ---------------------------------------------------------

    @staticmethod
    def _usage_of(response: AIMessage, prompt: str, text: str) -> int:
        usage = getattr(response, "usage_metadata", None)
        if usage and usage.get("total_tokens"):
            return int(usage["total_tokens"])
        # rough 4-chars-per-token estimate when the provider reports nothing
        return (len(prompt) + len(text)) // 4

    def consume_usage(self) -> int:
        used, self._pending_tokens = self._pending_tokens, 0
        return used
