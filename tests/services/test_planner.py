"""Tests for planner adapters."""

from __future__ import annotations

import concurrent.futures
import time
from typing import Any

import pytest

from worldbook_agent.infrastructure.config import PlannerConfig
from worldbook_agent.services.planner import ChatModelPlanner, _content_text
from worldbook_agent.testing import MockChatModel, ScriptedPlanner


class _SlowModel(MockChatModel):
    def _generate(self, messages: Any, stop: Any = None, run_manager: Any = None, **kwargs: Any) -> Any:
        time.sleep(0.5)
        return super()._generate(messages, stop, run_manager, **kwargs)


class TestContentText:
    def test_string(self) -> None:
        assert _content_text("hi") == "hi"

    def test_content_blocks(self) -> None:
        blocks = [{"type": "text", "text": "a"}, {"type": "image_url", "image_url": "x"}, "b"]
        assert _content_text(blocks) == "ab"

    def test_none(self) -> None:
        assert _content_text(None) == ""


class TestChatModelPlanner:
    def test_render_returns_text(self) -> None:
        model = MockChatModel(responses=["<action>SEARCH</action>"])
        planner = ChatModelPlanner(model)
        assert planner.render("choose a tool") == "<action>SEARCH</action>"
        assert model.prompts == ["choose a tool"]

    def test_reported_usage(self) -> None:
        planner = ChatModelPlanner(MockChatModel(responses=["ok"], tokens_per_call=42))
        planner.render("a")
        planner.render("b")
        assert planner.consume_usage() == 84
        assert planner.consume_usage() == 0

    def test_estimated_usage(self) -> None:
        planner = ChatModelPlanner(MockChatModel(responses=["x" * 40]))
        planner.render("y" * 40)
        assert planner.consume_usage() == 20

    def test_responses_cycle(self) -> None:
        planner = ChatModelPlanner(MockChatModel(responses=["one", "two"]))
        assert [planner.render("p") for _ in range(3)] == ["one", "two", "one"]

    def test_streaming_forwards_tokens(self) -> None:
        seen: list[str] = []
        planner = ChatModelPlanner(
            MockChatModel(responses=["streamed reply"]),
            PlannerConfig(stream=True),
            on_token=seen.append,
        )
        assert planner.render("p") == "streamed reply"
        assert "".join(seen) == "streamed reply"

    def test_sampling_settings_bound(self) -> None:
        planner = ChatModelPlanner(
            MockChatModel(responses=["ok"]), PlannerConfig(temperature=0.2, max_tokens=256),
        )
        assert planner.render("p") == "ok"

    def test_timeout(self) -> None:
        planner = ChatModelPlanner(_SlowModel(responses=["late"]), PlannerConfig(timeout=0.05))
        with pytest.raises(concurrent.futures.TimeoutError):
            planner.render("p")

    def test_invalid_config(self) -> None:
        with pytest.raises(ValueError):
            ChatModelPlanner(MockChatModel(), PlannerConfig(timeout=0))


class TestScriptedPlanner:
    def test_script_then_default(self) -> None:
        planner = ScriptedPlanner(["a", "b"], default="z")
        assert [planner.render(str(i)) for i in range(4)] == ["a", "b", "z", "z"]
        assert planner.prompts == ["0", "1", "2", "3"]

    def test_scripted_exception_raised(self) -> None:
        planner = ScriptedPlanner([RuntimeError("down")])
        with pytest.raises(RuntimeError, match="down"):
            planner.render("p")

    def test_usage(self) -> None:
        planner = ScriptedPlanner(tokens_per_call=7)
        planner.render("p")
        planner.render("p")
        assert planner.consume_usage() == 14
        assert planner.consume_usage() == 0
