"""Tests for domain value objects and entities."""

from __future__ import annotations

import pytest

from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import (
    ClarityLevel,
    MessageRole,
    MessageType,
    OutputCategory,
    ToolType,
)
from worldbook_agent.domain.values import (
    ExecutionResult,
    KnowledgeEntry,
    WorldbookEntry,
    is_filled,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, False),
        ("", False),
        ("  ", False),
        ("x", True),
        ([], False),
        (["", None], False),
        (["hi"], True),
        ({}, False),
        ({"a": ""}, False),
        ({"a": "b"}, True),
        (0, True),
        (False, True),
    ],
)
def test_is_filled(value, expected) -> None:
    assert is_filled(value) is expected


class TestWorldbookEntry:
    @pytest.mark.parametrize(
        ("category", "constant", "position", "order"),
        [
            (OutputCategory.STATUS, True, 0, 1),
            (OutputCategory.USER_SETTING, True, 0, 2),
            (OutputCategory.WORLD_VIEW, True, 0, 3),
            (OutputCategory.SUPPLEMENT, False, 2, 10),
        ],
    )
    def test_category_defaults(self, category, constant, position, order) -> None:
        entry = WorldbookEntry.for_category(category, {"content": "text"})
        assert (entry.constant, entry.position, entry.insert_order) == (constant, position, order)
        assert entry.selective

    def test_supplement_index_offsets_order(self) -> None:
        entry = WorldbookEntry.for_category(OutputCategory.SUPPLEMENT, {"content": "x"}, index=3)
        assert entry.insert_order == 13

    def test_explicit_values_win(self) -> None:
        entry = WorldbookEntry.for_category(
            OutputCategory.SUPPLEMENT,
            {"content": "x", "keys": ["a", " b "], "order": 50, "constant": True},
        )
        assert entry.insert_order == 50
        assert entry.constant
        assert entry.keys == ("a", "b")

    def test_comma_separated_keys(self) -> None:
        entry = WorldbookEntry.for_category(OutputCategory.SUPPLEMENT, {"content": "x", "keys": "docks, pier"})
        assert entry.keys == ("docks", "pier")

    def test_bare_string(self) -> None:
        entry = WorldbookEntry.for_category(OutputCategory.STATUS, "Day 1 of the case")
        assert entry.content == "Day 1 of the case"
        assert entry.word_count == 5
        assert entry.is_valid

    def test_blank_is_invalid(self) -> None:
        assert not WorldbookEntry(content="  \n").is_valid


class TestKnowledgeEntry:
    def test_from_loose_payload(self) -> None:
        entry = KnowledgeEntry.from_dict({"id": "k1", "content": "c", "relevanceScore": "0.7"})
        assert entry.entry_id == "k1"
        assert entry.source == "unknown"
        assert entry.relevance_score == pytest.approx(0.7)

    def test_generated_id(self) -> None:
        assert KnowledgeEntry(source="s", content="c").entry_id.startswith("knowledge_")


class TestExecutionResult:
    def test_payload_only_for_mappings(self) -> None:
        assert ExecutionResult.ok({"a": 1}).payload() == {"a": 1}
        assert ExecutionResult.ok("text").payload() == {}
        assert ExecutionResult.fail("e").payload() == {}


class TestTask:
    def test_from_string(self) -> None:
        task = Task.from_dict("Write lore", index=2)
        assert task.description == "Write lore"
        assert task.task_id.endswith("_2")
        assert task.sub_problems == ()

    def test_from_mapping(self) -> None:
        task = Task.from_dict(
            {"description": "A", "sub_problems": ["a1", {"description": "a2", "reasoning": "r"}]},
        )
        assert [s.description for s in task.sub_problems] == ["a1", "a2"]
        assert task.sub_problems[1].reasoning == "r"

    def test_rewrite_keeps_id(self) -> None:
        task = Task.from_dict({"task_id": "t1", "description": "A", "sub_problems": ["a"]})
        rewritten = task.rewrite("B")
        assert rewritten.task_id == "t1"
        assert rewritten.sub_problems == task.sub_problems


class TestEnums:
    def test_tool_lookup(self) -> None:
        assert ToolType.lookup("ask_user") == ToolType.ASK_USER
        assert ToolType.lookup("TELEPORT") is None

    def test_category_tool(self) -> None:
        assert OutputCategory.WORLD_VIEW.tool == ToolType.WORLD_VIEW
        assert OutputCategory.STATUS.is_singleton
        assert not OutputCategory.SUPPLEMENT.is_singleton

    @pytest.mark.parametrize(
        ("text", "level"),
        [("clear", ClarityLevel.CLEAR), (" Vague ", ClarityLevel.VAGUE), ("unsure", ClarityLevel.MODERATE), (None, ClarityLevel.MODERATE)],
    )
    def test_clarity_parse(self, text, level) -> None:
        assert ClarityLevel.parse(text) == level

    def test_critical_feedback(self) -> None:
        failure = Message(MessageRole.SYSTEM, "x", MessageType.TOOL_FAILURE)
        action = Message(MessageRole.AGENT, "x", MessageType.AGENT_ACTION)
        assert failure.is_critical_feedback
        assert not action.is_critical_feedback


class TestLoosePayloads:
    @pytest.mark.parametrize("position", [None, "top", [1]])
    def test_unusable_position_uses_default(self, position) -> None:
        entry = WorldbookEntry.for_category(
            OutputCategory.STATUS, {"content": "x", "position": position, "insert_order": None},
        )
        assert entry.position == 0
        assert entry.insert_order == 1

    def test_numeric_text_accepted(self) -> None:
        entry = WorldbookEntry.for_category(OutputCategory.SUPPLEMENT, {"content": "x", "position": "4"})
        assert entry.position == 4

    def test_non_mapping_entry_rejected(self) -> None:
        with pytest.raises(TypeError, match="world_view_data"):
            WorldbookEntry.for_category(OutputCategory.WORLD_VIEW, [1, 2])

    @pytest.mark.parametrize("score", ["high", None, {"v": 1}])
    def test_unusable_relevance_score(self, score) -> None:
        entry = KnowledgeEntry.from_dict({"content": "c", "relevance_score": score, "timestamp": "later"})
        assert entry.relevance_score == 0.0
        assert entry.timestamp > 0

    def test_task_skips_unusable_sub_problems(self) -> None:
        task = Task.from_dict({"description": "A", "sub_problems": ["a1", 3, None, {"description": "a2"}]})
        assert [s.description for s in task.sub_problems] == ["a1", "a2"]

    def test_task_single_sub_problem_text(self) -> None:
        task = Task.from_dict({"description": "A", "sub_problems": "only step"})
        assert [s.description for s in task.sub_problems] == ["only step"]

    def test_task_rejects_non_mapping(self) -> None:
        with pytest.raises(TypeError):
            Task.from_dict(42)
