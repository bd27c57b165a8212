"""Tests for execution context snapshots and prompt summaries."""

from __future__ import annotations

from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import MessageRole, MessageType
from worldbook_agent.domain.values import KnowledgeEntry
from worldbook_agent.services.context import (
    ExecutionContext,
    describe_current_sub_problem,
    summarize_completed_tasks,
    summarize_knowledge,
    summarize_recent_conversation,
    summarize_task_queue,
)


def _msg(content: str, message_type: MessageType = MessageType.SYSTEM_INFO) -> Message:
    return Message(MessageRole.SYSTEM, content, message_type)


class TestExecutionContext:
    def test_snapshot_is_detached(self, store, session_id) -> None:
        store.add_tasks_to_queue(session_id, [Task.from_dict({"description": "A", "sub_problems": ["a1"]})])
        ctx = ExecutionContext.from_session(store.get_session(session_id))
        ctx.research_state.task_queue.clear()
        assert ctx.active_task is None
        assert store.get_session(session_id).active_task.description == "A"
        assert ctx.main_objective.startswith("Create a sci-fi")


class TestRecentConversation:
    def test_empty(self) -> None:
        assert summarize_recent_conversation([]) == "No recent conversation"

    def test_critical_feedback_first(self) -> None:
        messages = [
            _msg("old"),
            _msg("searching"),
            _msg("missing fields", MessageType.QUALITY_EVALUATION),
        ]
        lines = summarize_recent_conversation(messages, window=2).splitlines()
        assert lines[0] == "[QUALITY_EVALUATION] system: missing fields"
        assert lines[1] == "[system_info] system: searching"
        assert len(lines) == 2

    def test_long_content_truncated(self) -> None:
        text = summarize_recent_conversation([_msg("x" * 300)])
        assert text.endswith("x" * 200 + "...")


class TestSummaries:
    def test_knowledge_limit(self) -> None:
        entries = [KnowledgeEntry(source=f"s{i}", content="c") for i in range(7)]
        text = summarize_knowledge(entries, limit=5)
        assert text.count("\n- ") == 4
        assert text.endswith("(2 more entries not shown)")

    def test_no_knowledge(self) -> None:
        assert summarize_knowledge([]) == "No knowledge gathered yet"

    def test_completed_tasks_shows_latest(self) -> None:
        text = summarize_completed_tasks([f"t{i}" for i in range(8)], limit=2)
        assert text.splitlines() == ["Total completed: 8", "- t6", "- t7"]

    def test_task_queue(self) -> None:
        queue = [
            Task.from_dict({"description": "A", "sub_problems": ["a1", "a2"]}),
            Task.from_dict({"description": "B", "sub_problems": ["b1"]}, index=1),
        ]
        text = summarize_task_queue(queue, completed=["Z"])
        assert "Current task: A" in text
        assert "Current sub-problem: a1" in text
        assert "  1. a2" in text
        assert "  1. B" in text
        assert text.endswith("Progress: 1/3 tasks completed")
        assert describe_current_sub_problem(queue) == "a1"

    def test_empty_queue(self) -> None:
        assert summarize_task_queue([]) == "Task queue is empty"
        assert describe_current_sub_problem([]) == "No current sub-problem"
