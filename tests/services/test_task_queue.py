"""Tests for TaskQueueManager."""

from __future__ import annotations

from worldbook_agent.domain.entities import Task
from worldbook_agent.domain.enums import MessageType
from worldbook_agent.domain.values import TaskAdjustment
from worldbook_agent.services.task_queue import TaskQueueManager


def _task(description: str, subs: list[str], index: int = 0) -> Task:
    return Task.from_dict({"description": description, "sub_problems": subs}, index=index)


class TestQueueOperations:
    def test_enqueue_and_active(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        assert queue.is_empty(session_id)
        added = queue.enqueue(session_id, [_task("A", ["a1"]), _task("B", ["b1"], 1)])
        assert added == 2
        assert queue.active_task(session_id).description == "A"

    def test_enqueue_nothing(self, store, session_id) -> None:
        assert TaskQueueManager(store).enqueue(session_id, []) == 0

    def test_complete_active_retires_task(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        queue.enqueue(session_id, [_task("A", ["a1", "a2"]), _task("B", ["b1"], 1)])

        assert queue.complete_active(session_id)
        assert queue.active_task(session_id).active_sub_problem.description == "a2"
        assert queue.complete_active(session_id)
        assert queue.active_task(session_id).description == "B"
        assert store.get_session(session_id).research_state.completed_tasks == ["A"]

    def test_complete_on_empty_queue(self, store, session_id) -> None:
        assert not TaskQueueManager(store).complete_active(session_id)

    def test_clear(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        queue.enqueue(session_id, [_task("A", ["a1"])])
        queue.clear(session_id)
        assert queue.is_empty(session_id)


class TestAdjustment:
    def test_rewrites_description_and_subproblems(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        queue.enqueue(session_id, [_task("A", ["a1", "a2", "a3"])])

        task = queue.apply_adjustment(
            session_id,
            TaskAdjustment(reasoning="narrow", task_description="A'", new_sub_problems=("x", "y")),
        )
        assert task.description == "A'"
        assert [s.description for s in task.sub_problems] == ["x", "y"]
        assert all(s.reasoning == "narrow" for s in task.sub_problems)
        assert queue.active_task(session_id) == task

    def test_bound_is_current_count(self, store, session_id) -> None:
        queue = TaskQueueManager(store, max_new_subproblems=3)
        queue.enqueue(session_id, [_task("A", ["a1", "a2"])])

        task = queue.apply_adjustment(
            session_id, TaskAdjustment(new_sub_problems=("x", "y", "z")),
        )
        assert [s.description for s in task.sub_problems] == ["x", "y"]

    def test_bound_is_configured_max(self, store, session_id) -> None:
        queue = TaskQueueManager(store, max_new_subproblems=3)
        queue.enqueue(session_id, [_task("A", ["a1", "a2", "a3", "a4", "a5"])])

        task = queue.apply_adjustment(
            session_id, TaskAdjustment(new_sub_problems=("v", "w", "x", "y", "z")),
        )
        assert len(task.sub_problems) == 3

    def test_no_proposal_keeps_task(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        original = _task("A", ["a1", "a2"])
        queue.enqueue(session_id, [original])

        task = queue.apply_adjustment(session_id, TaskAdjustment())
        assert task.description == "A"
        assert task.sub_problems == original.sub_problems
        assert task.task_id == original.task_id

    def test_records_system_message(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        queue.enqueue(session_id, [_task("A", ["a1", "a2"])])
        queue.apply_adjustment(
            session_id, TaskAdjustment(reasoning="refocus", new_sub_problems=("x", "y")),
        )

        msg = store.get_session(session_id).messages[-1]
        assert msg.message_type == MessageType.SYSTEM_INFO
        assert msg.content == "Task adjusted: refocus\nCurrent task: A\nSub-problems: x | y"
        assert msg.metadata["sub_problem_count"] == 2

    def test_empty_queue_returns_none(self, store, session_id) -> None:
        queue = TaskQueueManager(store)
        assert queue.apply_adjustment(session_id, TaskAdjustment(task_description="X")) is None
        assert store.get_session(session_id).messages == []
