"""Task queue management for the worldbook agent.

Wraps the FIFO operations of the session store and enforces the adjustment
bound: a rewrite may replace the active task's sub-problems, but never with
more than ``min(max_new_subproblems, current count)`` of them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import MessageRole, MessageType
from worldbook_agent.domain.values import TaskAdjustment
from worldbook_agent.infrastructure.session_store import SessionStore

logger = logging.getLogger(__name__)


class TaskQueueManager:
    """FIFO task queue operations for one store.

    Parameters
    ----------
    store:
        Persistence layer owning the queue.
    max_new_subproblems:
        Upper bound on sub-problems an adjustment may introduce.
    """

    def __init__(self, store: SessionStore, max_new_subproblems: int = 3) -> None:
        self.store = store
        self.max_new_subproblems = max_new_subproblems

    def active_task(self, session_id: str) -> Task | None:
        return self.store.get_session(session_id).active_task

    def is_empty(self, session_id: str) -> bool:
        return self.active_task(session_id) is None

    def enqueue(self, session_id: str, tasks: Iterable[Task]) -> int:
        """Append *tasks* to the tail.  Returns how many were added."""
        tasks = list(tasks)
        if tasks:
            self.store.add_tasks_to_queue(session_id, tasks)
            logger.info("Session %s: queued %d task(s)", session_id, len(tasks))
        return len(tasks)

    def clear(self, session_id: str) -> None:
        self.store.clear_all_tasks(session_id)
        logger.info("Session %s: task queue cleared", session_id)

    def complete_active(self, session_id: str) -> bool:
        """Pop the active sub-problem (retiring its task when emptied)."""
        done = self.store.complete_current_sub_problem(session_id)
        if not done:
            logger.debug("Session %s: nothing to complete, queue is empty", session_id)
        return done

    def apply_adjustment(self, session_id: str, adjustment: TaskAdjustment) -> Task | None:
        """Rewrite the active task per *adjustment*.

        The description falls back to the current one; sub-problems are only
        replaced when the adjustment proposes some, truncated to the bound.
        Returns the rewritten task, or ``None`` if the queue is empty.
        """
        current = self.active_task(session_id)
        if current is None:
            logger.debug("Session %s: no active task to adjust", session_id)
            return None

        bound = min(self.max_new_subproblems, len(current.sub_problems))
        proposed = list(adjustment.new_sub_problems or ())[:bound]
        description = adjustment.task_description or current.description or "Task optimization"

        task = self.store.modify_current_task(
            session_id,
            description,
            proposed or None,
            reasoning=adjustment.reasoning,
        )
        if task is None:
            return None

        lines = [f"Task adjusted: {adjustment.reasoning}", f"Current task: {task.description}"]
        if proposed:
            lines.append("Sub-problems: " + " | ".join(proposed))
        self.store.add_message(
            session_id,
            Message(
                role=MessageRole.SYSTEM,
                content="\n".join(lines),
                message_type=MessageType.SYSTEM_INFO,
                metadata={
                    "task_id": task.task_id,
                    "sub_problem_count": len(task.sub_problems),
                },
            ),
        )
        return task
