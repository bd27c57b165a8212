"""Execution context snapshots and the text summaries built from them.

An ``ExecutionContext`` is an immutable view of a session taken at the start
of an iteration.  Tools receive it; the planner prompt is rendered from the
summaries below.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from worldbook_agent.domain.aggregates import GenerationOutput, ResearchState, Session
from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import SessionStatus
from worldbook_agent.domain.values import KnowledgeEntry


@dataclass(frozen=True)
class ExecutionContext:
    """Read-only snapshot of a session handed to tools and prompt builders."""

    session_id: str
    status: SessionStatus
    research_state: ResearchState
    generation_output: GenerationOutput
    message_history: tuple[Message, ...]
    iteration: int = 0

    @classmethod
    def from_session(cls, session: Session) -> ExecutionContext:
        snapshot = session.snapshot()
        return cls(
            session_id=snapshot.session_id,
            status=snapshot.status,
            research_state=snapshot.research_state,
            generation_output=snapshot.generation_output,
            message_history=tuple(snapshot.messages),
            iteration=snapshot.execution_info.current_iteration,
        )

    @property
    def main_objective(self) -> str:
        return self.research_state.main_objective

    @property
    def active_task(self) -> Task | None:
        return self.research_state.active_task


# -- Summaries -----------------------------------------------------------------


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def summarize_recent_conversation(messages: Sequence[Message], window: int = 5) -> str:
    """Last *window* messages, quality evaluations and tool failures first."""
    recent = list(messages)[-window:]
    if not recent:
        return "No recent conversation"
    critical = [m for m in recent if m.is_critical_feedback]
    others = [m for m in recent if not m.is_critical_feedback]
    lines = []
    for msg in critical:
        lines.append(f"[{msg.message_type.value.upper()}] {msg.role.value}: {_truncate(msg.content, 500)}")
    for msg in others:
        lines.append(f"[{msg.message_type.value}] {msg.role.value}: {_truncate(msg.content, 200)}")
    return "\n".join(lines)


def summarize_knowledge(entries: Sequence[KnowledgeEntry], limit: int = 5) -> str:
    if not entries:
        return "No knowledge gathered yet"
    lines = [f"- {e.source}: {_truncate(e.content, 100)}" for e in entries[:limit]]
    if len(entries) > limit:
        lines.append(f"({len(entries) - limit} more entries not shown)")
    return "\n".join(lines)


def summarize_completed_tasks(completed: Sequence[str], limit: int = 5) -> str:
    if not completed:
        return "No tasks completed yet"
    lines = [f"Total completed: {len(completed)}"]
    lines.extend(f"- {description}" for description in completed[-limit:])
    return "\n".join(lines)


def describe_current_sub_problem(queue: Sequence[Task]) -> str:
    if not queue or queue[0].active_sub_problem is None:
        return "No current sub-problem"
    return queue[0].active_sub_problem.description


def summarize_task_queue(queue: Sequence[Task], completed: Sequence[str] = ()) -> str:
    """Current task, its remaining steps, upcoming tasks and overall progress."""
    if not queue:
        return "Task queue is empty"
    current = queue[0]
    lines = [f"Current task: {current.description}"]
    if current.sub_problems:
        lines.append(f"Current sub-problem: {current.sub_problems[0].description}")
        remaining = current.sub_problems[1:]
        if remaining:
            lines.append("Remaining sub-problems:")
            lines.extend(f"  {i}. {s.description}" for i, s in enumerate(remaining, start=1))
    upcoming = queue[1:]
    if upcoming:
        lines.append("Upcoming tasks:")
        lines.extend(f"  {i}. {t.description}" for i, t in enumerate(upcoming, start=1))
    total = len(queue) + len(completed)
    lines.append(f"Progress: {len(completed)}/{total} tasks completed")
    return "\n".join(lines)
