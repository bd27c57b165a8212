"""Domain entities for the worldbook agent.

Entities have *identity* (an id that survives rewrites).  ``Task`` owns an
ordered list of ``SubProblem`` items whose head is the active step; rewrites
produce a new ``Task`` with the same id.  ``Message`` is an entry of the
session log.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .enums import MessageRole, MessageType


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SubProblem:
    """One concrete step of a task."""

    sub_problem_id: str
    description: str
    reasoning: str = ""


@dataclass(frozen=True)
class Task:
    """A planned unit of work; ``sub_problems[0]`` is the active step."""

    task_id: str
    description: str
    reasoning: str = ""
    sub_problems: tuple[SubProblem, ...] = ()

    @property
    def active_sub_problem(self) -> SubProblem | None:
        return self.sub_problems[0] if self.sub_problems else None

    def without_active_sub_problem(self) -> Task:
        """Return a copy with the head sub-problem removed."""
        return dataclasses.replace(self, sub_problems=self.sub_problems[1:])

    def rewrite(
        self,
        description: str,
        sub_problem_descriptions: Sequence[str] | None = None,
        reasoning: str = "",
    ) -> Task:
        """Return a rewritten task keeping the same id.

        Parameters
        ----------
        description:
            The new task description.
        sub_problem_descriptions:
            Replacement sub-problems, or ``None`` to keep the current ones.
        reasoning:
            Reasoning stamped on every replacement sub-problem.
        """
        subs = self.sub_problems
        if sub_problem_descriptions is not None:
            stamp = now_ms()
            subs = tuple(
                SubProblem(
                    sub_problem_id=f"sub_{stamp}_adj_{i}",
                    description=text,
                    reasoning=reasoning,
                )
                for i, text in enumerate(sub_problem_descriptions)
            )
        return dataclasses.replace(self, description=description, sub_problems=subs)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | str, index: int = 0) -> Task:
        """Build a task from a planner or tool payload.

        Accepts a bare description string, or a mapping with ``description``,
        ``reasoning`` and ``sub_problems`` (strings or mappings).  Missing ids
        are generated from the current time.
        """
        stamp = now_ms()
        if isinstance(data, str):
            data = {"description": data}
        elif not isinstance(data, Mapping):
            raise TypeError(f"task must be a mapping or text, got {type(data).__name__}")
        task_id = str(data.get("task_id") or data.get("id") or f"task_{stamp}_{index}")
        raw_subs = data.get("sub_problems", data.get("sub_problem", [])) or []
        if not isinstance(raw_subs, (list, tuple)):
            raw_subs = [raw_subs]
        subs: list[SubProblem] = []
        for j, raw in enumerate(raw_subs):
            if isinstance(raw, str):
                raw = {"description": raw}
            elif not isinstance(raw, Mapping):
                continue
            subs.append(
                SubProblem(
                    sub_problem_id=str(
                        raw.get("sub_problem_id") or raw.get("id") or f"sub_{stamp}_{index}_{j}"
                    ),
                    description=str(raw.get("description") or f"Sub-problem {j + 1}"),
                    reasoning=str(raw.get("reasoning") or ""),
                )
            )
        return cls(
            task_id=task_id,
            description=str(data.get("description") or f"Task {index + 1}"),
            reasoning=str(data.get("reasoning") or ""),
            sub_problems=tuple(subs),
        )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Message:
    """An entry of the session's message log."""

    role: MessageRole
    content: str
    message_type: MessageType
    message_id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")
    metadata: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_critical_feedback(self) -> bool:
        """Quality evaluations and tool failures are surfaced first in prompts."""
        return self.message_type in (MessageType.QUALITY_EVALUATION, MessageType.TOOL_FAILURE)
