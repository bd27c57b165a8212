"""Domain events for the worldbook agent.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  The
execution loop emits them on an optional ``EventBus``; listeners (logging,
progress displays, event stores) react without the loop knowing about them.

All events carry a ``timestamp`` and a ``source_id`` (the session id).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .enums import OutputCategory, SessionStatus

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionStarted(DomainEvent):
    """The loop (re)started for a session."""

    objective: str = ""
    resumed: bool = False


@dataclass(frozen=True)
class SessionPaused(DomainEvent):
    """The loop returned control waiting for user input."""

    question: str = ""
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionCompleted(DomainEvent):
    """The completion gate passed."""

    iterations: int = 0
    tokens_used: int = 0


@dataclass(frozen=True)
class SessionFailed(DomainEvent):
    """The loop exited without completing."""

    reason: str = ""
    status: SessionStatus = SessionStatus.FAILED


# ---------------------------------------------------------------------------
# Planning events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TasksDecomposed(DomainEvent):
    """The initial task queue was seeded."""

    task_count: int = 0
    sub_problem_count: int = 0


@dataclass(frozen=True)
class DecisionSelected(DomainEvent):
    """The planner chose a tool for this iteration."""

    iteration: int = 0
    tool: str = ""
    reasoning: str = ""


@dataclass(frozen=True)
class TaskAdjusted(DomainEvent):
    """The active task was rewritten before dispatch."""

    task_id: str = ""
    description: str = ""
    sub_problem_count: int = 0


# ---------------------------------------------------------------------------
# Execution events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolExecuted(DomainEvent):
    """A tool dispatch finished (successfully or not)."""

    tool: str = ""
    success: bool = True
    error: str | None = None
    category: OutputCategory | None = None


@dataclass(frozen=True)
class SubProblemCompleted(DomainEvent):
    """The active sub-problem was popped from the queue."""

    task_id: str = ""
    sub_problem_id: str = ""
    task_retired: bool = False
