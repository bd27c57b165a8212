"""Aggregate roots for the worldbook agent.

Aggregates enforce consistency boundaries.  The persistence layer mutates
sessions only through these methods; the execution loop works on deep-copied
snapshots and never writes to them directly.

* ``ResearchState`` -- objective, FIFO task queue, completed tasks, knowledge.
* ``GenerationOutput`` -- character profile plus the categorized worldbook.
* ``ExecutionInfo`` -- iteration and token counters with their hard caps.
* ``Session`` -- the root tying the above to a status and a message log.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .entities import Message, Task
from .enums import OutputCategory, SessionStatus
from .values import CHARACTER_FIELDS, KnowledgeEntry, WorldbookEntry, is_filled

# ---------------------------------------------------------------------------
# ResearchState
# ---------------------------------------------------------------------------

@dataclass
class ResearchState:
    """Working memory of a session.

    ``main_objective`` is fixed at creation.  ``task_queue`` is strictly FIFO:
    only the head task's head sub-problem may be completed.
    """

    main_objective: str
    task_queue: list[Task] = field(default_factory=list)
    completed_tasks: list[str] = field(default_factory=list)
    knowledge_base: list[KnowledgeEntry] = field(default_factory=list)

    @property
    def active_task(self) -> Task | None:
        return self.task_queue[0] if self.task_queue else None

    def add_tasks(self, tasks: Iterable[Task]) -> None:
        self.task_queue.extend(tasks)

    def clear_tasks(self) -> None:
        self.task_queue.clear()

    def complete_active_sub_problem(self) -> bool:
        """Pop the active sub-problem; retire the task once it has none left.

        Returns ``True`` if anything was removed.
        """
        task = self.active_task
        if task is None:
            return False
        remaining = task.without_active_sub_problem()
        if remaining.sub_problems:
            self.task_queue[0] = remaining
        else:
            self.task_queue.pop(0)
            self.completed_tasks.append(task.description)
        return True

    def replace_active_task(self, task: Task) -> None:
        if not self.task_queue:
            raise IndexError("task queue is empty")
        self.task_queue[0] = task

    def add_knowledge(self, entries: Iterable[KnowledgeEntry]) -> int:
        """Merge *entries*, skipping ids already present.  Returns count added."""
        known = {e.entry_id for e in self.knowledge_base}
        added = 0
        for entry in entries:
            if entry.entry_id in known:
                continue
            self.knowledge_base.append(entry)
            known.add(entry.entry_id)
            added += 1
        return added


# ---------------------------------------------------------------------------
# GenerationOutput
# ---------------------------------------------------------------------------

@dataclass
class GenerationOutput:
    """The artifact under construction.

    Character fields merge incrementally; every worldbook category is
    overwritten wholesale by the tool that produces it.
    """

    character_data: dict[str, Any] = field(default_factory=dict)
    status_data: WorldbookEntry | None = None
    user_setting_data: WorldbookEntry | None = None
    world_view_data: WorldbookEntry | None = None
    supplement_data: list[WorldbookEntry] = field(default_factory=list)

    def merge_character(self, data: Mapping[str, Any]) -> list[str]:
        """Write only the returned, non-null fields.  Returns the names written."""
        written = []
        for key, value in data.items():
            if value is None:
                continue
            self.character_data[key] = value
            written.append(key)
        return written

    def set_category(
        self,
        category: OutputCategory,
        value: WorldbookEntry | Sequence[WorldbookEntry] | None,
    ) -> None:
        """Overwrite a worldbook category."""
        if category is OutputCategory.CHARACTER:
            raise ValueError("character data merges; use merge_character()")
        if category is OutputCategory.SUPPLEMENT:
            if isinstance(value, WorldbookEntry):
                value = [value]
            self.supplement_data = list(value or [])
            return
        if value is not None and not isinstance(value, WorldbookEntry):
            raise TypeError(f"{category.value} expects a single WorldbookEntry")
        setattr(self, category.value, value)

    def get_category(self, category: OutputCategory) -> Any:
        return getattr(self, category.value)

    def worldbook_entries(self) -> list[WorldbookEntry]:
        """All present worldbook entries, singletons first."""
        entries = [
            e for e in (self.status_data, self.user_setting_data, self.world_view_data)
            if e is not None
        ]
        return entries + list(self.supplement_data)

    def missing_character_fields(self) -> list[str]:
        return [f for f in CHARACTER_FIELDS if not is_filled(self.character_data.get(f))]


# ---------------------------------------------------------------------------
# ExecutionInfo
# ---------------------------------------------------------------------------

@dataclass
class ExecutionInfo:
    """Monotonic counters and the caps that bound them."""

    max_iterations: int = 50
    token_budget: int = 200_000
    current_iteration: int = 0
    tokens_used: int = 0
    error_count: int = 0
    last_error: str | None = None

    @property
    def iterations_exhausted(self) -> bool:
        return self.current_iteration >= self.max_iterations

    @property
    def budget_exhausted(self) -> bool:
        return self.tokens_used >= self.token_budget


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass
class Session:
    """Aggregate root for one agent run and its resumptions."""

    session_id: str
    title: str
    research_state: ResearchState
    status: SessionStatus = SessionStatus.IDLE
    generation_output: GenerationOutput = field(default_factory=GenerationOutput)
    messages: list[Message] = field(default_factory=list)
    execution_info: ExecutionInfo = field(default_factory=ExecutionInfo)
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def active_task(self) -> Task | None:
        return self.research_state.active_task

    def snapshot(self) -> Session:
        """Deep copy used for per-iteration snapshots."""
        return copy.deepcopy(self)
