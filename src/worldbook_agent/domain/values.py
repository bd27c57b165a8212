"""Value objects for the worldbook agent.

All types here are frozen dataclasses, immutable and compared by value.
They represent planner decisions, tool results, knowledge and worldbook
entries, and evaluation reports that have no identity beyond their content.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .enums import OutputCategory

CHARACTER_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "personality",
    "scenario",
    "first_mes",
    "mes_example",
    "alternate_greetings",
    "creator_notes",
    "tags",
)
"""Fields a character profile must fill before the session may complete."""


def is_filled(value: Any) -> bool:
    """Return ``True`` if *value* counts as non-empty content.

    Strings must contain non-whitespace; collections must hold at least one
    filled element; ``None`` is empty; any other scalar counts as filled.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, Mapping):
        return any(is_filled(v) for v in value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return any(is_filled(v) for v in value)
    return True


# ---------------------------------------------------------------------------
# Planner decisions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskAdjustment:
    """Mandatory per-iteration rewrite of the active task.

    ``task_description`` and ``new_sub_problems`` are ``None`` when the
    planner asks for no change.
    """

    reasoning: str = "Task optimization based on current progress"
    task_description: str | None = None
    new_sub_problems: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ToolDecision:
    """A single tool invocation chosen by the planner."""

    tool: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    reasoning: str = "No reasoning provided"
    priority: int = 5
    task_adjustment: TaskAdjustment = field(default_factory=TaskAdjustment)


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one tool dispatch."""

    success: bool
    result: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, result: Any = None) -> ExecutionResult:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> ExecutionResult:
        return cls(success=False, error=error)

    def payload(self) -> Mapping[str, Any]:
        """The result as a mapping, or an empty mapping if it is not one."""
        return self.result if isinstance(self.result, Mapping) else {}


# ---------------------------------------------------------------------------
# Knowledge
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KnowledgeEntry:
    """One piece of researched reference material."""

    source: str
    content: str
    entry_id: str = field(default_factory=lambda: f"knowledge_{uuid.uuid4().hex[:12]}")
    query: str = ""
    url: str | None = None
    relevance_score: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KnowledgeEntry:
        """Build an entry from a loosely shaped tool payload."""
        kwargs: dict[str, Any] = {
            "source": str(data.get("source") or "unknown"),
            "content": str(data.get("content") or ""),
            "query": str(data.get("query") or ""),
            "url": data.get("url"),
            "relevance_score": _as_float(
                data.get("relevance_score", data.get("relevanceScore")), 0.0
            ),
        }
        entry_id = data.get("entry_id") or data.get("id")
        if entry_id:
            kwargs["entry_id"] = str(entry_id)
        timestamp = _as_float(data.get("timestamp"), None)
        if timestamp is not None:
            kwargs["timestamp"] = timestamp
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Worldbook entries
# ---------------------------------------------------------------------------

# category -> (constant, position, insert_order)
_CATEGORY_DEFAULTS: dict[OutputCategory, tuple[bool, int, int]] = {
    OutputCategory.STATUS: (True, 0, 1),
    OutputCategory.USER_SETTING: (True, 0, 2),
    OutputCategory.WORLD_VIEW: (True, 0, 3),
    OutputCategory.SUPPLEMENT: (False, 2, 10),
}


@dataclass(frozen=True)
class WorldbookEntry:
    """A keyed knowledge-base entry of the generated worldbook."""

    content: str
    keys: tuple[str, ...] = ()
    comment: str = ""
    constant: bool = False
    position: int = 0
    insert_order: int = 0
    selective: bool = True
    keysecondary: tuple[str, ...] = ()

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    @property
    def is_valid(self) -> bool:
        return bool(self.content.strip())

    @classmethod
    def for_category(
        cls,
        category: OutputCategory,
        data: Mapping[str, Any] | str,
        index: int = 0,
    ) -> WorldbookEntry:
        """Coerce a tool payload into an entry carrying the category defaults.

        Parameters
        ----------
        category:
            Category the entry belongs to; singleton categories get a fixed
            insertion order, supplement entries start at 10.
        data:
            Either a mapping with ``content``/``keys``/``comment`` or the bare
            content text.
        index:
            Position within a supplement list, added to its insertion order.
        """
        constant, position, insert_order = _CATEGORY_DEFAULTS.get(category, (False, 0, 0))
        if category is OutputCategory.SUPPLEMENT:
            insert_order += index
        if isinstance(data, str):
            data = {"content": data}
        elif not isinstance(data, Mapping):
            raise TypeError(
                f"{category.value} entry must be a mapping or text, got {type(data).__name__}"
            )
        return cls(
            content=str(data.get("content") or ""),
            keys=_as_terms(data.get("keys", data.get("key"))),
            comment=str(data.get("comment") or ""),
            constant=bool(data.get("constant", constant)),
            position=_as_int(data.get("position"), position),
            insert_order=_as_int(data.get("insert_order", data.get("order")), insert_order),
            selective=bool(data.get("selective", True)),
            keysecondary=_as_terms(data.get("keysecondary")),
        )


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float | None) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_terms(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, Sequence):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return (str(value),)


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DecompositionAnalysis:
    """What the planner learned about the user's request before planning."""

    real_world_content_detected: bool = False
    real_world_details: str = ""
    story_clarity_level: str = "moderate"
    unclear_aspects: str = ""
    task_strategy: str = "Task decomposition completed"


@dataclass(frozen=True)
class FailureAnalysis:
    """Root-cause analysis of a failed tool dispatch."""

    tool: str
    error: str
    root_cause: str = "Analysis failed"
    parameter_analysis: str = ""
    planner_issue: str = ""
    correct_approach: str = ""
    prevention: str = ""
    impact: str = ""

    def render(self) -> str:
        """Format the analysis as the message recorded in the session log."""
        lines = [
            f"TOOL FAILURE: {self.tool}",
            f"Error: {self.error}",
            "",
            f"Root cause: {self.root_cause}",
        ]
        for label, text in (
            ("Parameter analysis", self.parameter_analysis),
            ("Planner issue", self.planner_issue),
            ("Correct approach", self.correct_approach),
            ("Prevention", self.prevention),
            ("Impact", self.impact),
        ):
            if text:
                lines.append(f"{label}: {text}")
        return "\n".join(lines)


@dataclass(frozen=True)
class CompletionReport:
    """Result of the deterministic completion check.

    Attributes
    ----------
    satisfied:
        ``True`` only when every category meets its structural requirement.
    reason:
        Human-readable explanation; for deficiencies it names the next step.
    next_category:
        The first deficient category, or ``None`` when satisfied.
    missing_fields:
        Missing character fields (only for character deficiencies).
    valid_supplements:
        Number of supplement entries with non-empty content.
    """

    satisfied: bool
    reason: str
    next_category: OutputCategory | None = None
    missing_fields: tuple[str, ...] = ()
    valid_supplements: int = 0
