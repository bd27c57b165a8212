"""Configuration dataclasses for the worldbook agent.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  Configs are **frozen** so a single
instance can be shared between the engine and its services.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any


# ===================================================================== #
#  Engine Configuration                                                  #
# ===================================================================== #

@dataclass(frozen=True)
class EngineConfig:
    """Parameters governing the planning/execution loop.

    Attributes
    ----------
    max_iterations:
        Hard cap on loop iterations.  When set, it is written onto an IDLE
        session as the engine starts it; ``None`` keeps the cap the session
        was created with.
    token_budget:
        Hard cap on cumulative planner token usage, applied the same way.
    pacing_delay:
        Seconds slept between iterations.
    recent_message_window:
        Number of trailing messages shown to the planner and failure analyzer.
    knowledge_summary_limit:
        Number of knowledge entries summarized in the planner prompt.
    max_new_subproblems:
        Upper bound on sub-problems a task adjustment may introduce; the
        effective bound is ``min(max_new_subproblems, current count)``.
    min_supplement_entries:
        Supplement entries with content required for completion.
    min_tasks / max_tasks:
        Task count requested from decomposition; extra tasks are dropped.
    max_sub_problems:
        Sub-problems kept per decomposed task.
    """

    max_iterations: int | None = None
    token_budget: int | None = None
    pacing_delay: float = 0.1
    recent_message_window: int = 5
    knowledge_summary_limit: int = 5
    max_new_subproblems: int = 3
    min_supplement_entries: int = 5
    min_tasks: int = 5
    max_tasks: int = 8
    max_sub_problems: int = 5

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.token_budget is not None and self.token_budget < 1:
            raise ValueError(f"token_budget must be >= 1, got {self.token_budget}")
        if self.pacing_delay < 0:
            raise ValueError(f"pacing_delay must be >= 0, got {self.pacing_delay}")
        if self.recent_message_window < 1:
            raise ValueError(
                f"recent_message_window must be >= 1, got {self.recent_message_window}"
            )
        if self.knowledge_summary_limit < 0:
            raise ValueError(
                f"knowledge_summary_limit must be >= 0, got {self.knowledge_summary_limit}"
            )
        if self.max_new_subproblems < 0:
            raise ValueError(
                f"max_new_subproblems must be >= 0, got {self.max_new_subproblems}"
            )
        if self.min_supplement_entries < 0:
            raise ValueError(
                f"min_supplement_entries must be >= 0, got {self.min_supplement_entries}"
            )
        if not (1 <= self.min_tasks <= self.max_tasks):
            raise ValueError(
                f"need 1 <= min_tasks <= max_tasks, got {self.min_tasks}..{self.max_tasks}"
            )
        if self.max_sub_problems < 1:
            raise ValueError(f"max_sub_problems must be >= 1, got {self.max_sub_problems}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Planner Configuration                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class PlannerConfig:
    """Settings applied by ``ChatModelPlanner`` to each model call.

    Attributes
    ----------
    temperature:
        Sampling temperature bound to the model, or ``None`` to leave the
        model's own setting untouched.
    max_tokens:
        Maximum tokens per response, or ``None``.
    timeout:
        Seconds to wait for one response; ``None`` waits indefinitely.
    stream:
        Stream tokens to the planner's ``on_token`` callback.
    """

    temperature: float | None = None
    max_tokens: int | None = None
    timeout: float | None = None
    stream: bool = False

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.temperature is not None and not (0.0 <= self.temperature <= 2.0):
            raise ValueError(f"temperature must be in [0, 2], got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlannerConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Loader                                                                #
# ===================================================================== #

def load_config_from_json(path: str | Path) -> tuple[EngineConfig, PlannerConfig]:
    """Load ``{"engine": {...}, "planner": {...}}`` from a JSON file.

    Missing sections fall back to defaults; unknown keys are ignored.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return (
        EngineConfig.from_dict(raw.get("engine", {})),
        PlannerConfig.from_dict(raw.get("planner", {})),
    )
