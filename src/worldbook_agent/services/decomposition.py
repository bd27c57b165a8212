"""Initial task decomposition for a session.

Runs once, before the first iteration, when the task queue is empty.  The
planner is asked to analyze the objective and propose an ordered plan; the
response is parsed field by field into Pydantic models, converted to
``Task`` entities and queued.  Any failure leaves the queue empty.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

from worldbook_agent.domain.entities import Message, SubProblem, Task, now_ms
from worldbook_agent.domain.enums import ClarityLevel, MessageRole, MessageType
from worldbook_agent.domain.values import DecompositionAnalysis
from worldbook_agent.infrastructure.config import EngineConfig
from worldbook_agent.infrastructure.session_store import SessionStore
from worldbook_agent.services.decision_parser import extract_blocks, extract_tag
from worldbook_agent.services.planner import BasePlanner
from worldbook_agent.services.prompts import render_decomposition_prompt

logger = logging.getLogger(__name__)

_CLARIFY_RE = re.compile(r"ask[_ ]?user|\bask\b|clarif|confirm|preference", re.IGNORECASE)
_RESEARCH_RE = re.compile(r"search|research|look up|reference", re.IGNORECASE)


# -- Parsed output schemas ---------------------------------------------------


class PlannedSubProblem(BaseModel):
    """A step proposed by the planner."""

    description: str = Field(description="Specific actionable step")
    reasoning: str = Field(default="Step planning", description="Why the step matters")


class PlannedTask(BaseModel):
    """A task proposed by the planner."""

    description: str = Field(description="Task description")
    reasoning: str = Field(default="Task planning", description="Why the task is needed")
    sub_problems: list[PlannedSubProblem] = Field(default_factory=list)


class DecompositionOutput(BaseModel):
    """Everything parsed from a decomposition response."""

    real_world_content_detected: bool = False
    real_world_details: str = ""
    story_clarity_level: ClarityLevel = ClarityLevel.MODERATE
    unclear_aspects: str = ""
    tasks: list[PlannedTask] = Field(default_factory=list)
    task_strategy: str = "Task decomposition completed"

    @property
    def analysis(self) -> DecompositionAnalysis:
        return DecompositionAnalysis(
            real_world_content_detected=self.real_world_content_detected,
            real_world_details=self.real_world_details,
            story_clarity_level=self.story_clarity_level.value,
            unclear_aspects=self.unclear_aspects,
            task_strategy=self.task_strategy,
        )

    def _mentions(self, pattern: re.Pattern[str]) -> bool:
        return any(
            pattern.search(t.description) or any(pattern.search(s.description) for s in t.sub_problems)
            for t in self.tasks
        )

    @property
    def has_clarification_step(self) -> bool:
        return self._mentions(_CLARIFY_RE)

    @property
    def has_research_step(self) -> bool:
        return self._mentions(_RESEARCH_RE)

    def to_tasks(self, stamp: int | None = None) -> list[Task]:
        """Convert to entities with ids ``init_task_{ms}_{i}`` / ``sub_{ms}_{i}_{j}``."""
        stamp = now_ms() if stamp is None else stamp
        return [
            Task(
                task_id=f"init_task_{stamp}_{i}",
                description=task.description,
                reasoning=task.reasoning,
                sub_problems=tuple(
                    SubProblem(
                        sub_problem_id=f"sub_{stamp}_{i}_{j}",
                        description=sub.description,
                        reasoning=sub.reasoning,
                    )
                    for j, sub in enumerate(task.sub_problems)
                ),
            )
            for i, task in enumerate(self.tasks)
        ]


def parse_decomposition(
    text: str,
    *,
    max_tasks: int = 8,
    max_sub_problems: int = 5,
) -> DecompositionOutput:
    """Parse a ``<task_decomposition>`` response.

    Every field parses independently; anything missing falls back to a
    deterministic default.  Tasks beyond *max_tasks* and sub-problems beyond
    *max_sub_problems* are dropped.
    """
    analysis = extract_tag(text, "analysis") or ""
    tasks: list[PlannedTask] = []
    for i, block in enumerate(extract_blocks(text, "task")[:max_tasks]):
        subs = [
            PlannedSubProblem(
                description=extract_tag(sub, "description") or f"Sub-problem {j + 1}",
                reasoning=extract_tag(sub, "reasoning") or "Step planning",
            )
            for j, sub in enumerate(extract_blocks(block, "sub_problem")[:max_sub_problems])
        ]
        # task-level fields come from the part before <sub_problems>
        head = block.split("<sub_problems>", 1)[0]
        tasks.append(
            PlannedTask(
                description=extract_tag(head, "description") or f"Task {i + 1}",
                reasoning=extract_tag(head, "reasoning") or "Task planning",
                sub_problems=subs,
            )
        )

    detected = (extract_tag(analysis, "real_world_content_detected") or "").lower()
    return DecompositionOutput(
        real_world_content_detected=detected == "true",
        real_world_details=extract_tag(analysis, "real_world_details") or "",
        story_clarity_level=ClarityLevel.parse(extract_tag(analysis, "story_clarity_level")),
        unclear_aspects=extract_tag(analysis, "unclear_aspects") or "",
        tasks=tasks,
        task_strategy=extract_tag(text, "task_strategy") or "Task decomposition completed",
    )


class TaskDecomposer:
    """Seeds an empty task queue from the planner's plan.

    Parameters
    ----------
    planner:
        Produces the decomposition response.
    store:
        Session persistence; receives the tasks and the analysis message.
    config:
        Supplies the requested task and sub-problem counts.
    """

    def __init__(
        self,
        planner: BasePlanner,
        store: SessionStore,
        config: EngineConfig | None = None,
    ) -> None:
        self.planner = planner
        self.store = store
        self.config = config or EngineConfig()

    def decompose(self, session_id: str) -> DecompositionOutput | None:
        """Queue the initial plan.  Returns ``None`` if skipped or failed."""
        session = self.store.get_session(session_id)
        if session.research_state.task_queue:
            logger.info("Session %s: task queue already initialized, skipping decomposition", session_id)
            return None

        try:
            response = self.planner.render(
                render_decomposition_prompt(
                    session.research_state.main_objective,
                    min_tasks=self.config.min_tasks,
                    max_tasks=self.config.max_tasks,
                    max_sub_problems=self.config.max_sub_problems,
                )
            )
            output = parse_decomposition(
                response,
                max_tasks=self.config.max_tasks,
                max_sub_problems=self.config.max_sub_problems,
            )
            if not output.tasks:
                logger.warning("Session %s: decomposition produced no tasks", session_id)
                return None
            self._check_coverage(session_id, output)

            tasks = output.to_tasks()
            self.store.add_tasks_to_queue(session_id, tasks)
            self.store.add_message(session_id, self._analysis_message(output, tasks))
        except Exception as exc:
            logger.warning("TaskDecomposer: decomposition failed for %s: %s", session_id, exc)
            return None

        logger.info("Session %s: queued %d initial task(s)", session_id, len(tasks))
        return output

    def _check_coverage(self, session_id: str, output: DecompositionOutput) -> None:
        if len(output.tasks) < self.config.min_tasks:
            logger.warning(
                "Session %s: decomposition returned %d task(s), expected at least %d",
                session_id, len(output.tasks), self.config.min_tasks,
            )
        if not output.has_clarification_step:
            logger.warning("Session %s: plan has no user clarification step", session_id)
        if not output.has_research_step:
            logger.warning("Session %s: plan has no research step", session_id)

    @staticmethod
    def _analysis_message(output: DecompositionOutput, tasks: list[Task]) -> Message:
        lines = [
            "Task decomposition completed.",
            f"Real-world content detected: {'yes' if output.real_world_content_detected else 'no'}",
        ]
        if output.real_world_details:
            lines.append(f"Details: {output.real_world_details}")
        lines.append(f"Story clarity: {output.story_clarity_level.value}")
        if output.unclear_aspects:
            lines.append(f"Unclear aspects: {output.unclear_aspects}")
        lines.append(f"Strategy: {output.task_strategy}")
        lines.append(f"Tasks created: {len(tasks)}")
        lines.extend(f"  {i}. {t.description}" for i, t in enumerate(tasks, start=1))
        return Message(
            role=MessageRole.AGENT,
            content="\n".join(lines),
            message_type=MessageType.AGENT_THINKING,
            metadata={
                "analysis": output.model_dump(mode="json", exclude={"tasks"}),
                "task_count": len(tasks),
            },
        )
