"""Execution loop for the worldbook agent.

Each iteration: snapshot the session, ask the planner for one decision, apply
its mandatory task adjustment, dispatch the tool, apply the tool kind's side
effect, then check the queue and the completion gate.  The loop is bounded by
two hard caps persisted on the session (iterations and planner tokens) and
can pause for user input and be resumed later by a fresh engine.

Classes
-------
StopReason
    Why a run returned.
RunResult
    Dataclass capturing the outcome of a run.
AgentEngine
    The loop itself.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from worldbook_agent.domain.aggregates import GenerationOutput, Session
from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import (
    MessageRole,
    MessageType,
    OutputCategory,
    SessionStatus,
    ToolKind,
)
from worldbook_agent.domain.events import (
    DecisionSelected,
    DomainEvent,
    SessionCompleted,
    SessionFailed,
    SessionPaused,
    SessionStarted,
    SubProblemCompleted,
    TaskAdjusted,
    TasksDecomposed,
    ToolExecuted,
)
from worldbook_agent.domain.exceptions import UserInputError
from worldbook_agent.domain.values import (
    ExecutionResult,
    KnowledgeEntry,
    ToolDecision,
    WorldbookEntry,
)
from worldbook_agent.infrastructure.config import EngineConfig
from worldbook_agent.infrastructure.event_bus import EventBus
from worldbook_agent.infrastructure.registry import BaseTool, ToolRegistry
from worldbook_agent.infrastructure.serialization import (
    knowledge_entry_to_dict,
    worldbook_entry_to_dict,
)
from worldbook_agent.infrastructure.session_store import SessionStore
from worldbook_agent.services.completion import CompletionEvaluator
from worldbook_agent.services.context import (
    ExecutionContext,
    describe_current_sub_problem,
    summarize_completed_tasks,
    summarize_knowledge,
    summarize_recent_conversation,
    summarize_task_queue,
)
from worldbook_agent.services.decision_parser import DecisionParser
from worldbook_agent.services.decomposition import TaskDecomposer
from worldbook_agent.services.failure_analysis import FailureAnalyzer
from worldbook_agent.services.planner import BasePlanner
from worldbook_agent.services.prompts import render_decision_prompt
from worldbook_agent.services.task_queue import TaskQueueManager

logger = logging.getLogger(__name__)

UserInputCallback = Callable[[str, Sequence[str]], str]

COMPLETION_ACTIONS = (
    "generate_avatar",
    "search_avatar",
    "download_character",
    "download_worldbook",
)


# ===================================================================== #
#  Stop Reason Enum                                                      #
# ===================================================================== #


class StopReason(Enum):
    """Reason a run returned control."""

    COMPLETED = "completed"
    PAUSED = "paused"
    TOKEN_BUDGET = "token_budget"
    MAX_ITERATIONS = "max_iterations"
    USER_INPUT_FAILED = "user_input_failed"
    ERROR = "error"


# ===================================================================== #
#  Run Result                                                            #
# ===================================================================== #


@dataclass
class RunResult:
    """Outcome of ``start`` or ``continue_execution``.

    Attributes
    ----------
    success:
        ``True`` on completion and on a pause for user input.
    stop_reason:
        Why the run returned.
    result:
        The final artifact on completion, or the pause notice.
    error:
        Failure text when ``success`` is ``False``.
    iterations:
        Persisted iteration count when the run returned.
    tokens_used:
        Persisted token usage when the run returned.
    elapsed_seconds:
        Wall-clock time of this run.
    """

    success: bool
    stop_reason: StopReason
    result: Any = None
    error: str | None = None
    iterations: int = 0
    tokens_used: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "result": self.result}
        return {"success": False, "error": self.error}


# ===================================================================== #
#  Agent Engine                                                          #
# ===================================================================== #


class AgentEngine:
    """Drives one session from objective to finished character and worldbook.

    Parameters
    ----------
    session_id:
        Session to run; it must already exist in *store*.
    store:
        Persistence layer; the engine keeps no state of its own between
        calls, so any engine over the same store can resume a session.
    registry:
        Tools available to the planner.
    planner:
        Generative planner used for decisions, decomposition and failure
        analysis.
    config:
        Loop settings.
    user_input:
        Interactive collaborator ``(message, options) -> response``.  Without
        one, a clarification request pauses the run.
    event_bus:
        Optional bus receiving domain events.
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        registry: ToolRegistry,
        planner: BasePlanner,
        *,
        config: EngineConfig | None = None,
        user_input: UserInputCallback | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.session_id = session_id
        self.store = store
        self.registry = registry
        self.planner = planner
        self.config = config or EngineConfig()
        self.config.validate()
        self.user_input = user_input
        self.event_bus = event_bus

        self.parser = DecisionParser(self.config.max_new_subproblems)
        self.queue = TaskQueueManager(store, self.config.max_new_subproblems)
        self.evaluator = CompletionEvaluator(self.config.min_supplement_entries)
        self.decomposer = TaskDecomposer(planner, store, self.config)
        self.failure_analyzer = FailureAnalyzer(planner, store, registry, self.config)

        self._content_handlers: dict[OutputCategory, Callable[[Mapping[str, Any]], None]] = {
            OutputCategory.CHARACTER: self._apply_character,
            OutputCategory.STATUS: self._singleton_handler(OutputCategory.STATUS),
            OutputCategory.USER_SETTING: self._singleton_handler(OutputCategory.USER_SETTING),
            OutputCategory.WORLD_VIEW: self._singleton_handler(OutputCategory.WORLD_VIEW),
            OutputCategory.SUPPLEMENT: self._apply_supplement,
        }

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #

    def start(self, user_input: UserInputCallback | None = None) -> RunResult:
        """Seed the task queue if needed and run the loop.

        On a session that has never run, the caps set on ``config`` (if any)
        are written onto the session first.
        """
        started = time.monotonic()
        if user_input is not None:
            self.user_input = user_input
        try:
            session = self.store.get_session(self.session_id)
            if session.status is SessionStatus.IDLE:
                self._apply_limits()
            self.store.update_status(self.session_id, SessionStatus.THINKING)
            self._publish(SessionStarted(objective=session.research_state.main_objective))
            self._initialize()
            return self._execution_loop(started)
        except Exception as exc:
            logger.exception("Session %s: run failed", self.session_id)
            return self._fail(StopReason.ERROR, str(exc) or "Unknown error", started)

    def continue_execution(
        self,
        user_response: str | None = None,
        user_input: UserInputCallback | None = None,
    ) -> RunResult:
        """Resume a session from persisted state.

        A session paused in WAITING_USER (or interrupted in THINKING) has its
        active sub-problem completed exactly once before the loop continues;
        *user_response*, if given, is recorded first.  A COMPLETED session
        returns its final result without running.  A session that never ran
        (IDLE) is handed to ``start`` so it gets its caps and initial plan.
        """
        started = time.monotonic()
        if user_input is not None:
            self.user_input = user_input
        try:
            session = self.store.get_session(self.session_id)
            if session.status is SessionStatus.COMPLETED:
                return self._result(
                    True, StopReason.COMPLETED, started, result=self._final_result(session)
                )
            if session.status is SessionStatus.IDLE:
                if user_response:
                    self._add_message(MessageRole.USER, user_response, MessageType.USER_INPUT)
                return self.start()

            if session.status in (SessionStatus.WAITING_USER, SessionStatus.THINKING):
                if user_response:
                    self._add_message(MessageRole.USER, user_response, MessageType.USER_INPUT)
                self.queue.complete_active(self.session_id)

            self.store.update_status(self.session_id, SessionStatus.THINKING)
            self._publish(
                SessionStarted(objective=session.research_state.main_objective, resumed=True)
            )
            return self._execution_loop(started)
        except Exception as exc:
            logger.exception("Session %s: resume failed", self.session_id)
            return self._fail(StopReason.ERROR, str(exc) or "Unknown error", started)

    # ------------------------------------------------------------------ #
    #  Loop                                                               #
    # ------------------------------------------------------------------ #

    def _apply_limits(self) -> None:
        if self.config.max_iterations is None and self.config.token_budget is None:
            return
        self.store.set_execution_limits(
            self.session_id,
            max_iterations=self.config.max_iterations,
            token_budget=self.config.token_budget,
        )
        logger.debug(
            "Session %s: caps set to %s iterations, %s tokens", self.session_id,
            self.config.max_iterations, self.config.token_budget,
        )

    def _initialize(self) -> None:
        output = self.decomposer.decompose(self.session_id)
        self._record_usage()
        if output is not None:
            self._publish(
                TasksDecomposed(
                    task_count=len(output.tasks),
                    sub_problem_count=sum(len(t.sub_problems) for t in output.tasks),
                )
            )

    def _execution_loop(self, started: float) -> RunResult:
        while True:
            info = self.store.get_session(self.session_id).execution_info
            if info.budget_exhausted:
                return self._fail(StopReason.TOKEN_BUDGET, "Token budget exceeded", started)
            if info.iterations_exhausted:
                return self._fail(
                    StopReason.MAX_ITERATIONS,
                    "Maximum iterations reached without completion",
                    started,
                )

            outcome = self._iterate(started)
            if outcome is not None:
                return outcome

            if self.config.pacing_delay > 0:
                time.sleep(self.config.pacing_delay)

    def _iterate(self, started: float) -> RunResult | None:
        """Run one iteration.  Returns a result when the run should end."""
        iteration = self.store.increment_iteration(self.session_id)
        context = ExecutionContext.from_session(self.store.get_session(self.session_id))

        decision = self._select_decision(context)
        if decision is None:
            logger.info("Session %s: no decision in iteration %d", self.session_id, iteration)
            return self._check_completion(started)

        self._publish(
            DecisionSelected(iteration=iteration, tool=decision.tool, reasoning=decision.reasoning)
        )
        self._apply_adjustment(decision)

        tool = self.registry.get(decision.tool)
        result = self._execute(decision, tool, context)
        self._publish(
            ToolExecuted(
                tool=decision.tool,
                success=result.success,
                error=result.error,
                category=tool.output_category if tool is not None else None,
            )
        )
        if not result.success:
            self.failure_analyzer.analyze(self.session_id, decision, result)
            self._record_usage()
            self.store.update_status(self.session_id, SessionStatus.THINKING)
            return None

        if tool is not None and tool.kind is ToolKind.CLARIFICATION:
            outcome = self._await_user(decision, result, started)
            if outcome is not None:
                return outcome
        else:
            try:
                self._apply_side_effect(decision, tool, result)
            except Exception as exc:
                self._reject_result(decision, exc)
                self.store.update_status(self.session_id, SessionStatus.THINKING)
                return None
            self._complete_sub_problem()
            self.store.update_status(self.session_id, SessionStatus.THINKING)

        return self._check_completion(started)

    # -- planning -----------------------------------------------------------

    def _build_prompt(self, context: ExecutionContext) -> str:
        rs = context.research_state
        output = context.generation_output
        return render_decision_prompt(
            available_tools=self.registry.describe_tools(),
            main_objective=rs.main_objective,
            completed_tasks=summarize_completed_tasks(rs.completed_tasks),
            knowledge_base=summarize_knowledge(
                rs.knowledge_base, self.config.knowledge_summary_limit
            ),
            recent_conversation=summarize_recent_conversation(
                context.message_history, self.config.recent_message_window
            ),
            task_queue_status=summarize_task_queue(rs.task_queue, rs.completed_tasks),
            current_sub_problem=describe_current_sub_problem(rs.task_queue),
            character_progress=self.evaluator.character_progress(output),
            worldbook_progress=self.evaluator.worldbook_progress(output),
            completion_status=self.evaluator.completion_status(output, context.message_history),
        )

    def _select_decision(self, context: ExecutionContext) -> ToolDecision | None:
        try:
            response = self.planner.render(self._build_prompt(context))
        except Exception as exc:
            logger.warning("Session %s: planner request failed: %s", self.session_id, exc)
            return None
        finally:
            self._record_usage()
        return self.parser.parse(response)

    def _apply_adjustment(self, decision: ToolDecision) -> None:
        adjustment = decision.task_adjustment
        try:
            task = self.queue.apply_adjustment(self.session_id, adjustment)
        except Exception as exc:
            logger.warning("Session %s: task adjustment failed: %s", self.session_id, exc)
            return
        if task is not None:
            logger.debug("Session %s: task adjusted: %s", self.session_id, adjustment.reasoning)
            self._publish(
                TaskAdjusted(
                    task_id=task.task_id,
                    description=task.description,
                    sub_problem_count=len(task.sub_problems),
                )
            )

    # -- dispatch -----------------------------------------------------------

    def _execute(
        self,
        decision: ToolDecision,
        tool: BaseTool | None,
        context: ExecutionContext,
    ) -> ExecutionResult:
        self.store.update_status(self.session_id, SessionStatus.EXECUTING)
        if tool is None or tool.kind is not ToolKind.CLARIFICATION:
            self._add_message(
                MessageRole.AGENT,
                f"Executing: {decision.tool} - {decision.reasoning}",
                MessageType.AGENT_ACTION,
                metadata={
                    "tool": decision.tool,
                    "parameters": dict(decision.parameters),
                    "reasoning": decision.reasoning,
                    "priority": decision.priority,
                },
            )
        return self.registry.execute(decision.tool, decision.parameters, context)

    def _apply_side_effect(
        self,
        decision: ToolDecision,
        tool: BaseTool | None,
        result: ExecutionResult,
    ) -> None:
        """Write a successful result into the session according to the tool kind.

        Raises on a payload that cannot be coerced; the caller records it as a
        tool failure and leaves the active sub-problem in place.
        """
        kind = tool.kind if tool is not None else ToolKind.GENERIC
        payload = result.payload()

        if kind is ToolKind.KNOWLEDGE:
            entries = [
                e if isinstance(e, KnowledgeEntry) else KnowledgeEntry.from_dict(e)
                for e in self._items(payload, "knowledge_entries", (KnowledgeEntry, Mapping))
            ]
            if entries:
                added = self.store.add_knowledge_entries(self.session_id, entries)
                logger.info("Session %s: knowledge base +%d entries", self.session_id, added)
        elif kind is ToolKind.CONTENT and tool.output_category is not None:
            data = payload.get(tool.output_category.value)
            if data:
                self._content_handlers[tool.output_category](data)
            else:
                logger.warning(
                    "Session %s: %s returned no %s", self.session_id,
                    decision.tool, tool.output_category.value,
                )
        elif kind is ToolKind.REFLECTION:
            tasks = [
                t if isinstance(t, Task) else Task.from_dict(t, index=i)
                for i, t in enumerate(self._items(payload, "new_tasks", (Task, Mapping, str)))
            ]
            self.queue.enqueue(self.session_id, tasks)
        elif kind is ToolKind.FINALIZE:
            if payload.get("finished") is True:
                logger.info("Session %s: completion confirmed, clearing task queue", self.session_id)
                self.queue.clear(self.session_id)

    def _items(
        self,
        payload: Mapping[str, Any],
        field_name: str,
        accepted: tuple[type, ...],
    ) -> list[Any]:
        """List a payload field, dropping and logging items of the wrong shape."""
        value = payload.get(field_name)
        if value is None:
            return []
        items = list(value) if isinstance(value, (list, tuple)) else [value]
        usable = [i for i in items if isinstance(i, accepted)]
        if len(usable) < len(items):
            logger.warning(
                "Session %s: skipped %d malformed %s item(s)",
                self.session_id, len(items) - len(usable), field_name,
            )
        return usable

    def _reject_result(self, decision: ToolDecision, exc: Exception) -> None:
        logger.warning(
            "Session %s: could not apply %s result: %s", self.session_id, decision.tool, exc
        )
        self.store.record_error(self.session_id, str(exc))
        self._add_message(
            MessageRole.SYSTEM,
            f"Tool result could not be applied: {decision.tool} - {exc}. "
            "Call the tool again with a well-formed result.",
            MessageType.TOOL_FAILURE,
            metadata={
                "tool": decision.tool,
                "parameters": dict(decision.parameters),
                "error": str(exc),
            },
        )

    def _await_user(
        self,
        decision: ToolDecision,
        result: ExecutionResult,
        started: float,
    ) -> RunResult | None:
        payload = result.payload()
        question = str(payload.get("message") or "Please provide your input")
        options = [str(o) for o in payload.get("options") or []]

        self.store.update_status(self.session_id, SessionStatus.WAITING_USER)
        content = f"INPUT REQUIRED: {question}"
        if options:
            content += "\n\nOptions: " + ", ".join(options)
        self._add_message(
            MessageRole.AGENT,
            content,
            MessageType.AGENT_ACTION,
            metadata={
                "tool": decision.tool,
                "parameters": dict(decision.parameters),
                "reasoning": decision.reasoning,
                "result": dict(payload),
            },
        )

        if self.user_input is None:
            logger.info("Session %s: paused, waiting for user input", self.session_id)
            self._publish(SessionPaused(question=question, options=tuple(options)))
            return self._result(
                True,
                StopReason.PAUSED,
                started,
                result="Execution paused - waiting for user input",
            )

        try:
            answer = self.user_input(question, options)
            if answer is None:
                raise UserInputError("No response received", session_id=self.session_id)
        except Exception as exc:
            logger.error("Session %s: failed to get user input: %s", self.session_id, exc)
            return self._fail(StopReason.USER_INPUT_FAILED, "Failed to get user input", started)

        self._add_message(MessageRole.USER, str(answer), MessageType.USER_INPUT)
        self._complete_sub_problem()
        self.store.update_status(self.session_id, SessionStatus.THINKING)
        return None

    # -- content side effects -----------------------------------------------

    def _apply_character(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            logger.warning("Session %s: ignoring non-mapping character_data", self.session_id)
            return
        written = self.store.update_character_data(self.session_id, data)
        logger.info("Session %s: character fields updated: %s", self.session_id, ", ".join(written))

    def _singleton_handler(self, category: OutputCategory) -> Callable[[Any], None]:
        def apply(data: Any) -> None:
            entry = data if isinstance(data, WorldbookEntry) else WorldbookEntry.for_category(category, data)
            self.store.set_output_category(self.session_id, category, entry)
            logger.info("Session %s: %s written (%d words)", self.session_id, category.value, entry.word_count)

        return apply

    def _apply_supplement(self, data: Any) -> None:
        items = self._items(
            {"supplement_data": data}, "supplement_data", (WorldbookEntry, Mapping, str)
        )
        entries = [
            e if isinstance(e, WorldbookEntry)
            else WorldbookEntry.for_category(OutputCategory.SUPPLEMENT, e, index=i)
            for i, e in enumerate(items)
        ]
        self.store.set_output_category(self.session_id, OutputCategory.SUPPLEMENT, entries)
        logger.info("Session %s: supplement_data written (%d entries)", self.session_id, len(entries))

    # -- completion ---------------------------------------------------------

    def _complete_sub_problem(self) -> None:
        before = self.store.get_session(self.session_id).active_task
        if not self.queue.complete_active(self.session_id) or before is None:
            return
        after = self.store.get_session(self.session_id).active_task
        head = before.active_sub_problem
        self._publish(
            SubProblemCompleted(
                task_id=before.task_id,
                sub_problem_id=head.sub_problem_id if head else "",
                task_retired=after is None or after.task_id != before.task_id,
            )
        )

    def _check_completion(self, started: float) -> RunResult | None:
        session = self.store.get_session(self.session_id)
        if session.research_state.task_queue:
            return None

        report = self.evaluator.evaluate(session.generation_output)
        if not report.satisfied:
            logger.info("Session %s: queue empty but output incomplete: %s", self.session_id, report.reason)
            self._add_message(
                MessageRole.AGENT,
                f"Basic validation failed: {report.reason} "
                "The task queue is empty: use the REFLECT tool to plan the remaining work.",
                MessageType.QUALITY_EVALUATION,
                metadata={
                    "next_category": report.next_category.value if report.next_category else None,
                    "missing_fields": list(report.missing_fields),
                    "valid_supplements": report.valid_supplements,
                },
            )
            return None

        output = session.generation_output
        self._add_message(
            MessageRole.AGENT,
            "Character and worldbook generation complete. Available actions follow.",
            MessageType.COMPLETION_ACTIONS,
            metadata={
                "actions": list(COMPLETION_ACTIONS),
                "session_id": self.session_id,
                "character_data": dict(output.character_data),
                "worldbook_data": self._worldbook_export(output),
            },
        )
        self.store.update_status(self.session_id, SessionStatus.COMPLETED)
        session = self.store.get_session(self.session_id)
        self._publish(
            SessionCompleted(
                iterations=session.execution_info.current_iteration,
                tokens_used=session.execution_info.tokens_used,
            )
        )
        logger.info("Session %s: completed", self.session_id)
        return self._result(True, StopReason.COMPLETED, started, result=self._final_result(session))

    @staticmethod
    def _worldbook_export(output: GenerationOutput) -> dict[str, Any]:
        name = output.character_data.get("name")
        entries = []
        for label, entry in (
            ("STATUS", output.status_data),
            ("USER_SETTING", output.user_setting_data),
            ("WORLD_VIEW", output.world_view_data),
        ):
            if entry is not None:
                entries.append({"type": label, "content": worldbook_entry_to_dict(entry)})
        entries.extend(
            {"type": "SUPPLEMENT", "content": worldbook_entry_to_dict(e)}
            for e in output.supplement_data
        )
        return {
            "name": f"{name} Worldbook" if name else "Generated Worldbook",
            "entries": entries,
        }

    @staticmethod
    def _final_result(session: Session) -> dict[str, Any]:
        output = session.generation_output
        return {
            "character_data": dict(output.character_data),
            "status_data": worldbook_entry_to_dict(output.status_data) if output.status_data else None,
            "user_setting_data": (
                worldbook_entry_to_dict(output.user_setting_data)
                if output.user_setting_data else None
            ),
            "world_view_data": (
                worldbook_entry_to_dict(output.world_view_data)
                if output.world_view_data else None
            ),
            "supplement_data": [worldbook_entry_to_dict(e) for e in output.supplement_data],
            "knowledge_base": [
                knowledge_entry_to_dict(e) for e in session.research_state.knowledge_base
            ],
        }

    # ------------------------------------------------------------------ #
    #  Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _record_usage(self) -> None:
        tokens = self.planner.consume_usage()
        if tokens > 0:
            self.store.add_tokens_used(self.session_id, tokens)

    def _add_message(
        self,
        role: MessageRole,
        content: str,
        message_type: MessageType,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self.store.add_message(
            self.session_id,
            Message(role=role, content=content, message_type=message_type, metadata=dict(metadata or {})),
        )

    def _publish(self, event: DomainEvent) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(_with_source(event, self.session_id))

    def _result(
        self,
        success: bool,
        reason: StopReason,
        started: float,
        *,
        result: Any = None,
        error: str | None = None,
    ) -> RunResult:
        info = self.store.get_session(self.session_id).execution_info
        return RunResult(
            success=success,
            stop_reason=reason,
            result=result,
            error=error,
            iterations=info.current_iteration,
            tokens_used=info.tokens_used,
            elapsed_seconds=time.monotonic() - started,
        )

    def _fail(self, reason: StopReason, error: str, started: float) -> RunResult:
        """Mark the session FAILED, keeping everything generated so far."""
        try:
            self.store.update_status(self.session_id, SessionStatus.FAILED)
            self.store.record_error(self.session_id, error)
            result = self._result(False, reason, started, error=error)
        except Exception:
            logger.exception("Session %s: could not record failure", self.session_id)
            result = RunResult(
                success=False,
                stop_reason=reason,
                error=error,
                elapsed_seconds=time.monotonic() - started,
            )
        self._publish(SessionFailed(reason=error))
        logger.warning("Session %s: stopped (%s): %s", self.session_id, reason.value, error)
        return result


def _with_source(event: DomainEvent, source_id: str) -> DomainEvent:
    return event if event.source_id else replace(event, source_id=source_id)
