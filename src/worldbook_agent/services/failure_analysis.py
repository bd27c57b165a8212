"""Root-cause analysis of failed tool calls.

When a dispatch fails the planner is asked, in a second request, why its
call went wrong.  The answer is recorded as a ``tool_failure`` message, which
the next decision prompt shows first, so the planner can correct itself.
"""

from __future__ import annotations

import dataclasses
import json
import logging

from worldbook_agent.domain.entities import Message
from worldbook_agent.domain.enums import MessageRole, MessageType
from worldbook_agent.domain.values import ExecutionResult, FailureAnalysis, ToolDecision
from worldbook_agent.infrastructure.config import EngineConfig
from worldbook_agent.infrastructure.registry import ToolRegistry
from worldbook_agent.infrastructure.session_store import SessionStore
from worldbook_agent.services.context import summarize_recent_conversation
from worldbook_agent.services.decision_parser import extract_tag
from worldbook_agent.services.planner import BasePlanner
from worldbook_agent.services.prompts import render_failure_analysis_prompt

logger = logging.getLogger(__name__)

_FIELDS = (
    "root_cause",
    "parameter_analysis",
    "planner_issue",
    "correct_approach",
    "prevention",
    "impact",
)


def parse_failure_analysis(text: str, tool: str, error: str) -> FailureAnalysis:
    """Parse a ``<failure_analysis>`` response; missing fields stay empty."""
    values = {name: extract_tag(text, name) or "" for name in _FIELDS}
    values["root_cause"] = values["root_cause"] or "Analysis failed"
    return FailureAnalysis(tool=tool, error=error, **values)


class FailureAnalyzer:
    """Explains tool failures to the planner.  Never raises.

    Parameters
    ----------
    planner:
        Answers the analysis request.
    store:
        Receives the ``tool_failure`` message.
    registry:
        Supplies the failed tool's declared parameter schema.
    config:
        Supplies the recent-message window.
    """

    def __init__(
        self,
        planner: BasePlanner,
        store: SessionStore,
        registry: ToolRegistry,
        config: EngineConfig | None = None,
    ) -> None:
        self.planner = planner
        self.store = store
        self.registry = registry
        self.config = config or EngineConfig()

    def analyze(
        self,
        session_id: str,
        decision: ToolDecision,
        result: ExecutionResult,
    ) -> FailureAnalysis | None:
        """Analyze and record a failure.  Returns ``None`` when analysis failed."""
        error = result.error or "Unknown error"
        try:
            session = self.store.get_session(session_id)
            task = session.active_task
            prompt = render_failure_analysis_prompt(
                tool=decision.tool,
                parameter_schema=self.registry.parameter_schema(decision.tool),
                actual_parameters=json.dumps(
                    dict(decision.parameters), ensure_ascii=False, indent=2, default=str
                ),
                error=error,
                reasoning=decision.reasoning,
                main_objective=session.research_state.main_objective,
                current_task=task.description if task else "No current task",
                recent_conversation=summarize_recent_conversation(
                    session.messages, self.config.recent_message_window
                ),
            )
            analysis = parse_failure_analysis(self.planner.render(prompt), decision.tool, error)
        except Exception as exc:
            logger.warning("FailureAnalyzer: analysis of %s failed: %s", decision.tool, exc)
            self._record(
                session_id,
                f"Tool execution failed: {decision.tool} - {error}. Analysis failed: {exc}",
                {"tool": decision.tool, "error": error, "analysis_error": str(exc)},
            )
            return None

        self._record(
            session_id,
            analysis.render(),
            {
                "tool": decision.tool,
                "parameters": dict(decision.parameters),
                "error": error,
                "analysis": dataclasses.asdict(analysis),
            },
        )
        return analysis

    def _record(self, session_id: str, content: str, metadata: dict) -> None:
        try:
            self.store.add_message(
                session_id,
                Message(
                    role=MessageRole.SYSTEM,
                    content=content,
                    message_type=MessageType.TOOL_FAILURE,
                    metadata=metadata,
                ),
            )
        except Exception:
            logger.exception("FailureAnalyzer: could not record failure for %s", session_id)
