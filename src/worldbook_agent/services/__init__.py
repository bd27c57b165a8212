"""Services layer for the worldbook agent.

Planning, parsing, queue management, analysis and the execution loop.
"""

from worldbook_agent.services.completion import CompletionEvaluator
from worldbook_agent.services.context import ExecutionContext
from worldbook_agent.services.decision_parser import DecisionParser
from worldbook_agent.services.decomposition import (
    DecompositionOutput,
    TaskDecomposer,
    parse_decomposition,
)
from worldbook_agent.services.engine import AgentEngine, RunResult, StopReason
from worldbook_agent.services.failure_analysis import FailureAnalyzer, parse_failure_analysis
from worldbook_agent.services.planner import BasePlanner, ChatModelPlanner
from worldbook_agent.services.task_queue import TaskQueueManager

__all__ = [
    "AgentEngine",
    "BasePlanner",
    "ChatModelPlanner",
    "CompletionEvaluator",
    "DecisionParser",
    "DecompositionOutput",
    "ExecutionContext",
    "FailureAnalyzer",
    "RunResult",
    "StopReason",
    "TaskDecomposer",
    "TaskQueueManager",
    "parse_decomposition",
    "parse_failure_analysis",
]
