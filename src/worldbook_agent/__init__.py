"""Worldbook Agent.

Planner-driven agent that turns a story idea into a roleplay character card
and a keyed worldbook, one tool call per iteration.
"""

__version__ = "0.1.0"

from worldbook_agent.infrastructure import (
    EngineConfig,
    InMemorySessionStore,
    JsonFileSessionStore,
    ToolRegistry,
)
from worldbook_agent.services import AgentEngine, ChatModelPlanner, RunResult, StopReason

__all__ = [
    "AgentEngine",
    "ChatModelPlanner",
    "EngineConfig",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "RunResult",
    "StopReason",
    "ToolRegistry",
]
