"""Infrastructure layer for the worldbook agent.

Configuration, event bus, tool registry, serialization and session stores.
"""

from worldbook_agent.infrastructure.config import (
    EngineConfig,
    PlannerConfig,
    load_config_from_json,
)
from worldbook_agent.infrastructure.event_bus import EventBus, EventStore, Subscription
from worldbook_agent.infrastructure.registry import BaseTool, ToolParameter, ToolRegistry
from worldbook_agent.infrastructure.session_store import (
    InMemorySessionStore,
    JsonFileSessionStore,
    SessionStore,
)

__all__ = [
    "EngineConfig",
    "PlannerConfig",
    "load_config_from_json",
    "EventBus",
    "EventStore",
    "Subscription",
    "BaseTool",
    "ToolParameter",
    "ToolRegistry",
    "SessionStore",
    "InMemorySessionStore",
    "JsonFileSessionStore",
]
