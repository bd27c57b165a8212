"""Shared fixtures for the worldbook agent test suite."""

from __future__ import annotations

import pytest

from worldbook_agent.infrastructure.event_bus import EventBus, EventStore
from worldbook_agent.infrastructure.registry import ToolRegistry
from worldbook_agent.infrastructure.session_store import InMemorySessionStore

from tests.helpers.fake_tools import build_registry

OBJECTIVE = "Create a sci-fi detective story character"


@pytest.fixture
def store() -> InMemorySessionStore:
    """A fresh in-memory session store."""
    return InMemorySessionStore()


@pytest.fixture
def session_id(store: InMemorySessionStore) -> str:
    """Id of a new session with the default caps."""
    return store.create_session("Detective", OBJECTIVE).session_id


@pytest.fixture
def registry() -> ToolRegistry:
    """A registry holding one fake tool per built-in tool type."""
    return build_registry()


@pytest.fixture
def event_bus() -> EventBus:
    """A fresh event bus."""
    return EventBus()


@pytest.fixture
def event_store(event_bus: EventBus) -> EventStore:
    """An event store recording every event on ``event_bus``."""
    es = EventStore()
    es.attach(event_bus)
    return es
