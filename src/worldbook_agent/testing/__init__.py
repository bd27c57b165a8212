"""Public testing utilities for the worldbook agent.

Provides scripted planners and a mock chat model for writing
self-contained examples and tests without requiring API keys.
"""

from worldbook_agent.testing.mock_llm import MockChatModel, ScriptedPlanner

__all__ = ["MockChatModel", "ScriptedPlanner"]
