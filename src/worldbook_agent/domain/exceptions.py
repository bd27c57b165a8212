"""Domain exceptions for the worldbook agent.

All domain-specific exceptions inherit from ``WorldbookAgentError`` so callers
can catch the full family with a single ``except`` clause when needed.
"""

from __future__ import annotations

from typing import Any


class WorldbookAgentError(Exception):
    """Base exception for all worldbook agent errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class SessionNotFoundError(WorldbookAgentError):
    """Raised when the persistence layer has no session for an id."""

    def __init__(
        self,
        session_id: str = "",
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or f"Session not found: {session_id}", details)
        self.session_id = session_id


class UserInputError(WorldbookAgentError):
    """Raised when the interactive collaborator fails to deliver a response.

    Unlike tool failures this is fatal for the current run: the session is
    marked FAILED and the loop exits.
    """

    def __init__(
        self,
        message: str = "User input failed",
        session_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.session_id = session_id


class ToolRegistrationError(WorldbookAgentError):
    """Raised when a tool cannot be registered (duplicate static type, bad name)."""

    def __init__(
        self,
        message: str = "Tool registration failed",
        tool_name: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.tool_name = tool_name


class DecisionParseError(WorldbookAgentError):
    """Raised internally when planner output cannot be turned into a decision.

    The public parser catches it and reports "no decision"; it never escapes
    to the execution loop.
    """

    def __init__(
        self,
        message: str = "Decision parsing failed",
        raw_output: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.raw_output = raw_output
