"""Domain enumerations for the worldbook agent.

These enums capture the fixed vocabularies used across the domain layer:
session lifecycle states, tool identifiers and kinds, message roles and types,
generation-output categories, and story clarity levels.
"""

from enum import Enum


class SessionStatus(Enum):
    """Finite-state-machine states for an agent session."""

    IDLE = "idle"
    THINKING = "thinking"
    EXECUTING = "executing"
    WAITING_USER = "waiting_user"
    COMPLETED = "completed"
    FAILED = "failed"


class ToolType(Enum):
    """Identifiers of the statically registered tools."""

    SEARCH = "SEARCH"
    ASK_USER = "ASK_USER"
    CHARACTER = "CHARACTER"
    STATUS = "STATUS"
    USER_SETTING = "USER_SETTING"
    WORLD_VIEW = "WORLD_VIEW"
    SUPPLEMENT = "SUPPLEMENT"
    REFLECT = "REFLECT"
    COMPLETE = "COMPLETE"

    @classmethod
    def lookup(cls, identifier: str) -> "ToolType | None":
        """Return the member whose value matches *identifier*, or ``None``."""
        try:
            return cls(identifier.strip().upper())
        except ValueError:
            return None


class ToolKind(Enum):
    """Side-effect family a tool belongs to."""

    KNOWLEDGE = "knowledge"  # merges knowledge entries
    CLARIFICATION = "clarification"  # asks the user
    CONTENT = "content"  # writes a generation-output category
    REFLECTION = "reflection"  # appends tasks
    FINALIZE = "finalize"  # may clear the queue
    GENERIC = "generic"  # no side effect


class OutputCategory(Enum):
    """Categories of the generation output."""

    CHARACTER = "character_data"
    STATUS = "status_data"
    USER_SETTING = "user_setting_data"
    WORLD_VIEW = "world_view_data"
    SUPPLEMENT = "supplement_data"

    @property
    def tool(self) -> ToolType:
        """The static tool that produces this category."""
        return ToolType[self.name]

    @property
    def is_singleton(self) -> bool:
        return self in _SINGLETON_CATEGORIES


_SINGLETON_CATEGORIES = frozenset({
    OutputCategory.STATUS,
    OutputCategory.USER_SETTING,
    OutputCategory.WORLD_VIEW,
})


class MessageRole(Enum):
    """Author of a session message."""

    AGENT = "agent"
    USER = "user"
    SYSTEM = "system"


class MessageType(Enum):
    """Classification of a session message."""

    AGENT_THINKING = "agent_thinking"
    AGENT_ACTION = "agent_action"
    USER_INPUT = "user_input"
    SYSTEM_INFO = "system_info"
    TOOL_FAILURE = "tool_failure"
    QUALITY_EVALUATION = "quality_evaluation"
    COMPLETION_ACTIONS = "completion_actions"


class ClarityLevel(Enum):
    """How clearly the user described the story they want."""

    CLEAR = "clear"
    MODERATE = "moderate"
    VAGUE = "vague"

    @classmethod
    def parse(cls, text: str | None) -> "ClarityLevel":
        """Parse free text, defaulting to ``MODERATE``."""
        if text:
            try:
                return cls(text.strip().lower())
            except ValueError:
                pass
        return cls.MODERATE
