"""Domain layer for the worldbook agent.

Re-exports all public domain types so that consumers can write::

    from worldbook_agent.domain import Session, Task, ToolDecision
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    ClarityLevel,
    MessageRole,
    MessageType,
    OutputCategory,
    SessionStatus,
    ToolKind,
    ToolType,
)

# -- Value Objects ------------------------------------------------------------
from .values import (
    CHARACTER_FIELDS,
    CompletionReport,
    DecompositionAnalysis,
    ExecutionResult,
    FailureAnalysis,
    KnowledgeEntry,
    TaskAdjustment,
    ToolDecision,
    WorldbookEntry,
    is_filled,
)

# -- Entities -----------------------------------------------------------------
from .entities import Message, SubProblem, Task

# -- Aggregates ---------------------------------------------------------------
from .aggregates import ExecutionInfo, GenerationOutput, ResearchState, Session

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    DecisionParseError,
    SessionNotFoundError,
    ToolRegistrationError,
    UserInputError,
    WorldbookAgentError,
)

__all__ = [
    # enums
    "ClarityLevel",
    "MessageRole",
    "MessageType",
    "OutputCategory",
    "SessionStatus",
    "ToolKind",
    "ToolType",
    # values
    "CHARACTER_FIELDS",
    "CompletionReport",
    "DecompositionAnalysis",
    "ExecutionResult",
    "FailureAnalysis",
    "KnowledgeEntry",
    "TaskAdjustment",
    "ToolDecision",
    "WorldbookEntry",
    "is_filled",
    # entities
    "Message",
    "SubProblem",
    "Task",
    # aggregates
    "ExecutionInfo",
    "GenerationOutput",
    "ResearchState",
    "Session",
    # exceptions
    "DecisionParseError",
    "SessionNotFoundError",
    "ToolRegistrationError",
    "UserInputError",
    "WorldbookAgentError",
]
