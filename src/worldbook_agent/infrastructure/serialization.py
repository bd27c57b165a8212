"""Serialization utilities for the worldbook agent.

Provides ``to_dict`` / ``from_dict`` round-trip conversion for sessions and
everything they contain, plus JSON helpers.  Every ``to_dict`` output is
JSON-serializable; ``from_dict`` reconstructors accept permissive input and
raise ``ValueError`` for truly unrecoverable data.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from worldbook_agent.domain.aggregates import (
    ExecutionInfo,
    GenerationOutput,
    ResearchState,
    Session,
)
from worldbook_agent.domain.entities import Message, SubProblem, Task
from worldbook_agent.domain.enums import MessageRole, MessageType, SessionStatus
from worldbook_agent.domain.values import KnowledgeEntry, WorldbookEntry

logger = logging.getLogger(__name__)


# =========================================================================== #
#  Values                                                                      #
# =========================================================================== #

def knowledge_entry_to_dict(e: KnowledgeEntry) -> dict[str, Any]:
    return {
        "entry_id": e.entry_id,
        "source": e.source,
        "content": e.content,
        "query": e.query,
        "url": e.url,
        "relevance_score": e.relevance_score,
        "timestamp": e.timestamp,
    }


def worldbook_entry_to_dict(e: WorldbookEntry) -> dict[str, Any]:
    return {
        "keys": list(e.keys),
        "content": e.content,
        "comment": e.comment,
        "constant": e.constant,
        "position": e.position,
        "insert_order": e.insert_order,
        "selective": e.selective,
        "keysecondary": list(e.keysecondary),
    }


def worldbook_entry_from_dict(data: dict[str, Any]) -> WorldbookEntry:
    return WorldbookEntry(
        content=str(data.get("content", "")),
        keys=tuple(data.get("keys", ())),
        comment=str(data.get("comment", "")),
        constant=bool(data.get("constant", False)),
        position=int(data.get("position", 0)),
        insert_order=int(data.get("insert_order", 0)),
        selective=bool(data.get("selective", True)),
        keysecondary=tuple(data.get("keysecondary", ())),
    )


# =========================================================================== #
#  Entities                                                                    #
# =========================================================================== #

def task_to_dict(t: Task) -> dict[str, Any]:
    return {
        "task_id": t.task_id,
        "description": t.description,
        "reasoning": t.reasoning,
        "sub_problems": [
            {
                "sub_problem_id": s.sub_problem_id,
                "description": s.description,
                "reasoning": s.reasoning,
            }
            for s in t.sub_problems
        ],
    }


def task_from_dict(data: dict[str, Any]) -> Task:
    try:
        return Task(
            task_id=str(data["task_id"]),
            description=str(data["description"]),
            reasoning=str(data.get("reasoning", "")),
            sub_problems=tuple(
                SubProblem(
                    sub_problem_id=str(s["sub_problem_id"]),
                    description=str(s["description"]),
                    reasoning=str(s.get("reasoning", "")),
                )
                for s in data.get("sub_problems", [])
            ),
        )
    except KeyError as exc:
        raise ValueError(f"Task record is missing {exc}") from None


def message_to_dict(m: Message) -> dict[str, Any]:
    return {
        "message_id": m.message_id,
        "role": m.role.value,
        "content": m.content,
        "message_type": m.message_type.value,
        "metadata": dict(m.metadata),
        "timestamp": m.timestamp,
    }


def message_from_dict(data: dict[str, Any]) -> Message:
    try:
        kwargs: dict[str, Any] = {
            "role": MessageRole(data["role"]),
            "content": str(data.get("content", "")),
            "message_type": MessageType(data["message_type"]),
            "metadata": dict(data.get("metadata", {})),
            "timestamp": float(data.get("timestamp", 0.0)),
        }
    except KeyError as exc:
        raise ValueError(f"Message record is missing {exc}") from None
    if data.get("message_id"):
        kwargs["message_id"] = str(data["message_id"])
    return Message(**kwargs)


# =========================================================================== #
#  Session                                                                     #
# =========================================================================== #

def session_to_dict(s: Session) -> dict[str, Any]:
    rs = s.research_state
    out = s.generation_output
    return {
        "session_id": s.session_id,
        "title": s.title,
        "status": s.status.value,
        "created_at": s.created_at,
        "updated_at": s.updated_at,
        "research_state": {
            "main_objective": rs.main_objective,
            "task_queue": [task_to_dict(t) for t in rs.task_queue],
            "completed_tasks": list(rs.completed_tasks),
            "knowledge_base": [knowledge_entry_to_dict(e) for e in rs.knowledge_base],
        },
        "generation_output": {
            "character_data": dict(out.character_data),
            "status_data": _optional_entry(out.status_data),
            "user_setting_data": _optional_entry(out.user_setting_data),
            "world_view_data": _optional_entry(out.world_view_data),
            "supplement_data": [worldbook_entry_to_dict(e) for e in out.supplement_data],
        },
        "messages": [message_to_dict(m) for m in s.messages],
        "execution_info": {
            "max_iterations": s.execution_info.max_iterations,
            "token_budget": s.execution_info.token_budget,
            "current_iteration": s.execution_info.current_iteration,
            "tokens_used": s.execution_info.tokens_used,
            "error_count": s.execution_info.error_count,
            "last_error": s.execution_info.last_error,
        },
    }


def session_from_dict(data: dict[str, Any]) -> Session:
    try:
        rs = data["research_state"]
        research_state = ResearchState(
            main_objective=str(rs["main_objective"]),
            task_queue=[task_from_dict(t) for t in rs.get("task_queue", [])],
            completed_tasks=[str(t) for t in rs.get("completed_tasks", [])],
            knowledge_base=[KnowledgeEntry.from_dict(e) for e in rs.get("knowledge_base", [])],
        )
        out = data.get("generation_output", {})
        generation_output = GenerationOutput(
            character_data=dict(out.get("character_data", {})),
            status_data=_entry_or_none(out.get("status_data")),
            user_setting_data=_entry_or_none(out.get("user_setting_data")),
            world_view_data=_entry_or_none(out.get("world_view_data")),
            supplement_data=[
                worldbook_entry_from_dict(e) for e in out.get("supplement_data", [])
            ],
        )
        info = data.get("execution_info", {})
        return Session(
            session_id=str(data["session_id"]),
            title=str(data.get("title", "")),
            status=SessionStatus(data.get("status", SessionStatus.IDLE.value)),
            research_state=research_state,
            generation_output=generation_output,
            messages=[message_from_dict(m) for m in data.get("messages", [])],
            execution_info=ExecutionInfo(
                max_iterations=int(info.get("max_iterations", 50)),
                token_budget=int(info.get("token_budget", 200_000)),
                current_iteration=int(info.get("current_iteration", 0)),
                tokens_used=int(info.get("tokens_used", 0)),
                error_count=int(info.get("error_count", 0)),
                last_error=info.get("last_error"),
            ),
            created_at=float(data.get("created_at", 0.0)),
            updated_at=float(data.get("updated_at", 0.0)),
        )
    except KeyError as exc:
        raise ValueError(f"Session record is missing {exc}") from None


def _optional_entry(e: WorldbookEntry | None) -> dict[str, Any] | None:
    return worldbook_entry_to_dict(e) if e is not None else None


def _entry_or_none(data: dict[str, Any] | None) -> WorldbookEntry | None:
    return worldbook_entry_from_dict(data) if data else None


# =========================================================================== #
#  JSON                                                                        #
# =========================================================================== #

def session_to_json(s: Session, *, indent: int | None = 2) -> str:
    return json.dumps(session_to_dict(s), indent=indent, ensure_ascii=False, default=str)


def session_from_json(json_str: str) -> Session:
    return session_from_dict(json.loads(json_str))
