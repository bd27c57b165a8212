"""Session persistence for the worldbook agent.

``SessionStore`` is the contract the engine depends on.  Every mutation is a
single named operation so that implementations can apply it atomically; reads
return deep copies so callers never hold live references into stored state.

Two implementations ship with the package:

* ``InMemorySessionStore`` -- dictionary-backed, guarded by a lock.
* ``JsonFileSessionStore`` -- same semantics, plus one JSON document per
  session written after every mutation, so a fresh process (or a fresh
  engine) can resume from disk.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from worldbook_agent.domain.aggregates import (
    ExecutionInfo,
    GenerationOutput,
    ResearchState,
    Session,
)
from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import OutputCategory, SessionStatus
from worldbook_agent.domain.exceptions import SessionNotFoundError
from worldbook_agent.domain.values import KnowledgeEntry, WorldbookEntry
from worldbook_agent.infrastructure.serialization import session_from_json, session_to_json

logger = logging.getLogger(__name__)


# ===================================================================== #
#  Contract                                                              #
# ===================================================================== #

class SessionStore(ABC):
    """Abstract persistence layer backing session state."""

    # -- lifecycle ----------------------------------------------------------

    @abstractmethod
    def create_session(
        self,
        title: str,
        objective: str,
        *,
        max_iterations: int = 50,
        token_budget: int = 200_000,
        session_id: str | None = None,
    ) -> Session:
        """Create and return a new IDLE session."""

    @abstractmethod
    def get_session(self, session_id: str) -> Session:
        """Return a deep copy.  Raises ``SessionNotFoundError``."""

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        """Remove a session.  Returns ``True`` if it existed."""

    @abstractmethod
    def list_sessions(self) -> list[str]:
        """Ids of all known sessions."""

    # -- log and status -----------------------------------------------------

    @abstractmethod
    def add_message(self, session_id: str, message: Message) -> None: ...

    @abstractmethod
    def update_status(self, session_id: str, status: SessionStatus) -> None: ...

    @abstractmethod
    def increment_iteration(self, session_id: str) -> int:
        """Bump and return the persisted iteration counter."""

    @abstractmethod
    def add_tokens_used(self, session_id: str, tokens: int) -> int:
        """Add to and return the persisted token counter."""

    @abstractmethod
    def record_error(self, session_id: str, error: str) -> None: ...

    @abstractmethod
    def set_execution_limits(
        self,
        session_id: str,
        *,
        max_iterations: int | None = None,
        token_budget: int | None = None,
    ) -> None:
        """Overwrite the caps of a session that has not started yet.

        Raises ``ValueError`` unless the session is IDLE; ``None`` leaves a
        cap unchanged.
        """

    # -- research state -----------------------------------------------------

    @abstractmethod
    def update_research_state(self, session_id: str, research_state: ResearchState) -> None:
        """Replace the research state; the stored main objective is kept."""

    @abstractmethod
    def add_knowledge_entries(
        self, session_id: str, entries: Iterable[KnowledgeEntry]
    ) -> int:
        """Merge entries into the knowledge base.  Returns the number added."""

    @abstractmethod
    def add_tasks_to_queue(self, session_id: str, tasks: Iterable[Task]) -> None:
        """Append tasks to the tail of the queue."""

    @abstractmethod
    def clear_all_tasks(self, session_id: str) -> None: ...

    @abstractmethod
    def complete_current_sub_problem(self, session_id: str) -> bool:
        """Pop the active sub-problem, retiring the task if it is now empty."""

    @abstractmethod
    def modify_current_task(
        self,
        session_id: str,
        description: str,
        sub_problems: Sequence[str] | None = None,
        reasoning: str = "",
    ) -> Task | None:
        """Rewrite the active task.  Returns it, or ``None`` if the queue is empty."""

    # -- generation output --------------------------------------------------

    @abstractmethod
    def update_character_data(self, session_id: str, data: Mapping[str, Any]) -> list[str]:
        """Merge character fields.  Returns the names written."""

    @abstractmethod
    def set_output_category(
        self,
        session_id: str,
        category: OutputCategory,
        value: WorldbookEntry | Sequence[WorldbookEntry] | None,
    ) -> None:
        """Overwrite a worldbook category wholesale."""

    @abstractmethod
    def get_generation_output(self, session_id: str) -> GenerationOutput: ...


# ===================================================================== #
#  In-memory store                                                       #
# ===================================================================== #

class InMemorySessionStore(SessionStore):
    """Dictionary-backed store; every operation holds a single lock."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    # -- hooks for subclasses -----------------------------------------------

    def _persist(self, session: Session) -> None:
        """Called after every mutation while the lock is held."""

    def _load(self, session_id: str) -> Session | None:
        """Called on a cache miss while the lock is held."""
        return None

    # -- internals ----------------------------------------------------------

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._load(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            self._sessions[session_id] = session
        return session

    @contextmanager
    def _mutate(self, session_id: str) -> Iterator[Session]:
        with self._lock:
            session = self._require(session_id)
            yield session
            session.updated_at = time.time()
            self._persist(session)

    # -- lifecycle ----------------------------------------------------------

    def create_session(
        self,
        title: str,
        objective: str,
        *,
        max_iterations: int = 50,
        token_budget: int = 200_000,
        session_id: str | None = None,
    ) -> Session:
        now = time.time()
        session = Session(
            session_id=session_id or f"session_{uuid.uuid4().hex[:12]}",
            title=title,
            research_state=ResearchState(main_objective=objective),
            execution_info=ExecutionInfo(
                max_iterations=max_iterations, token_budget=token_budget
            ),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Session {session.session_id!r} already exists")
            self._sessions[session.session_id] = session
            self._persist(session)
        logger.info("Created session %s: %s", session.session_id, title)
        return session.snapshot()

    def get_session(self, session_id: str) -> Session:
        with self._lock:
            return self._require(session_id).snapshot()

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def list_sessions(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    # -- log and status -----------------------------------------------------

    def add_message(self, session_id: str, message: Message) -> None:
        with self._mutate(session_id) as session:
            session.messages.append(message)

    def update_status(self, session_id: str, status: SessionStatus) -> None:
        with self._mutate(session_id) as session:
            if session.status is not status:
                logger.debug("Session %s: %s -> %s", session_id, session.status.value, status.value)
            session.status = status

    def increment_iteration(self, session_id: str) -> int:
        with self._mutate(session_id) as session:
            session.execution_info.current_iteration += 1
            return session.execution_info.current_iteration

    def add_tokens_used(self, session_id: str, tokens: int) -> int:
        if tokens < 0:
            raise ValueError(f"token usage cannot decrease, got {tokens}")
        with self._mutate(session_id) as session:
            session.execution_info.tokens_used += tokens
            return session.execution_info.tokens_used

    def record_error(self, session_id: str, error: str) -> None:
        with self._mutate(session_id) as session:
            session.execution_info.error_count += 1
            session.execution_info.last_error = error

    def set_execution_limits(
        self,
        session_id: str,
        *,
        max_iterations: int | None = None,
        token_budget: int | None = None,
    ) -> None:
        with self._mutate(session_id) as session:
            if session.status is not SessionStatus.IDLE:
                raise ValueError(
                    f"Session {session_id!r} already started; caps are fixed"
                )
            if max_iterations is not None:
                session.execution_info.max_iterations = max_iterations
            if token_budget is not None:
                session.execution_info.token_budget = token_budget

    # -- research state -----------------------------------------------------

    def update_research_state(self, session_id: str, research_state: ResearchState) -> None:
        with self._mutate(session_id) as session:
            objective = session.research_state.main_objective
            session.research_state = research_state
            session.research_state.main_objective = objective

    def add_knowledge_entries(
        self, session_id: str, entries: Iterable[KnowledgeEntry]
    ) -> int:
        with self._mutate(session_id) as session:
            return session.research_state.add_knowledge(entries)

    def add_tasks_to_queue(self, session_id: str, tasks: Iterable[Task]) -> None:
        with self._mutate(session_id) as session:
            session.research_state.add_tasks(tasks)

    def clear_all_tasks(self, session_id: str) -> None:
        with self._mutate(session_id) as session:
            session.research_state.clear_tasks()

    def complete_current_sub_problem(self, session_id: str) -> bool:
        with self._mutate(session_id) as session:
            return session.research_state.complete_active_sub_problem()

    def modify_current_task(
        self,
        session_id: str,
        description: str,
        sub_problems: Sequence[str] | None = None,
        reasoning: str = "",
    ) -> Task | None:
        with self._mutate(session_id) as session:
            task = session.research_state.active_task
            if task is None:
                return None
            rewritten = task.rewrite(description, sub_problems, reasoning=reasoning)
            session.research_state.replace_active_task(rewritten)
            return rewritten

    # -- generation output --------------------------------------------------

    def update_character_data(self, session_id: str, data: Mapping[str, Any]) -> list[str]:
        with self._mutate(session_id) as session:
            return session.generation_output.merge_character(data)

    def set_output_category(
        self,
        session_id: str,
        category: OutputCategory,
        value: WorldbookEntry | Sequence[WorldbookEntry] | None,
    ) -> None:
        with self._mutate(session_id) as session:
            session.generation_output.set_category(category, value)

    def get_generation_output(self, session_id: str) -> GenerationOutput:
        return self.get_session(session_id).generation_output


# ===================================================================== #
#  JSON file store                                                       #
# ===================================================================== #

class JsonFileSessionStore(InMemorySessionStore):
    """Write-through store keeping one ``<session_id>.json`` per session.

    Parameters
    ----------
    directory:
        Where session documents live; created if missing.
    """

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, session_id: str) -> Path:
        return self._directory / f"{session_id}.json"

    def _persist(self, session: Session) -> None:
        path = self.path_for(session.session_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(session_to_json(session), encoding="utf-8")
        tmp.replace(path)

    def _load(self, session_id: str) -> Session | None:
        path = self.path_for(session_id)
        if not path.exists():
            return None
        logger.debug("Loading session %s from %s", session_id, path)
        return session_from_json(path.read_text(encoding="utf-8"))

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            existed = super().delete_session(session_id)
            path = self.path_for(session_id)
            if path.exists():
                path.unlink()
                existed = True
            return existed

    def list_sessions(self) -> list[str]:
        with self._lock:
            on_disk = {p.stem for p in self._directory.glob("*.json")}
            return sorted(on_disk | set(self._sessions))
