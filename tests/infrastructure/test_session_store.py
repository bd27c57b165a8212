"""Tests for the session stores."""

from __future__ import annotations

import json

import pytest

from worldbook_agent.domain.entities import Message, Task
from worldbook_agent.domain.enums import MessageRole, MessageType, OutputCategory, SessionStatus
from worldbook_agent.domain.exceptions import SessionNotFoundError
from worldbook_agent.domain.values import KnowledgeEntry, WorldbookEntry
from worldbook_agent.domain.aggregates import ResearchState
from worldbook_agent.infrastructure.config import EngineConfig
from worldbook_agent.infrastructure.session_store import JsonFileSessionStore
from worldbook_agent.services.engine import AgentEngine, StopReason
from worldbook_agent.testing import ScriptedPlanner

from tests.helpers.planner_output import decision_xml, decomposition_xml


def _task(description: str, subs: list[str], index: int = 0) -> Task:
    return Task.from_dict({"description": description, "sub_problems": subs}, index=index)


class TestLifecycle:
    def test_create_defaults(self, store) -> None:
        session = store.create_session("Detective", "Create a detective")
        assert session.session_id.startswith("session_")
        assert session.status == SessionStatus.IDLE
        assert session.research_state.main_objective == "Create a detective"
        assert session.execution_info.max_iterations == 50
        assert session.execution_info.token_budget == 200_000
        assert session.created_at > 0

    def test_create_with_caps_and_id(self, store) -> None:
        session = store.create_session("t", "o", max_iterations=7, token_budget=99, session_id="s1")
        assert session.session_id == "s1"
        assert session.execution_info.max_iterations == 7
        with pytest.raises(ValueError):
            store.create_session("t", "o", session_id="s1")

    def test_set_execution_limits_on_idle_session(self, store, session_id) -> None:
        store.set_execution_limits(session_id, max_iterations=4)
        info = store.get_session(session_id).execution_info
        assert info.max_iterations == 4
        assert info.token_budget == 200_000

    def test_limits_fixed_once_started(self, store, session_id) -> None:
        store.update_status(session_id, SessionStatus.THINKING)
        with pytest.raises(ValueError, match="already started"):
            store.set_execution_limits(session_id, token_budget=10)
        assert store.get_session(session_id).execution_info.token_budget == 200_000

    def test_missing_session(self, store) -> None:
        with pytest.raises(SessionNotFoundError) as info:
            store.get_session("ghost")
        assert info.value.session_id == "ghost"
        with pytest.raises(SessionNotFoundError):
            store.increment_iteration("ghost")

    def test_delete_and_list(self, store) -> None:
        a = store.create_session("a", "o").session_id
        b = store.create_session("b", "o").session_id
        assert set(store.list_sessions()) == {a, b}
        assert store.delete_session(a)
        assert not store.delete_session(a)
        assert store.list_sessions() == [b]

    def test_get_returns_copy(self, store, session_id) -> None:
        session = store.get_session(session_id)
        session.messages.append(Message(MessageRole.USER, "x", MessageType.USER_INPUT))
        assert store.get_session(session_id).messages == []

    def test_mutation_touches_updated_at(self, store, session_id) -> None:
        before = store.get_session(session_id).updated_at
        store.update_status(session_id, SessionStatus.THINKING)
        assert store.get_session(session_id).updated_at >= before


class TestCounters:
    def test_increment_iteration(self, store, session_id) -> None:
        assert store.increment_iteration(session_id) == 1
        assert store.increment_iteration(session_id) == 2

    def test_tokens_are_monotonic(self, store, session_id) -> None:
        assert store.add_tokens_used(session_id, 10) == 10
        assert store.add_tokens_used(session_id, 0) == 10
        with pytest.raises(ValueError):
            store.add_tokens_used(session_id, -1)

    def test_record_error(self, store, session_id) -> None:
        store.record_error(session_id, "first")
        store.record_error(session_id, "second")
        info = store.get_session(session_id).execution_info
        assert info.error_count == 2
        assert info.last_error == "second"


class TestResearchState:
    def test_objective_survives_update(self, store, session_id) -> None:
        store.update_research_state(session_id, ResearchState(main_objective="changed"))
        objective = store.get_session(session_id).research_state.main_objective
        assert objective == "Create a sci-fi detective story character"

    def test_knowledge_dedup(self, store, session_id) -> None:
        entry = KnowledgeEntry(source="wiki", content="c", entry_id="k1")
        assert store.add_knowledge_entries(session_id, [entry, entry]) == 1
        assert store.add_knowledge_entries(session_id, [entry]) == 0

    def test_fifo_queue(self, store, session_id) -> None:
        store.add_tasks_to_queue(session_id, [_task("A", ["a1"]), _task("B", ["b1", "b2"], 1)])
        assert store.complete_current_sub_problem(session_id)
        state = store.get_session(session_id).research_state
        assert state.active_task.description == "B"
        assert state.completed_tasks == ["A"]

        store.clear_all_tasks(session_id)
        assert not store.complete_current_sub_problem(session_id)

    def test_modify_current_task(self, store, session_id) -> None:
        original = _task("A", ["a1", "a2"])
        store.add_tasks_to_queue(session_id, [original, _task("B", ["b1"], 1)])
        task = store.modify_current_task(session_id, "A2", ["x"], reasoning="why")
        assert task.task_id == original.task_id
        assert task.sub_problems[0].sub_problem_id.startswith("sub_")
        assert "_adj_0" in task.sub_problems[0].sub_problem_id
        queue = store.get_session(session_id).research_state.task_queue
        assert queue[0].description == "A2"
        assert queue[1].description == "B"

    def test_modify_on_empty_queue(self, store, session_id) -> None:
        assert store.modify_current_task(session_id, "X") is None


class TestGenerationOutput:
    def test_character_merge(self, store, session_id) -> None:
        assert store.update_character_data(session_id, {"name": "Vex", "tags": None}) == ["name"]
        store.update_character_data(session_id, {"personality": "dry"})
        assert store.get_generation_output(session_id).character_data == {
            "name": "Vex", "personality": "dry",
        }

    def test_set_singleton(self, store, session_id) -> None:
        entry = WorldbookEntry.for_category(OutputCategory.STATUS, "Day 1")
        store.set_output_category(session_id, OutputCategory.STATUS, entry)
        assert store.get_generation_output(session_id).status_data == entry

    def test_supplement_replaced(self, store, session_id) -> None:
        entries = [WorldbookEntry(content=str(i)) for i in range(3)]
        store.set_output_category(session_id, OutputCategory.SUPPLEMENT, entries)
        store.set_output_category(session_id, OutputCategory.SUPPLEMENT, entries[:1])
        assert len(store.get_generation_output(session_id).supplement_data) == 1

    def test_character_category_rejected(self, store, session_id) -> None:
        with pytest.raises(ValueError):
            store.set_output_category(session_id, OutputCategory.CHARACTER, None)


class TestJsonFileStore:
    def test_write_through(self, tmp_path) -> None:
        store = JsonFileSessionStore(tmp_path)
        sid = store.create_session("t", "o").session_id
        store.add_message(sid, Message(MessageRole.USER, "hi", MessageType.USER_INPUT))

        document = json.loads(store.path_for(sid).read_text(encoding="utf-8"))
        assert document["messages"][0]["content"] == "hi"
        assert not list(tmp_path.glob("*.tmp"))

    def test_reload_in_new_store(self, tmp_path) -> None:
        first = JsonFileSessionStore(tmp_path)
        sid = first.create_session("t", "o", max_iterations=9).session_id
        first.add_tasks_to_queue(sid, [_task("A", ["a1", "a2"])])
        first.update_status(sid, SessionStatus.WAITING_USER)

        second = JsonFileSessionStore(tmp_path)
        session = second.get_session(sid)
        assert session.status == SessionStatus.WAITING_USER
        assert session.execution_info.max_iterations == 9
        assert [s.description for s in session.active_task.sub_problems] == ["a1", "a2"]
        assert second.list_sessions() == [sid]

    def test_delete_removes_file(self, tmp_path) -> None:
        store = JsonFileSessionStore(tmp_path)
        sid = store.create_session("t", "o").session_id
        assert store.delete_session(sid)
        assert not store.path_for(sid).exists()
        with pytest.raises(SessionNotFoundError):
            store.get_session(sid)

    def test_engine_resumes_from_disk(self, tmp_path, registry) -> None:
        plan = decomposition_xml([("Clarify", ["ask", "write"])])
        ask = decision_xml("ASK_USER", message="Era?", options=["1920s", "2090s"])
        store = JsonFileSessionStore(tmp_path)
        sid = store.create_session("t", "o", max_iterations=2).session_id
        config = EngineConfig(pacing_delay=0.0)
        paused = AgentEngine(sid, store, registry, ScriptedPlanner([plan, ask]), config=config).start()
        assert paused.stop_reason == StopReason.PAUSED

        reopened = JsonFileSessionStore(tmp_path)
        AgentEngine(sid, reopened, registry, ScriptedPlanner(), config=config).continue_execution("2090s")
        session = reopened.get_session(sid)
        assert [s.description for s in session.active_task.sub_problems] == ["write"]
        assert session.messages[-1].message_type == MessageType.USER_INPUT
        assert session.messages[-1].content == "2090s"
