"""Tests for CompletionEvaluator."""

from __future__ import annotations

from worldbook_agent.domain.aggregates import GenerationOutput
from worldbook_agent.domain.entities import Message
from worldbook_agent.domain.enums import MessageRole, MessageType, OutputCategory
from worldbook_agent.domain.values import WorldbookEntry
from worldbook_agent.services.completion import CompletionEvaluator

from tests.helpers.planner_output import full_character


def _entry(category: OutputCategory, content: str = "some content", index: int = 0) -> WorldbookEntry:
    return WorldbookEntry.for_category(category, {"keys": [f"k{index}"], "content": content}, index)


def _complete_output(supplements: int = 5) -> GenerationOutput:
    output = GenerationOutput(character_data=full_character())
    output.status_data = _entry(OutputCategory.STATUS)
    output.user_setting_data = _entry(OutputCategory.USER_SETTING)
    output.world_view_data = _entry(OutputCategory.WORLD_VIEW)
    output.supplement_data = [_entry(OutputCategory.SUPPLEMENT, index=i) for i in range(supplements)]
    return output


class TestEvaluate:
    def test_empty_output(self) -> None:
        report = CompletionEvaluator().evaluate(GenerationOutput())
        assert not report.satisfied
        assert report.next_category == OutputCategory.CHARACTER
        assert report.reason.startswith("Character data is missing")

    def test_missing_character_fields(self) -> None:
        character = full_character()
        character["first_mes"] = "   "
        del character["tags"]
        report = CompletionEvaluator().evaluate(GenerationOutput(character_data=character))
        assert report.next_category == OutputCategory.CHARACTER
        assert report.missing_fields == ("first_mes", "tags")
        assert "missing fields: first_mes, tags" in report.reason

    def test_empty_greetings_list_is_missing(self) -> None:
        character = full_character()
        character["alternate_greetings"] = ["", " "]
        report = CompletionEvaluator().evaluate(GenerationOutput(character_data=character))
        assert report.missing_fields == ("alternate_greetings",)

    def test_full_character_without_worldbook_asks_for_status(self) -> None:
        report = CompletionEvaluator().evaluate(GenerationOutput(character_data=full_character()))
        assert not report.satisfied
        assert report.next_category == OutputCategory.STATUS
        assert "use the STATUS tool" in report.reason

    def test_singletons_checked_in_order(self) -> None:
        output = _complete_output()
        output.user_setting_data = None
        output.world_view_data = None
        assert CompletionEvaluator().evaluate(output).next_category == OutputCategory.USER_SETTING

    def test_blank_singleton_counts_as_missing(self) -> None:
        output = _complete_output()
        output.world_view_data = _entry(OutputCategory.WORLD_VIEW, content="  ")
        report = CompletionEvaluator().evaluate(output)
        assert report.next_category == OutputCategory.WORLD_VIEW
        assert report.reason.startswith("world_view_data is missing or empty")

    def test_four_supplements_need_one_more(self) -> None:
        report = CompletionEvaluator().evaluate(_complete_output(supplements=4))
        assert not report.satisfied
        assert report.next_category == OutputCategory.SUPPLEMENT
        assert report.valid_supplements == 4
        assert "need 1 more" in report.reason

    def test_blank_supplements_not_counted(self) -> None:
        output = _complete_output(supplements=4)
        output.supplement_data.append(_entry(OutputCategory.SUPPLEMENT, content="", index=9))
        report = CompletionEvaluator().evaluate(output)
        assert not report.satisfied
        assert report.valid_supplements == 4

    def test_five_supplements_satisfy(self) -> None:
        report = CompletionEvaluator().evaluate(_complete_output(supplements=5))
        assert report.satisfied
        assert report.next_category is None
        assert report.reason == "All generation requirements satisfied"

    def test_custom_minimum(self) -> None:
        assert CompletionEvaluator(min_supplement_entries=2).evaluate(_complete_output(2)).satisfied


class TestSummaries:
    def test_character_progress(self) -> None:
        evaluator = CompletionEvaluator()
        assert evaluator.character_progress(GenerationOutput()).startswith("Generation not started")
        partial = GenerationOutput(character_data={"name": "Vex", "personality": "dry"})
        text = evaluator.character_progress(partial)
        assert "22% (2/9 fields)" in text
        assert "Missing: description" in text

    def test_worldbook_progress(self) -> None:
        text = CompletionEvaluator().worldbook_progress(_complete_output(supplements=2))
        assert "STATUS: present (2 words)" in text
        assert "SUPPLEMENT: 2 valid entries (minimum 5), average 2 words" in text
        assert "missing" not in text

    def test_completion_status_echoes_critical_feedback(self) -> None:
        feedback = Message(
            role=MessageRole.AGENT,
            content="Basic validation failed: fix it",
            message_type=MessageType.QUALITY_EVALUATION,
        )
        status = CompletionEvaluator().completion_status(GenerationOutput(), [feedback])
        assert status == "Basic validation failed: fix it"

    def test_completion_status_ready(self) -> None:
        status = CompletionEvaluator().completion_status(_complete_output())
        assert status.startswith("Ready for final evaluation: use the COMPLETE tool")
        assert "Existing SUPPLEMENT keys: k0, k1, k2, k3, k4" in status

    def test_completion_status_reports_gap(self) -> None:
        status = CompletionEvaluator().completion_status(GenerationOutput())
        assert status.startswith("Character data is missing")
