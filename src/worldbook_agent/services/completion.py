"""Deterministic completion gate and generation-progress summaries.

The gate is purely structural: it checks that fields and entries exist and
carry content, in a fixed order, and names the first deficiency so the planner
knows what to do next.  It never grades prose.
"""

from __future__ import annotations

from collections.abc import Sequence

from worldbook_agent.domain.aggregates import GenerationOutput
from worldbook_agent.domain.entities import Message
from worldbook_agent.domain.enums import OutputCategory
from worldbook_agent.domain.values import CHARACTER_FIELDS, CompletionReport

_SINGLETON_ORDER = (
    OutputCategory.STATUS,
    OutputCategory.USER_SETTING,
    OutputCategory.WORLD_VIEW,
)


class CompletionEvaluator:
    """Checks a ``GenerationOutput`` against the structural requirements.

    Order of checks: character fields, STATUS, USER_SETTING, WORLD_VIEW, then
    the number of supplement entries with content.

    Parameters
    ----------
    min_supplement_entries:
        Supplement entries with non-empty content required to pass.
    """

    def __init__(self, min_supplement_entries: int = 5) -> None:
        self.min_supplement_entries = min_supplement_entries

    def evaluate(self, output: GenerationOutput) -> CompletionReport:
        valid_supplements = sum(1 for e in output.supplement_data if e.is_valid)

        if not output.character_data:
            return CompletionReport(
                satisfied=False,
                reason=(
                    "Character data is missing. "
                    "Next step: use the CHARACTER tool to start the character card."
                ),
                next_category=OutputCategory.CHARACTER,
                missing_fields=CHARACTER_FIELDS,
                valid_supplements=valid_supplements,
            )

        missing = tuple(output.missing_character_fields())
        if missing:
            return CompletionReport(
                satisfied=False,
                reason=(
                    f"Character incomplete, missing fields: {', '.join(missing)}. "
                    "Next step: use the CHARACTER tool to fill them."
                ),
                next_category=OutputCategory.CHARACTER,
                missing_fields=missing,
                valid_supplements=valid_supplements,
            )

        for category in _SINGLETON_ORDER:
            entry = output.get_category(category)
            if entry is None or not entry.is_valid:
                return CompletionReport(
                    satisfied=False,
                    reason=(
                        f"{category.value} is missing or empty. "
                        f"Next step: use the {category.tool.value} tool to create it."
                    ),
                    next_category=category,
                    valid_supplements=valid_supplements,
                )

        if valid_supplements < self.min_supplement_entries:
            need = self.min_supplement_entries - valid_supplements
            return CompletionReport(
                satisfied=False,
                reason=(
                    f"supplement_data has only {valid_supplements} valid entries, "
                    f"minimum {self.min_supplement_entries} required "
                    f"(need {need} more valid entries). "
                    "Next step: use the SUPPLEMENT tool with keys taken from WORLD_VIEW."
                ),
                next_category=OutputCategory.SUPPLEMENT,
                valid_supplements=valid_supplements,
            )

        return CompletionReport(
            satisfied=True,
            reason="All generation requirements satisfied",
            valid_supplements=valid_supplements,
        )

    # -- Progress summaries ---------------------------------------------------

    def character_progress(self, output: GenerationOutput) -> str:
        if not output.character_data:
            return "Generation not started - no character data"
        missing = output.missing_character_fields()
        done = [f for f in CHARACTER_FIELDS if f not in missing]
        pct = round(100 * len(done) / len(CHARACTER_FIELDS))
        lines = [f"Character completion: {pct}% ({len(done)}/{len(CHARACTER_FIELDS)} fields)"]
        lines.append("Completed: " + (", ".join(done) if done else "none"))
        if missing:
            lines.append("Missing: " + ", ".join(missing))
        return "\n".join(lines)

    def worldbook_progress(self, output: GenerationOutput) -> str:
        lines = []
        for category in _SINGLETON_ORDER:
            entry = output.get_category(category)
            label = category.tool.value
            if entry is None:
                lines.append(f"{label}: missing")
            elif not entry.is_valid:
                lines.append(f"{label}: present but empty")
            else:
                lines.append(f"{label}: present ({entry.word_count} words)")

        valid = [e for e in output.supplement_data if e.is_valid]
        line = (
            f"SUPPLEMENT: {len(valid)} valid entries "
            f"(minimum {self.min_supplement_entries})"
        )
        if valid:
            average = sum(e.word_count for e in valid) // len(valid)
            line += f", average {average} words"
        lines.append(line)
        return "\n".join(lines)

    def completion_status(
        self,
        output: GenerationOutput,
        messages: Sequence[Message] = (),
    ) -> str:
        """Guidance for the next step.

        If the newest message is a quality evaluation or tool failure it is
        echoed verbatim; otherwise the gate's verdict is reported.
        """
        if messages and messages[-1].is_critical_feedback:
            return messages[-1].content

        report = self.evaluate(output)
        status = (
            "Ready for final evaluation: use the COMPLETE tool"
            if report.satisfied
            else report.reason
        )
        keys = sorted({k for e in output.supplement_data for k in e.keys})
        if keys:
            status += (
                "\nExisting SUPPLEMENT keys: " + ", ".join(keys)
                + ". Do NOT reuse these or near-duplicate keys."
            )
        return status
