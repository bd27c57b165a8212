"""Lenient parsing of planner output into typed decisions.

The planner answers in loosely structured XML::

    <think>...</think>
    <task_adjustment>
      <reasoning>...</reasoning>
      <task_description>...</task_description>
      <new_subproblems>a | b | c</new_subproblems>
    </task_adjustment>
    <action>CHARACTER</action>
    <parameters>
      <name>Nyx</name>
      <character_data><![CDATA[{"name": "Nyx"}]]></character_data>
    </parameters>

Nothing about that shape is guaranteed.  Each field is extracted on its own
with a deterministic fallback, CDATA payloads go through a bounded JSON repair
ladder, and ``DecisionParser.parse`` never raises.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

from worldbook_agent.domain.exceptions import DecisionParseError
from worldbook_agent.domain.values import TaskAdjustment, ToolDecision

logger = logging.getLogger(__name__)

DEFAULT_REASONING = "No reasoning provided"
DEFAULT_ADJUSTMENT_REASONING = "Task optimization based on current progress"

_NO_ACTION = frozenset({"", "none", "null"})
_ACTION_RE = re.compile(r"^[\w.\-]+$")
_CHILD_RE = re.compile(r"<(\w+)>([\s\S]*?)</\1>")
_CDATA_RE = re.compile(r"<!\[CDATA\[([\s\S]*?)(?:\]\]>|$)")
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?([eE][+-]?\d+)?$")


# -- Generic XML-ish extraction ----------------------------------------------


def extract_tag(text: str, tag: str) -> str | None:
    """Return the stripped inner text of the first ``<tag>`` block, or ``None``."""
    match = re.search(rf"<{tag}>([\s\S]*?)</{tag}>", text)
    return match.group(1).strip() if match else None


def extract_blocks(text: str, tag: str) -> list[str]:
    """Return the inner text of every ``<tag>`` block, in order."""
    return re.findall(rf"<{tag}>([\s\S]*?)</{tag}>", text)


# -- Value coercion ------------------------------------------------------------


def coerce_scalar(raw: str) -> Any:
    """Bare parameter text: booleans, then numbers, else the trimmed string."""
    value = raw.strip()
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if _NUMBER_RE.match(value):
        if "." in value or "e" in lowered:
            return float(value)
        return int(value)
    return value


def _balanced_repair(text: str) -> str:
    """Close a dangling string, then every unmatched bracket, innermost first."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "[{":
            stack.append("]" if ch == "[" else "}")
        elif ch in "]}" and stack and stack[-1] == ch:
            stack.pop()

    repaired = text + ('"' if in_string else "")
    if not in_string:
        repaired = repaired.rstrip().rstrip(",")
    return repaired + "".join(reversed(stack))


def _repair_candidates(text: str) -> Iterator[str]:
    seen = {text}

    def fresh(candidate: str) -> bool:
        if candidate in seen:
            return False
        seen.add(candidate)
        return True

    balanced = _balanced_repair(text)
    if fresh(balanced):
        yield balanced

    bracketed = text
    if text.startswith("[") and not text.endswith("]"):
        bracketed += "]"
    elif text.startswith("{") and not text.endswith("}"):
        bracketed += "}"
    quoted = bracketed + '"' if bracketed.count('"') % 2 else bracketed
    if fresh(quoted):
        yield quoted
    if fresh(bracketed):
        yield bracketed


def parse_json_value(raw: str) -> Any:
    """Parse a CDATA payload: strict JSON, then bounded repairs, then raw text."""
    text = raw.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    for candidate in _repair_candidates(text):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        logger.debug("Repaired malformed JSON parameter (%d chars)", len(text))
        return value
    logger.debug("Keeping unparseable JSON parameter as text (%d chars)", len(text))
    return text


def parse_parameters(block: str) -> dict[str, Any]:
    """Parse ``<parameters>`` children into a mapping."""
    params: dict[str, Any] = {}
    for name, raw in _CHILD_RE.findall(block):
        cdata = _CDATA_RE.search(raw)
        if cdata is not None:
            params[name] = parse_json_value(cdata.group(1))
        else:
            params[name] = coerce_scalar(raw)
    return params


# -- Decision parser -------------------------------------------------------------


class DecisionParser:
    """Turns planner output into a ``ToolDecision`` or ``None``.

    Parameters
    ----------
    max_new_subproblems:
        Upper bound on sub-problems accepted from a task adjustment.
    """

    def __init__(self, max_new_subproblems: int = 3) -> None:
        self.max_new_subproblems = max_new_subproblems

    def parse(self, text: str) -> ToolDecision | None:
        """Parse *text*; any internal failure is logged and yields ``None``."""
        try:
            return self._parse(text)
        except Exception as exc:
            logger.warning("DecisionParser: could not parse planner output: %s", exc)
            return None

    def _parse(self, text: str) -> ToolDecision | None:
        if not isinstance(text, str):
            raise DecisionParseError(f"expected text, got {type(text).__name__}")

        action = extract_tag(text, "action")
        if action is None or action.lower() in _NO_ACTION:
            logger.info("DecisionParser: no action selected")
            return None
        if not _ACTION_RE.match(action):
            raise DecisionParseError(f"malformed action {action[:40]!r}", raw_output=text)

        block = extract_tag(text, "parameters")
        parameters = parse_parameters(block) if block else {}

        return ToolDecision(
            tool=action,
            parameters=parameters,
            reasoning=extract_tag(text, "think") or DEFAULT_REASONING,
            priority=5,
            task_adjustment=self.parse_adjustment(text),
        )

    def parse_adjustment(self, text: str) -> TaskAdjustment:
        """Extract the ``<task_adjustment>`` block; absent parts mean no change."""
        block = extract_tag(text, "task_adjustment") or ""
        description = extract_tag(block, "task_description") or None
        raw_subs = extract_tag(block, "new_subproblems") or ""
        subs = [s.strip() for s in raw_subs.split("|") if s.strip()]
        subs = subs[: self.max_new_subproblems]
        return TaskAdjustment(
            reasoning=extract_tag(block, "reasoning") or DEFAULT_ADJUSTMENT_REASONING,
            task_description=description,
            new_sub_problems=tuple(subs) if subs else None,
        )
