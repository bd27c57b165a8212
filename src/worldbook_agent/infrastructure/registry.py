"""Tool registry for the worldbook agent.

Tools are pluggable capabilities the planner can invoke.  The registry keeps
two stores:

* a **static** store keyed by ``ToolType`` (the built-in vocabulary the
  planner prompt describes), and
* a **dynamic** store keyed by name for plugin tools registered at runtime.

Lookup is the union of both, dynamic first.  There is no global instance;
build a ``ToolRegistry`` and hand it to the engine.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from xml.sax.saxutils import escape

from worldbook_agent.domain.enums import OutputCategory, ToolKind, ToolType
from worldbook_agent.domain.exceptions import ToolRegistrationError
from worldbook_agent.domain.values import ExecutionResult

if TYPE_CHECKING:
    from worldbook_agent.services.context import ExecutionContext

logger = logging.getLogger(__name__)


# ===================================================================== #
#  Tool interface                                                        #
# ===================================================================== #

@dataclass(frozen=True)
class ToolParameter:
    """Declared parameter of a tool, rendered into the planner prompt."""

    name: str
    type: str
    required: bool = False
    description: str = ""

    def to_xml(self, indent: str = "") -> str:
        return (
            f"{indent}<parameter>\n"
            f"{indent}  <name>{escape(self.name)}</name>\n"
            f"{indent}  <type>{escape(self.type)}</type>\n"
            f"{indent}  <required>{str(self.required).lower()}</required>\n"
            f"{indent}  <description>{escape(self.description)}</description>\n"
            f"{indent}</parameter>\n"
        )


class BaseTool(ABC):
    """Abstract capability the planner can dispatch to.

    Subclasses set ``name``, ``description`` and ``parameters`` and declare
    their ``kind``; the engine applies the side effect for that kind when
    ``execute`` succeeds.  Content tools also name the ``output_category``
    whose ``<category>_data`` payload key they fill.
    """

    name: str = ""
    description: str = ""
    parameters: Sequence[ToolParameter] = ()
    kind: ToolKind = ToolKind.GENERIC
    output_category: OutputCategory | None = None

    @abstractmethod
    def execute(
        self,
        context: ExecutionContext,
        parameters: Mapping[str, Any],
    ) -> ExecutionResult:
        """Run the tool against a read-only context snapshot."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} kind={self.kind.value}>"


# ===================================================================== #
#  Registry                                                              #
# ===================================================================== #

class ToolRegistry:
    """Union of statically typed and dynamically named tools.

    Usage::

        tools = ToolRegistry()
        tools.register(ToolType.SEARCH, WebSearchTool())
        tools.register_dynamic(MyPluginTool())
        result = tools.execute("SEARCH", {"query": "..."}, context)
    """

    def __init__(self) -> None:
        self._static: dict[ToolType, BaseTool] = {}
        self._dynamic: dict[str, BaseTool] = {}

    # ------------------------------------------------------------------ #
    #  Registration                                                       #
    # ------------------------------------------------------------------ #

    def register(
        self,
        tool_type: ToolType,
        tool: BaseTool,
        *,
        overwrite: bool = False,
    ) -> None:
        """Register *tool* under a built-in ``ToolType``.

        Raises ``ToolRegistrationError`` on duplicates unless *overwrite*.
        """
        if not overwrite and tool_type in self._static:
            raise ToolRegistrationError(
                f"Tool '{tool_type.value}' is already registered as "
                f"{self._static[tool_type]!r}. Pass overwrite=True to replace.",
                tool_name=tool_type.value,
            )
        self._static[tool_type] = tool
        logger.debug("Registered static tool %s: %r", tool_type.value, tool)

    def register_dynamic(self, tool: BaseTool, name: str | None = None) -> None:
        """Register a plugin tool by name, replacing any previous one."""
        key = name or tool.name or type(tool).__name__
        if not key.strip():
            raise ToolRegistrationError("Dynamic tools need a name", tool_name=key)
        if key in self._dynamic:
            logger.warning("Dynamic tool %s is already registered, replacing", key)
        self._dynamic[key] = tool
        logger.info("Dynamic tool registered: %s", key)

    def unregister_dynamic(self, name: str) -> bool:
        """Remove a plugin tool.  Returns ``True`` if it was registered."""
        if self._dynamic.pop(name, None) is None:
            return False
        logger.info("Dynamic tool unregistered: %s", name)
        return True

    # ------------------------------------------------------------------ #
    #  Lookup                                                              #
    # ------------------------------------------------------------------ #

    def get(self, identifier: str | ToolType) -> BaseTool | None:
        """Return the tool for *identifier*, checking dynamic tools first."""
        if isinstance(identifier, ToolType):
            return self._static.get(identifier)
        if identifier in self._dynamic:
            return self._dynamic[identifier]
        tool_type = ToolType.lookup(identifier)
        return self._static.get(tool_type) if tool_type is not None else None

    def has(self, identifier: str | ToolType) -> bool:
        return self.get(identifier) is not None

    def available_tools(self) -> dict[str, BaseTool]:
        """All tools keyed by the identifier the planner uses."""
        tools: dict[str, BaseTool] = {t.value: tool for t, tool in self._static.items()}
        tools.update(self._dynamic)
        return tools

    def __len__(self) -> int:
        return len(self._static) + len(self._dynamic)

    # ------------------------------------------------------------------ #
    #  Execution                                                           #
    # ------------------------------------------------------------------ #

    def execute(
        self,
        identifier: str,
        parameters: Mapping[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        """Dispatch to the tool and wrap any failure in an ``ExecutionResult``.

        Never raises: an unknown tool or an exception inside the tool both
        come back as ``success=False`` with the error text.
        """
        tool = self.get(identifier)
        if tool is None:
            return ExecutionResult.fail(f"No tool found for type: {identifier}")

        try:
            result = tool.execute(context, parameters)
        except Exception as exc:
            logger.exception("Tool %s raised during execution", identifier)
            return ExecutionResult.fail(str(exc) or type(exc).__name__)

        if not isinstance(result, ExecutionResult):
            result = ExecutionResult.ok(result)
        if result.success:
            logger.info("Tool %s succeeded", identifier)
        else:
            logger.warning("Tool %s failed: %s", identifier, result.error)
        return result

    # ------------------------------------------------------------------ #
    #  Prompt rendering                                                    #
    # ------------------------------------------------------------------ #

    def describe_tools(self) -> str:
        """XML description of every tool and its parameters."""
        parts = ["<tools>\n"]
        for identifier, tool in self.available_tools().items():
            parts.append("  <tool>\n")
            parts.append(f"    <type>{escape(identifier)}</type>\n")
            parts.append(f"    <name>{escape(tool.name or identifier)}</name>\n")
            parts.append(f"    <description>{escape(tool.description)}</description>\n")
            parts.append("    <parameters>\n")
            parts.extend(p.to_xml(indent="      ") for p in tool.parameters)
            parts.append("    </parameters>\n")
            parts.append("  </tool>\n")
        parts.append("</tools>")
        return "".join(parts)

    def parameter_schema(self, identifier: str) -> str:
        """XML of the declared parameters of one tool."""
        tool = self.get(identifier)
        if tool is None:
            return f"Parameters not found for tool {identifier}"
        return "<parameters>\n" + "".join(
            p.to_xml(indent="  ") for p in tool.parameters
        ) + "</parameters>"
