"""
Tool executor - dispatches a named tool call to its Tool.

Every failure mode (unknown tool, malformed arguments, a tool raising)
comes back as a failed ToolResult so one bad call never aborts the loop.
"""
import json
from typing import Any, Dict, Iterable, List, Optional

from src.agent.tools.base import Tool, ToolResult
from src.logging_config import get_logger

logger = get_logger(__name__)


class ToolExecutor:
    """Registry of tools available to one agent loop."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    async def execute(self, tool_name: str, arguments_json: str) -> ToolResult:
        """
        Execute a tool call.

        Args:
            tool_name: Name requested by the completion provider
            arguments_json: Raw JSON arguments string

        Returns:
            ToolResult from the tool, or a failed result
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            logger.warning("unknown_tool_requested", tool=tool_name)
            return ToolResult.fail(f"Unknown tool: {tool_name}")

        try:
            arguments = json.loads(arguments_json) if arguments_json else {}
        except json.JSONDecodeError as e:
            return ToolResult.fail(f"Invalid JSON input: {e}")

        if not isinstance(arguments, dict):
            return ToolResult.fail("Invalid JSON input: arguments must be a JSON object")

        try:
            result = await tool.execute(arguments)
        except Exception as e:
            logger.exception("tool_execution_failed", tool=tool_name)
            return ToolResult.fail(f"Tool execution failed: {e}")

        logger.debug("tool_executed", tool=tool_name, success=result.success)
        return result
