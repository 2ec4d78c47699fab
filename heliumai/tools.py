"""Tool-call types and the tool execution contract used in agent mode.

Tool semantics (reading files, running commands) live outside heliumai; the
agent loop only needs something that turns a ToolCall into a ToolResult.
`FunctionToolExecutor` covers the common case of plain Python callables.
"""

import inspect
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Annotated, Any

from pydantic import BaseModel, Field

from heliumai.errors import ToolExecutionFailedError
from heliumai.logging_config import get_logger

logger = get_logger(__name__)


class ToolCall(BaseModel):
    id: Annotated[str, Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")]
    name: Annotated[str, Field(description="Tool name to execute")]
    arguments: Annotated[dict[str, Any], Field(default_factory=dict, description="Parsed tool arguments")]


class ToolResult(BaseModel):
    tool_call_id: str
    content: Annotated[str, Field(description="Tool output (text, JSON, ...)")]
    is_error: bool = False
    execution_time_ms: float | None = None


class ToolExecutor(ABC):
    """Executes tool calls on behalf of the agent loop."""

    @abstractmethod
    async def execute(self, call: ToolCall) -> ToolResult:
        """Run one tool call.

        Raises:
            ToolExecutionFailedError: If the tool could not be run at all
        """
        pass

    def describe(self) -> list[dict[str, str]]:
        """Name/description pairs for the system prompt."""
        return []


class FunctionToolExecutor(ToolExecutor):
    """Dispatches tool calls to registered sync or async callables by name.

    Example:
        >>> def list_dir(path: str) -> str:
        ...     '''List the entries of a directory.'''
        ...     return "\\n".join(sorted(os.listdir(path)))
        >>>
        >>> executor = FunctionToolExecutor([list_dir])
    """

    def __init__(self, tools: list[Callable] | None = None):
        self.tools = list(tools or [])

    def register(self, tool: Callable) -> None:
        self.tools.append(tool)

    def describe(self) -> list[dict[str, str]]:
        return [{"name": tool.__name__, "description": (tool.__doc__ or "").strip()} for tool in self.tools]

    def _find_tool(self, tool_name: str) -> Callable | None:
        for tool in self.tools:
            if tool.__name__ == tool_name:
                return tool
        return None

    async def execute(self, call: ToolCall) -> ToolResult:
        tool_func = self._find_tool(call.name)
        if tool_func is None:
            raise ToolExecutionFailedError(call.name, "tool not found")

        start_time = time.time()
        try:
            if inspect.iscoroutinefunction(tool_func):
                logger.debug(f"Executing async tool: {call.name}")
                result = await tool_func(**call.arguments)
            else:
                logger.debug(f"Executing sync tool: {call.name}")
                result = tool_func(**call.arguments)
        except Exception as e:
            elapsed_ms = (time.time() - start_time) * 1000
            logger.warning(f"Tool {call.name} raised after {elapsed_ms:.1f}ms: {type(e).__name__}: {e}")
            return ToolResult(
                tool_call_id=call.id,
                content=f"Error executing tool: {type(e).__name__}: {e}",
                is_error=True,
                execution_time_ms=elapsed_ms,
            )

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"Tool {call.name} completed in {elapsed_ms:.1f}ms")
        return ToolResult(tool_call_id=call.id, content=str(result), execution_time_ms=elapsed_ms)
