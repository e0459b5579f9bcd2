"""
Tool Contract
=============
A tool is a name, a description, a JSON-Schema-shaped input contract and an
async execute(input, context) -> ToolResult.

Most tools are plain functions. FunctionTool adapts them:
    - keyword arguments come from the validated input
    - a parameter named `context` receives the ToolContext
    - sync functions run in a worker thread so they never stall the loop
    - a returned str becomes a successful ToolResult, None becomes "Done."
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional

from ..models import ToolContext, ToolResult

log = logging.getLogger("tessera.tools")

EMPTY_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}}


class ToolExecutionError(RuntimeError):
    """A tool could not complete. Always absorbed into the transcript."""


class ToolInputError(ToolExecutionError):
    """The call input does not satisfy the tool's declared schema."""


class Tool(ABC):
    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = EMPTY_SCHEMA

    @abstractmethod
    async def execute(self, input: Any, context: ToolContext) -> ToolResult:
        ...

    def to_schema(self) -> Dict[str, Any]:
        """Schema dict in the common function-calling shape."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema,
        }

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class FunctionTool(Tool):

    def __init__(
        self,
        name: str,
        handler: Callable,
        description: str = "",
        input_schema: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.handler = handler
        self.description = description or (inspect.getdoc(handler) or "").split("\n")[0]
        self.input_schema = input_schema or dict(EMPTY_SCHEMA)
        self._is_async = inspect.iscoroutinefunction(handler)
        params = inspect.signature(handler).parameters
        self._accepts_context = "context" in params
        self._accepts_any = any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params.values())
        self._param_names = set(params) - {"context"}

    @classmethod
    def from_schema(cls, handler: Callable, schema: Dict[str, Any]) -> "FunctionTool":
        """Build from a {"name", "description", "parameters"} schema dict."""
        return cls(
            name=schema["name"],
            handler=handler,
            description=schema.get("description", ""),
            input_schema=schema.get("parameters"),
        )

    async def execute(self, input: Any, context: ToolContext) -> ToolResult:
        if input is None:
            input = {}
        if not isinstance(input, Mapping):
            raise ToolInputError(f"Tool '{self.name}' expects an object, got {type(input).__name__}")

        kwargs = dict(input)
        if not self._accepts_any:
            dropped = set(kwargs) - self._param_names
            for key in dropped:
                kwargs.pop(key)
            if dropped:
                log.debug(f"Tool '{self.name}' ignored unknown arguments: {sorted(dropped)}")
        if self._accepts_context:
            kwargs["context"] = context

        if self._is_async:
            result = await self.handler(**kwargs)
        else:
            result = await asyncio.to_thread(self.handler, **kwargs)
        return _coerce_result(result)


def _coerce_result(result: Any) -> ToolResult:
    if isinstance(result, ToolResult):
        return result
    if result is None:
        return ToolResult.ok("Done.")
    return ToolResult.ok(str(result))
