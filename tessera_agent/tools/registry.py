"""
Tool Registry
=============
In-memory catalog of tools, keyed by name. Lookups for unknown names return
None; deciding what an unknown tool means is the agent's job.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .base import FunctionTool, Tool

log = logging.getLogger("tessera.tools")


class ToolRegistry:
    """
    Usage:
        registry = ToolRegistry()
        registry.load_builtins()           # file ops + terminal
        registry.register(MyTool())
        registry.register_function(greet, {
            "name": "greet",
            "description": "Greet someone",
            "parameters": {"type": "object", "properties": {"name": {"type": "string"}}},
        })
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool):
        """Register a tool. A tool with the same name is replaced."""
        if not tool.name:
            raise ValueError(f"Tool has no name: {tool!r}")
        if tool.name in self._tools:
            log.debug(f"Tool replaced: {tool.name}")
        self._tools[tool.name] = tool
        log.debug(f"Tool registered: {tool.name}")

    def register_function(self, handler: Callable, schema: Dict[str, Any]) -> Tool:
        """Register a plain function with a {"name", "description", "parameters"} schema."""
        tool = FunctionTool.from_schema(handler, schema)
        self.register(tool)
        return tool

    def unregister(self, name: str) -> bool:
        removed = self._tools.pop(name, None) is not None
        if removed:
            log.debug(f"Tool unregistered: {name}")
        return removed

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get_all(self) -> List[Tool]:
        return list(self._tools.values())

    def get_by_names(self, names: Iterable[str]) -> List[Tool]:
        """Tools for the given names, in the given order. Unknown names are skipped."""
        return [self._tools[n] for n in names if n in self._tools]

    def list(self) -> List[str]:
        """Names of all registered tools."""
        return list(self._tools.keys())

    def get_schema(self, name: str) -> Dict[str, Any]:
        tool = self._tools.get(name)
        return tool.to_schema() if tool else {}

    def load_builtins(self, enable_files: bool = True, enable_terminal: bool = True,
                      command_timeout: float = 60):
        """Load the reference tool sets."""
        from .file_ops import register_file_tools
        from .terminal import register_terminal_tools

        if enable_files:
            register_file_tools(self)

        if enable_terminal:
            register_terminal_tools(self, timeout=command_timeout)

        log.info(f"Loaded {len(self._tools)} built-in tools")

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def create_tool_registry(**kwargs) -> ToolRegistry:
    """A registry pre-loaded with the reference tools."""
    registry = ToolRegistry()
    registry.load_builtins(**kwargs)
    return registry
