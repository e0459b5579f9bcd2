"""Tool contract, registry and the reference tools (file ops, terminal)."""
from .base import FunctionTool, Tool, ToolExecutionError, ToolInputError
from .registry import ToolRegistry, create_tool_registry
from .schema import validate_tool_input
from .file_ops import register_file_tools
from .terminal import register_terminal_tools

__all__ = [
    "Tool",
    "FunctionTool",
    "ToolExecutionError",
    "ToolInputError",
    "ToolRegistry",
    "create_tool_registry",
    "validate_tool_input",
    "register_file_tools",
    "register_terminal_tools",
]
