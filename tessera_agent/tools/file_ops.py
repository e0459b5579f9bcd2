"""
File Operations Tools
=====================
Read, write, list, search. Relative paths resolve against the agent's
workspace root when one is configured, otherwise against the process cwd.
"""

import fnmatch
import logging
import os
from pathlib import Path
from typing import List, Optional

from ..models import ToolContext, ToolResult

log = logging.getLogger("tessera.tools.file_ops")

MAX_READ_BYTES = 5 * 1024 * 1024
MAX_SEARCH_DEPTH = 10
MAX_SEARCH_RESULTS = 50
_SKIP_DIRS = {"node_modules", "__pycache__"}


def _resolve(path: str, context: Optional[ToolContext]) -> Path:
    p = Path(path).expanduser()
    if not p.is_absolute() and context and context.workspace_root:
        p = Path(context.workspace_root).expanduser() / p
    return p.resolve()


def read_file(path: str, context: ToolContext = None) -> ToolResult:
    """Read a UTF-8 text file."""
    p = _resolve(path, context)
    if not p.exists():
        return ToolResult.fail(f"File not found: {path}")
    if not p.is_file():
        return ToolResult.fail(f"Not a file: {path}")
    if p.stat().st_size > MAX_READ_BYTES:
        return ToolResult.fail(f"File too large (>5MB): {path}")

    try:
        content = p.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return ToolResult.fail(f"Error reading {path}: {e}")
    return ToolResult.ok(content, data={"path": str(p), "size": len(content)})


def write_file(path: str, content: str, context: ToolContext = None) -> ToolResult:
    """Write content to a file. Creates parent directories if needed."""
    p = _resolve(path, context)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    except OSError as e:
        return ToolResult.fail(f"Error writing {path}: {e}")
    size = len(content.encode("utf-8"))
    return ToolResult.ok(f"Wrote {size} bytes to {path}", data={"path": str(p), "bytes": size})


def list_directory(path: str = ".", context: ToolContext = None) -> ToolResult:
    """List a directory, one entry per line, directories marked [DIR]."""
    p = _resolve(path, context)
    if not p.exists():
        return ToolResult.fail(f"Directory not found: {path}")
    if not p.is_dir():
        return ToolResult.fail(f"Not a directory: {path}")

    try:
        entries = sorted(p.iterdir(), key=lambda e: e.name)
    except OSError as e:
        return ToolResult.fail(f"Error listing {path}: {e}")

    lines = [f"{'[DIR]' if e.is_dir() else '[FILE]'} {e.name}" for e in entries]
    return ToolResult.ok("\n".join(lines) if lines else "(empty directory)",
                         data={"entries": [e.name for e in entries]})


def search_files(pattern: str, directory: str = None, context: ToolContext = None) -> ToolResult:
    """
    Find files whose name or path contains `pattern`, or whose name matches it
    as a glob. Recursive, skips hidden directories and node_modules.
    """
    root = _resolve(directory or ".", context)
    if not root.is_dir():
        return ToolResult.fail(f"Directory not found: {directory or root}")

    results: List[str] = []

    def walk(current: Path, depth: int):
        if depth > MAX_SEARCH_DEPTH or len(results) >= MAX_SEARCH_RESULTS:
            return
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if len(results) >= MAX_SEARCH_RESULTS:
                return
            if entry.is_dir(follow_symlinks=False):
                if not entry.name.startswith(".") and entry.name not in _SKIP_DIRS:
                    walk(Path(entry.path), depth + 1)
            elif entry.is_file():
                rel = os.path.relpath(entry.path, root)
                if pattern in entry.name or pattern in rel or fnmatch.fnmatch(entry.name, pattern):
                    results.append(rel)

    walk(root, 0)
    if not results:
        return ToolResult.ok("No files found", data={"matches": []})

    log.debug(f"search_files({pattern!r}) -> {len(results)} matches")
    return ToolResult.ok("\n".join(results), data={"matches": results})


_SCHEMAS = {
    "read_file": {
        "name": "read_file",
        "description": "Read the contents of a text file.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to read"},
            },
            "required": ["path"],
        },
    },
    "write_file": {
        "name": "write_file",
        "description": "Write content to a file. Creates parent directories. Overwrites existing files.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to write to"},
                "content": {"type": "string", "description": "Content to write"},
            },
            "required": ["path", "content"],
        },
    },
    "list_directory": {
        "name": "list_directory",
        "description": "List the contents of a directory.",
        "parameters": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path"},
            },
            "required": ["path"],
        },
    },
    "search_files": {
        "name": "search_files",
        "description": "Search recursively for files whose name or path matches a pattern (substring or glob like '*.py').",
        "parameters": {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Substring or glob pattern to match"},
                "directory": {"type": "string", "description": "Directory to search in (default: workspace)"},
            },
            "required": ["pattern"],
        },
    },
}


def register_file_tools(registry):
    """Register all file operation tools with a ToolRegistry."""
    registry.register_function(read_file, _SCHEMAS["read_file"])
    registry.register_function(write_file, _SCHEMAS["write_file"])
    registry.register_function(list_directory, _SCHEMAS["list_directory"])
    registry.register_function(search_files, _SCHEMAS["search_files"])
