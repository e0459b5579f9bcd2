"""
System Prompt
=============
Assembles the system-role message from the agent's identity, the tool catalog
and a few environment facts. Pure: same inputs, same prompt (the timestamp is
the only moving part, and callers may pin it).
"""

import platform as _platform
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..tools.base import Tool


def default_platform() -> str:
    return f"{_platform.system().lower()} {_platform.machine()}".strip()


def build_system_prompt(
    agent_name: str,
    agent_id: str,
    tools: Iterable[Tool] = (),
    custom_prompt: Optional[str] = None,
    date_time: Optional[str] = None,
    platform: Optional[str] = None,
    workspace_root: Optional[str] = None,
) -> str:
    """
    Build the system prompt for one run.

    Every tool passed in is listed by name and description so the completion
    backend can decide when to request it.
    """
    parts = [f"You are {agent_name}, an AI assistant (agent id: {agent_id})."]
    parts.append(f"Current date/time: {date_time or datetime.now(timezone.utc).isoformat()}")

    if platform:
        parts.append(f"Platform: {platform}")

    if workspace_root:
        parts.append(f"Workspace: {workspace_root}")

    if custom_prompt:
        parts.append("")
        parts.append(custom_prompt.strip())

    tools = list(tools)
    if tools:
        parts.append("")
        parts.append("You have access to the following tools:")
        for tool in tools:
            parts.append(f"- {tool.name}: {tool.description}")
        parts.append("")
        parts.append("When a tool would help answer the question, call it instead of guessing.")
        parts.append("If a tool returns an error, read it and decide whether to retry differently or explain.")

    return "\n".join(parts)
