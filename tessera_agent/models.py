"""
Agent Data Models
=================
Plain data structures shared by the turn loop, the session store and tools.

Messages and tool calls are frozen: once a message is appended to a session
it is never mutated. Sessions are the only mutable record, and only ever grow.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .cancel import CancellationToken


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _expect_mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise TypeError(f"{what} record must be an object, got {type(data).__name__}")
    return data


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class AgentConfig:
    """
    Identity and limits for one agent. Immutable for the agent's lifetime.

    Args:
        id: Unique agent identifier (also the owner key on sessions).
        name: Display name used in the system prompt.
        system_prompt: Optional custom fragment appended to the system prompt.
        model: Model identifier, passed through to the completion backend.
        tools: Optional allow-list of tool names. None means every registered tool.
        max_tokens / temperature: Generation limits for the backend.
        workspace_root: Directory tools resolve relative paths against.
        settings: Free-form, backend- or deployment-specific settings.
    """
    id: str
    name: str = ""
    system_prompt: Optional[str] = None
    model: str = ""
    tools: Optional[Tuple[str, ...]] = None
    max_tokens: int = 4096
    temperature: float = 0.7
    workspace_root: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValueError("AgentConfig.id is required")
        if not self.name:
            object.__setattr__(self, "name", self.id)
        if self.tools is not None and not isinstance(self.tools, tuple):
            object.__setattr__(self, "tools", tuple(self.tools))

    @classmethod
    def from_dict(cls, agent_id: str, data: dict) -> "AgentConfig":
        """Parse an agent definition from a YAML dict."""
        tools = data.get("tools")
        return cls(
            id=agent_id,
            name=data.get("name", ""),
            system_prompt=data.get("system_prompt"),
            model=data.get("model", ""),
            tools=tuple(tools) if tools is not None else None,
            max_tokens=int(data.get("max_tokens", 4096)),
            temperature=float(data.get("temperature", 0.7)),
            workspace_root=data.get("workspace_root"),
            settings=dict(data.get("settings") or {}),
        )


@dataclass(frozen=True)
class ToolCall:
    """A request from the completion backend to run one tool."""
    id: str
    name: str
    input: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "input": self.input}

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        _expect_mapping(data, "Tool call")
        return cls(id=data["id"], name=data["name"], input=data.get("input"))


@dataclass
class ToolResult:
    """Outcome of a tool execution. `data` is for callers, it never reaches the model."""
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, output: str, data: Any = None) -> "ToolResult":
        return cls(success=True, output=output, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_content(self) -> str:
        """Text that goes into the tool-role message."""
        if self.success:
            return self.output or "Success"
        return f"Error: {self.error or 'Failed'}"


@dataclass(frozen=True)
class ToolContext:
    """Read-only facts handed to every tool invocation."""
    agent_id: str
    session_id: str
    workspace_root: Optional[str] = None
    cancel_token: Optional[CancellationToken] = None

    @property
    def cancelled(self) -> bool:
        return bool(self.cancel_token and self.cancel_token.cancelled)


@dataclass(frozen=True)
class Message:
    role: Role
    content: str = ""
    tool_calls: Optional[Tuple[ToolCall, ...]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "role", Role(self.role))
        if self.tool_calls is not None and not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls) if tool_calls else None)

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls is not None:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        _expect_mapping(data, "Message")
        calls = data.get("tool_calls")
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            tool_calls=tuple(ToolCall.from_dict(c) for c in calls) if calls is not None else None,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass
class Session:
    """
    A persisted, append-only transcript owned by one agent.
    Unit of persistence and resumption.
    """
    id: str
    agent_id: str
    messages: List[Message] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.id:
            self.id = uuid.uuid4().hex
        if not self.created_at:
            self.created_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.created_at

    def append(self, message: Message):
        self.messages.append(message)

    def touch(self):
        self.updated_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "agent_id": self.agent_id,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        _expect_mapping(data, "Session")
        messages = data.get("messages", [])
        if not isinstance(messages, list):
            raise TypeError(f"Session messages must be a list, got {type(messages).__name__}")
        return cls(
            id=data["id"],
            agent_id=data["agent_id"],
            messages=[Message.from_dict(m) for m in messages],
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            metadata=data.get("metadata"),
        )
