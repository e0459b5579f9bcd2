"""
Completion Provider Contract
============================
The only thing the agent needs from a model backend:

    (ordered messages, available tools, agent config) -> CompletionResponse

Vendor translation, streaming, retries and rate limiting live in the provider,
never in the turn loop. Any awaitable callable with that signature works; the
base class below is a convenience for class-based backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Union

from ...models import AgentConfig, Message, ToolCall

if TYPE_CHECKING:
    from ...tools.base import Tool


class ProviderError(RuntimeError):
    """Failure in the completion backend: network, auth, malformed payload."""


@dataclass
class CompletionResponse:
    """Normalized response from any completion backend."""
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: Dict[str, int] = field(default_factory=dict)
    raw: Any = None


class BaseCompletionProvider(ABC):
    """Abstract base for class-based completion backends."""

    def __init__(self, model: str = "", **kwargs):
        self.model = model
        self.extra_config = kwargs

    @abstractmethod
    async def complete(
        self,
        messages: List[Message],
        tools: List["Tool"],
        config: AgentConfig,
    ) -> CompletionResponse:
        """Produce the next assistant turn."""

    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    async def __call__(self, messages, tools, config) -> CompletionResponse:
        return await self.complete(messages, tools, config)


CompletionProvider = Callable[
    [List[Message], List["Tool"], AgentConfig],
    Awaitable[Union[CompletionResponse, Dict[str, Any]]],
]
