"""
Scripted Provider
=================
Replays a fixed list of responses in order. No network, no vendor. Useful for
tests, demos and offline development of tools.

    provider = ScriptedProvider([
        CompletionResponse(tool_calls=[ToolCall("c1", "read_file", {"path": "README.md"})]),
        CompletionResponse(content="The README says hello."),
    ])

Each script entry may be a CompletionResponse, an exception instance (raised
on that call), or a callable taking the message list and returning a
CompletionResponse. Once the script runs out the last entry repeats.
"""

import asyncio
import logging
from typing import Any, List, Optional

from .base import BaseCompletionProvider, CompletionResponse

log = logging.getLogger("tessera.providers.scripted")


class ScriptedProvider(BaseCompletionProvider):

    def __init__(self, responses: Optional[List[Any]] = None, delay_s: float = 0.0, **kwargs):
        super().__init__(model=kwargs.pop("model", "scripted"), **kwargs)
        self.responses = list(responses) if responses else [CompletionResponse(content="OK")]
        self.delay_s = delay_s
        self.call_count = 0
        self.received_messages: List[list] = []
        self.received_tools: List[list] = []

    async def complete(self, messages, tools, config) -> CompletionResponse:
        self.received_messages.append(list(messages))
        self.received_tools.append(list(tools))
        entry = self.responses[min(self.call_count, len(self.responses) - 1)]
        self.call_count += 1
        log.debug(f"Scripted call {self.call_count} for agent {config.id}")

        if self.delay_s:
            await asyncio.sleep(self.delay_s)

        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(messages)
        return entry

    def name(self) -> str:
        return "Scripted"
