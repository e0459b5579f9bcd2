"""
Agent Core
==========
The turn loop. This is what makes it an agent, not a chatbot.

Flow:
    user message -> completion (with tools) -> tool calls? -> execute -> feed results back -> repeat
    no tool calls -> DONE

The loop is an explicit state machine:

    REQUESTING_COMPLETION --(no tool calls)--> DONE
    REQUESTING_COMPLETION --(tool calls)-----> EXECUTING_TOOLS --> REQUESTING_COMPLETION
    REQUESTING_COMPLETION --(cancelled)------> ABORTED
    REQUESTING_COMPLETION --(budget spent)---> MAX_TURNS_REACHED

Tool failures never end a run: unknown tools, bad input and exceptions all
become tool-role messages the model can react to. Provider failures are the
caller's problem and propagate untouched, with nothing persisted for that run.
Every other exit persists the session.
"""

import asyncio
import inspect
import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..cancel import CancellationToken
from ..models import AgentConfig, Message, Role, Session, ToolCall, ToolContext, ToolResult
from ..tools.base import Tool, ToolExecutionError
from ..tools.schema import validate_tool_input
from .context import AgentContext
from .prompt import build_system_prompt, default_platform
from .providers.base import CompletionResponse, ProviderError
from .sessions import is_valid_session_id

log = logging.getLogger("tessera.agent")

MessageObserver = Callable[[Message], Any]
ToolStartObserver = Callable[[str, Any], Any]
ToolEndObserver = Callable[[str, ToolResult], Any]

_CANCELLED = object()


class RunState(str, Enum):
    REQUESTING_COMPLETION = "requesting_completion"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    ABORTED = "aborted"
    MAX_TURNS_REACHED = "max_turns_reached"

    @property
    def terminal(self) -> bool:
        return self in (RunState.DONE, RunState.ABORTED, RunState.MAX_TURNS_REACHED)


@dataclass
class RunResult:
    session_id: str
    messages: List[Message]
    final_response: str
    tools_used: List[str]
    outcome: RunState
    turns: int = 0


class AgentAborted(Exception):
    """The run was cancelled. `result` holds the transcript as persisted."""

    def __init__(self, result: RunResult):
        super().__init__(f"Run aborted (session {result.session_id}, {result.turns} turns)")
        self.result = result


@dataclass
class _Run:
    """Mutable state of one run() invocation. Never persisted."""
    session: Session
    tools: List[Tool]
    tools_by_name: Dict[str, Tool]
    system_prompt: str
    max_turns: int
    cancel_token: Optional[CancellationToken] = None
    on_message: Optional[MessageObserver] = None
    on_tool_start: Optional[ToolStartObserver] = None
    on_tool_end: Optional[ToolEndObserver] = None
    parallel_tools: bool = False
    turns: int = 0
    tools_used: List[str] = field(default_factory=list)
    pending: Tuple[ToolCall, ...] = ()

    @property
    def cancelled(self) -> bool:
        return bool(self.cancel_token and self.cancel_token.cancelled)


class Agent:
    """
    A configured identity that runs multi-turn, tool-augmented conversations.

    Usage:
        from tessera_agent.agent import AgentManager
        from tessera_agent.models import AgentConfig

        manager = AgentManager()
        manager.set_completion_provider(my_provider)
        agent = manager.create_agent(AgentConfig(id="helper", name="Helper"))

        result = await agent.run("What's in README.md?")
        print(result.final_response)

        # Resume later, even after a restart
        await agent.run("Summarize it in one line", session_id=result.session_id)
    """

    DEFAULT_MAX_TURNS = 10

    def __init__(self, config: AgentConfig, context: Optional[AgentContext] = None):
        self.config = config
        self.context = context or AgentContext()

    @property
    def registry(self):
        return self.context.registry

    @property
    def store(self):
        return self.context.store

    def active_tools(self) -> List[Tool]:
        """Allow-list intersected with the registry; every tool if no allow-list."""
        if self.config.tools is None:
            return self.registry.get_all()
        return self.registry.get_by_names(self.config.tools)

    async def run(
        self,
        message: str,
        session_id: Optional[str] = None,
        max_turns: Optional[int] = None,
        on_message: Optional[MessageObserver] = None,
        on_tool_start: Optional[ToolStartObserver] = None,
        on_tool_end: Optional[ToolEndObserver] = None,
        cancel_token: Optional[CancellationToken] = None,
        parallel_tools: bool = False,
    ) -> RunResult:
        """
        Run the turn loop for one user message.

        Args:
            message: The user's text.
            session_id: Session to resume or create. Generated if omitted.
            max_turns: Completion requests allowed in this call. The budget is
                per call and is not persisted; resuming starts a fresh budget.
            on_message / on_tool_start / on_tool_end: Notification hooks. Their
                return values and exceptions are ignored.
            cancel_token: Checked at the top of every turn, raced against the
                completion call, and handed to every tool.
            parallel_tools: Run one turn's tool calls concurrently. Results are
                still appended in request order.

        Returns a RunResult with outcome DONE or MAX_TURNS_REACHED.
        Raises AgentAborted on cancellation (session already persisted), and
        lets provider errors propagate (session not persisted).
        """
        if self.context.provider is None:
            raise RuntimeError("No completion provider set")

        max_turns = self.context.max_turns if max_turns is None else max_turns
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")

        session_id = session_id or uuid.uuid4().hex
        if not is_valid_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")

        async with self.context.session_lock(session_id):
            session = await self._open_session(session_id)

            if cancel_token is not None and cancel_token.cancelled:
                log.info(f"Run for session {session_id} cancelled before start")
                raise AgentAborted(self._result(session, RunState.ABORTED, 0, []))

            tools = self.active_tools()
            run = _Run(
                session=session,
                tools=tools,
                tools_by_name={t.name: t for t in tools},
                system_prompt=self._system_prompt(tools),
                max_turns=max_turns,
                cancel_token=cancel_token,
                on_message=on_message,
                on_tool_start=on_tool_start,
                on_tool_end=on_tool_end,
                parallel_tools=parallel_tools,
            )
            log.info(f"Run start: agent={self.config.id} session={session_id} "
                     f"tools={len(tools)} max_turns={max_turns}")

            self._append(run, Message.user(message))

            state = RunState.REQUESTING_COMPLETION
            try:
                while not state.terminal:
                    if state is RunState.REQUESTING_COMPLETION:
                        state = await self._request_completion(run)
                    elif state is RunState.EXECUTING_TOOLS:
                        state = await self._execute_tools(run)
            except asyncio.CancelledError:
                # The task running us was cancelled: keep what was appended so far.
                log.info(f"Run task cancelled, persisting session {session_id}")
                session.touch()
                self.store.save(session)
                raise

            session.touch()
            await asyncio.to_thread(self.store.save, session)

            result = self._result(session, state, run.turns, run.tools_used)
            log.info(f"Run end: session={session_id} outcome={state.value} turns={run.turns}")
            if state is RunState.ABORTED:
                raise AgentAborted(result)
            return result

    # --- States ---

    async def _request_completion(self, run: _Run) -> RunState:
        if run.cancelled:
            return RunState.ABORTED
        if run.turns >= run.max_turns:
            log.info(f"Turn budget of {run.max_turns} spent for session {run.session.id}")
            return RunState.MAX_TURNS_REACHED

        run.turns += 1
        messages = [Message.system(run.system_prompt)] + list(run.session.messages)

        # Read the provider per call so a swap in the shared context takes effect immediately.
        provider = self.context.provider
        if provider is None:
            raise RuntimeError("No completion provider set")

        raw = await self._cancellable(provider(messages, run.tools, self.config), run.cancel_token)
        if raw is _CANCELLED:
            log.info(f"Completion cancelled mid-flight (turn {run.turns})")
            return RunState.ABORTED

        response = _normalize_response(raw)
        assistant = Message.assistant(response.content, response.tool_calls)
        self._append(run, assistant)

        if not assistant.tool_calls:
            return RunState.DONE

        log.info(f"Tool calls (turn {run.turns}): {[tc.name for tc in assistant.tool_calls]}")
        run.pending = assistant.tool_calls
        return RunState.EXECUTING_TOOLS

    async def _execute_tools(self, run: _Run) -> RunState:
        calls, run.pending = run.pending, ()

        if run.parallel_tools and not run.cancelled:
            replies = await asyncio.gather(*(self._invoke_tool(run, call) for call in calls))
            for reply in replies:
                self._append(run, reply)
            return RunState.REQUESTING_COMPLETION

        for index, call in enumerate(calls):
            if run.cancelled:
                # Answer the remaining calls without running them so every
                # tool call in the transcript still has exactly one reply.
                for skipped in calls[index:]:
                    self._append(run, Message.tool(
                        f"Error: Tool call '{skipped.name}' was cancelled before execution",
                        skipped.id, skipped.name,
                    ))
                return RunState.ABORTED
            self._append(run, await self._invoke_tool(run, call))

        return RunState.REQUESTING_COMPLETION

    # --- Helpers ---

    async def _invoke_tool(self, run: _Run, call: ToolCall) -> Message:
        tool = run.tools_by_name.get(call.name)
        if tool is None:
            log.warning(f"Unknown tool requested: {call.name}")
            result = ToolResult.fail(f'Tool "{call.name}" not found')
            self._notify(run.on_tool_end, call.name, result)
            return Message.tool(result.to_content(), call.id, call.name)

        if call.name not in run.tools_used:
            run.tools_used.append(call.name)
        self._notify(run.on_tool_start, call.name, call.input)

        context = ToolContext(
            agent_id=self.config.id,
            session_id=run.session.id,
            workspace_root=self.config.workspace_root,
            cancel_token=run.cancel_token,
        )
        try:
            params = validate_tool_input(tool, call.input)
            log.info(f"Executing tool: {call.name}({json.dumps(params, default=str)[:200]})")
            result = await tool.execute(params, context)
            if not isinstance(result, ToolResult):
                result = ToolResult.ok("Done." if result is None else str(result))
        except asyncio.CancelledError:
            # A tool honouring the token via checkpoint(); task cancellation still propagates.
            if not run.cancelled:
                raise
            log.info(f"Tool '{call.name}' stopped on cancellation")
            result = ToolResult.fail(f"Tool '{call.name}' was cancelled")
        except ToolExecutionError as e:
            log.error(f"Tool '{call.name}' failed: {e}")
            result = ToolResult.fail(str(e))
        except Exception as e:
            log.error(f"Tool '{call.name}' failed: {type(e).__name__}: {e}")
            result = ToolResult.fail(f"Tool '{call.name}' failed: {type(e).__name__}: {e}")

        log.debug(f"Tool result: {result.to_content()[:200]}")
        self._notify(run.on_tool_end, call.name, result)
        return Message.tool(result.to_content(), call.id, call.name)

    async def _cancellable(self, call: Any, token: Optional[CancellationToken]):
        """Await `call`, giving up early (and cancelling it) if `token` fires."""
        if not inspect.isawaitable(call):
            return call
        if token is None:
            return await call

        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return _CANCELLED

    async def _open_session(self, session_id: str) -> Session:
        session = await asyncio.to_thread(self.store.load, session_id)
        if session is None:
            log.debug(f"New session {session_id} for agent {self.config.id}")
            return Session(id=session_id, agent_id=self.config.id)
        if session.agent_id != self.config.id:
            raise ValueError(
                f"Session {session_id} belongs to agent {session.agent_id!r}, not {self.config.id!r}"
            )
        return session

    def _system_prompt(self, tools: List[Tool]) -> str:
        return build_system_prompt(
            agent_name=self.config.name,
            agent_id=self.config.id,
            tools=tools,
            custom_prompt=self.config.system_prompt,
            platform=default_platform(),
            workspace_root=self.config.workspace_root,
        )

    def _append(self, run: _Run, message: Message):
        run.session.append(message)
        self._notify(run.on_message, message)

    @staticmethod
    def _notify(callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            log.warning(f"Observer {getattr(callback, '__name__', callback)!r} raised {type(e).__name__}: {e}")

    @staticmethod
    def _result(session: Session, outcome: RunState, turns: int, tools_used: List[str]) -> RunResult:
        final = next((m.content for m in reversed(session.messages) if m.role is Role.ASSISTANT), "")
        return RunResult(
            session_id=session.id,
            messages=list(session.messages),
            final_response=final,
            tools_used=list(tools_used),
            outcome=outcome,
            turns=turns,
        )

    # --- Sessions ---

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.store.load(session_id)

    def clear_session(self, session_id: str) -> bool:
        return self.store.delete(session_id)

    def list_sessions(self) -> List[str]:
        return self.store.list(agent_id=self.config.id)


def _normalize_response(raw: Any) -> CompletionResponse:
    """Accept a CompletionResponse or a plain mapping; reject anything else."""
    if isinstance(raw, CompletionResponse):
        content, calls, extra = raw.content, raw.tool_calls, raw
    elif isinstance(raw, Mapping):
        content = raw.get("content")
        calls = raw.get("tool_calls", raw.get("toolCalls"))
        extra = None
    else:
        raise ProviderError(f"Malformed completion payload: {type(raw).__name__}")

    if content is None:
        content = ""
    if not isinstance(content, str):
        raise ProviderError(f"Malformed completion payload: content is {type(content).__name__}")
    if calls is None:
        calls = []
    if not isinstance(calls, (list, tuple)):
        raise ProviderError(f"Malformed completion payload: tool_calls is {type(calls).__name__}")

    normalized: List[ToolCall] = []
    seen = set()
    for call in calls:
        if isinstance(call, ToolCall):
            call_id, name, payload = call.id, call.name, call.input
        elif isinstance(call, Mapping):
            call_id = call.get("id")
            name = call.get("name")
            payload = call.get("input", call.get("arguments"))
        else:
            raise ProviderError(f"Malformed tool call: {call!r}")

        if not name or not isinstance(name, str):
            raise ProviderError(f"Tool call without a name: {call!r}")
        call_id = call_id or f"call_{uuid.uuid4().hex[:12]}"
        if call_id in seen:
            raise ProviderError(f"Duplicate tool call id in one turn: {call_id}")
        seen.add(call_id)
        normalized.append(ToolCall(id=call_id, name=name, input=payload))

    if extra is not None:
        return CompletionResponse(content=content, tool_calls=normalized,
                                  finish_reason=extra.finish_reason, usage=extra.usage, raw=extra.raw)
    return CompletionResponse(content=content, tool_calls=normalized)
