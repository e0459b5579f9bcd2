"""Agent core: turn loop, sessions, prompt assembly, shared context."""
from .context import AgentContext
from .core import Agent, AgentAborted, RunResult, RunState
from .manager import AgentManager, create_agent_manager
from .prompt import build_system_prompt
from .sessions import SessionStore

__all__ = [
    "Agent",
    "AgentAborted",
    "AgentContext",
    "AgentManager",
    "RunResult",
    "RunState",
    "SessionStore",
    "build_system_prompt",
    "create_agent_manager",
]
