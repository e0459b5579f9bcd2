"""
Agent Manager
=============
Owns the shared pieces (tool registry, session store, completion provider)
and hands out Agents built on them.

Usage:
    manager = AgentManager(state_dir="~/.tessera-agent")
    manager.set_completion_provider(my_provider)

    coder = manager.create_agent(AgentConfig(id="coder", tools=("read_file", "run_command")))
    result = await coder.run("List the failing tests")

    # Installing a new provider later reaches every agent, including `coder`
    manager.set_completion_provider(other_provider)
"""

import logging
from typing import Dict, List, Optional

from ..config import Config
from ..models import AgentConfig
from ..tools.base import Tool
from ..tools.registry import ToolRegistry
from .context import AgentContext
from .core import Agent
from .providers.base import CompletionProvider
from .sessions import SessionStore

log = logging.getLogger("tessera.manager")


class AgentManager:

    def __init__(
        self,
        state_dir: Optional[str] = None,
        config: Optional[Config] = None,
        load_builtins: bool = True,
    ):
        self.config = config or Config()
        registry = ToolRegistry()
        if load_builtins:
            registry.load_builtins(
                enable_files=self.config.enable_file_tools,
                enable_terminal=self.config.enable_terminal,
                command_timeout=self.config.command_timeout,
            )

        self.context = AgentContext(
            registry=registry,
            store=SessionStore(state_dir or self.config.state_dir),
            max_turns=self.config.max_turns,
            serialize_sessions=self.config.serialize_sessions,
        )
        self._agents: Dict[str, Agent] = {}

    @classmethod
    def from_config(cls, config: Config, load_builtins: bool = True) -> "AgentManager":
        """Build a manager and create every agent declared in the config file."""
        manager = cls(config=config, load_builtins=load_builtins)
        for agent_config in config.get_agent_configs():
            manager.create_agent(agent_config)
        log.info(f"Manager ready: {len(manager._agents)} agents, {len(manager.context.registry)} tools")
        return manager

    @property
    def registry(self) -> ToolRegistry:
        return self.context.registry

    @property
    def store(self) -> SessionStore:
        return self.context.store

    def set_completion_provider(self, provider: CompletionProvider):
        """Install the provider every agent uses from its next completion call on."""
        self.context.provider = provider
        name = provider.name() if hasattr(provider, "name") and callable(provider.name) else type(provider).__name__
        log.info(f"Completion provider set: {name}")

    def register_tool(self, tool: Tool):
        self.context.registry.register(tool)

    def create_agent(self, config: AgentConfig) -> Agent:
        if config.id in self._agents:
            log.debug(f"Agent replaced: {config.id}")
        agent = Agent(config, self.context)
        self._agents[config.id] = agent
        log.debug(f"Agent created: {config.id}")
        return agent

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def remove_agent(self, agent_id: str) -> bool:
        """Forget an agent. Its sessions stay on disk."""
        return self._agents.pop(agent_id, None) is not None

    def list_agents(self) -> List[AgentConfig]:
        return [agent.config for agent in self._agents.values()]

    def list_tools(self) -> List[str]:
        return self.context.registry.list()


def create_agent_manager(state_dir: Optional[str] = None, **kwargs) -> AgentManager:
    return AgentManager(state_dir=state_dir, **kwargs)
