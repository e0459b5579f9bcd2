"""
Configuration
=============
Load settings from tessera-agent.yaml and environment variables.

Example tessera-agent.yaml:

    state_dir: ~/.tessera-agent
    max_turns: 12
    command_timeout: 30
    log_level: INFO
    agents:
      coder:
        name: Coder
        system_prompt: Prefer small, focused edits.
        tools: [read_file, write_file, run_command]
        workspace_root: ~/src/project
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .models import AgentConfig

log = logging.getLogger("tessera.config")

CONFIG_FILENAME = "tessera-agent.yaml"
CONFIG_SEARCH_PATHS = [
    Path.cwd() / CONFIG_FILENAME,
    Path.home() / ".config" / "tessera-agent" / CONFIG_FILENAME,
    Path.home() / ".tessera-agent" / CONFIG_FILENAME,
]

DEFAULT_STATE_DIR = Path.home() / ".tessera-agent"
DEFAULT_MAX_TURNS = 10


def resolve_state_dir() -> Path:
    """TESSERA_STATE_DIR if set, otherwise ~/.tessera-agent."""
    env = os.getenv("TESSERA_STATE_DIR", "").strip()
    return Path(env).expanduser() if env else DEFAULT_STATE_DIR


@dataclass
class Config:
    """Engine configuration."""
    # Persistence
    state_dir: str = ""

    # Turn loop
    max_turns: int = DEFAULT_MAX_TURNS
    serialize_sessions: bool = True

    # Reference tools
    enable_file_tools: bool = True
    enable_terminal: bool = True
    command_timeout: float = 60

    # Logging
    log_level: str = "INFO"

    # Agents declared in the config file: id -> settings dict
    agents: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.state_dir:
            self.state_dir = str(resolve_state_dir())

    @classmethod
    def load(cls, path: str = None) -> "Config":
        """Load config from YAML file, env vars, or defaults."""
        config = cls()

        yaml_path = Path(path).expanduser() if path else None
        if not yaml_path:
            for search_path in CONFIG_SEARCH_PATHS:
                if search_path.exists():
                    yaml_path = search_path
                    break

        if yaml_path and yaml_path.exists():
            config._load_yaml(yaml_path)
            log.info(f"Loaded config from {yaml_path}")

        # Env vars override YAML
        config._load_env()
        return config

    def _load_yaml(self, path: Path):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            log.warning(f"Ignoring config file {path}: top level is not a mapping")
            return

        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                log.debug(f"Unknown config key ignored: {key}")

        self.state_dir = str(Path(self.state_dir).expanduser())

    def _load_env(self):
        if os.getenv("TESSERA_STATE_DIR"):
            self.state_dir = str(resolve_state_dir())
        if os.getenv("TESSERA_LOG_LEVEL"):
            self.log_level = os.getenv("TESSERA_LOG_LEVEL", self.log_level).upper()
        if os.getenv("TESSERA_DEBUG") == "1":
            self.log_level = "DEBUG"

        for env_name, attr, cast in (
            ("TESSERA_MAX_TURNS", "max_turns", int),
            ("TESSERA_COMMAND_TIMEOUT", "command_timeout", float),
        ):
            raw = os.getenv(env_name)
            if not raw:
                continue
            try:
                setattr(self, attr, cast(raw))
            except ValueError:
                log.warning(f"Ignoring {env_name}={raw!r}: not a number")

    def get_agent_configs(self) -> List[AgentConfig]:
        """Parse the agents section into AgentConfig objects."""
        configs = []
        for agent_id, data in (self.agents or {}).items():
            if isinstance(data, dict):
                configs.append(AgentConfig.from_dict(agent_id, data))
            else:
                configs.append(AgentConfig(id=agent_id))
        return configs


def setup_logging(level: str = "INFO"):
    """Configure root logging the way the rest of the package expects."""
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="%(name)s: %(message)s")
