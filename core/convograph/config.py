"""Shared convograph configuration utilities.

Centralises reading of ~/.convograph/configuration.json so that the CLI,
the server and tests share one implementation. Set ``CONVOGRAPH_CONFIG`` to
point at a different file.

Example file::

    {
      "llm": {"provider": "openai", "model": "gpt-4o-mini", "api_key_env_var": "OPENAI_API_KEY"},
      "runtime": {"max_steps": 20, "system_prompt": "You are terse."},
      "server": {"host": "127.0.0.1", "port": 8080},
      "storage": {"checkpoint_dir": "~/.convograph/checkpoints"},
      "logging": {"level": "INFO", "format": "auto"}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from convograph.graph.agent_graph import DEFAULT_SYSTEM_PROMPT
from convograph.graph.edge import DEFAULT_MAX_STEPS
from convograph.llm.litellm import DEFAULT_MODEL

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CONVOGRAPH_CONFIG_FILE = Path.home() / ".convograph" / "configuration.json"
CONFIG_ENV_VAR = "CONVOGRAPH_CONFIG"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


def get_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else CONVOGRAPH_CONFIG_FILE


def get_convograph_config() -> dict[str, Any]:
    """Load configuration from ~/.convograph/configuration.json (or $CONVOGRAPH_CONFIG)."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            config = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return config if isinstance(config, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the preferred LLM model string (e.g. 'openai/gpt-4o-mini')."""
    llm = get_convograph_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return llm.get("model") or DEFAULT_MODEL


def get_max_steps() -> int:
    """Return the configured per-invocation step limit, falling back to DEFAULT_MAX_STEPS."""
    return get_convograph_config().get("runtime", {}).get("max_steps", DEFAULT_MAX_STEPS)


def get_system_prompt() -> str:
    return get_convograph_config().get("runtime", {}).get("system_prompt", DEFAULT_SYSTEM_PROMPT)


def get_api_key() -> str | None:
    """Return the API key from the environment variable specified in configuration."""
    llm = get_convograph_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_server_address() -> tuple[str, int]:
    server = get_convograph_config().get("server", {})
    return server.get("host", DEFAULT_HOST), int(server.get("port", DEFAULT_PORT))


def get_checkpoint_dir() -> Path | None:
    """Directory for checkpoint files, or None to keep checkpoints in memory."""
    checkpoint_dir = get_convograph_config().get("storage", {}).get("checkpoint_dir")
    return Path(checkpoint_dir).expanduser() if checkpoint_dir else None


def _get_logging(key: str, default: str) -> str:
    return get_convograph_config().get("logging", {}).get(key, default)


# ---------------------------------------------------------------------------
# RuntimeConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Runtime configuration loaded from the configuration file."""

    model: str = field(default_factory=get_preferred_model)
    max_steps: int = field(default_factory=get_max_steps)
    api_key: str | None = field(default_factory=get_api_key)
    system_prompt: str = field(default_factory=get_system_prompt)
    host: str = field(default_factory=lambda: get_server_address()[0])
    port: int = field(default_factory=lambda: get_server_address()[1])
    checkpoint_dir: Path | None = field(default_factory=get_checkpoint_dir)
    log_level: str = field(default_factory=lambda: _get_logging("level", "INFO"))
    log_format: str = field(default_factory=lambda: _get_logging("format", "auto"))
