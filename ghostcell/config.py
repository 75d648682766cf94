"""Configuration management for ghostcell."""

import json
from pathlib import Path

from pydantic import BaseModel


class ClientConfig(BaseModel):
    endpoint_url: str = "http://localhost:8000/complete"
    token_env: str = "GHOSTCELL_TOKEN"
    debounce_ms: int = 500
    timeout_seconds: float = 10.0


class LLMConfig(BaseModel):
    model: str = "claude-sonnet-4-20250514"
    api_key_env: str = "ANTHROPIC_API_KEY"
    max_tokens: int = 80


class RateLimitConfig(BaseModel):
    quota: int = 60
    window_seconds: float = 60.0


class ModerationConfig(BaseModel):
    url: str = ""
    model: str = "content-filter-alpha"
    api_key_env: str = "MODERATION_API_KEY"
    threshold: float = -0.355


class ProxyConfig(BaseModel):
    # bearer token -> user id
    tokens: dict[str, str] = {}
    rate_limit: RateLimitConfig = RateLimitConfig()
    moderation: ModerationConfig = ModerationConfig()


class GhostcellConfig(BaseModel):
    client: ClientConfig = ClientConfig()
    llm: LLMConfig = LLMConfig()
    proxy: ProxyConfig = ProxyConfig()


def _config_dir() -> Path:
    return Path.home() / ".ghostcell"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def ensure_dirs() -> None:
    """Create the ghostcell config directory."""
    _config_dir().mkdir(exist_ok=True)


def load_config() -> GhostcellConfig:
    """Load config from ~/.ghostcell/config.json, returning defaults if missing."""
    path = _config_path()
    if not path.exists():
        return GhostcellConfig()
    text = path.read_text()
    return GhostcellConfig.model_validate_json(text)


def save_config(config: GhostcellConfig) -> None:
    """Save config to ~/.ghostcell/config.json."""
    ensure_dirs()
    path = _config_path()
    path.write_text(json.dumps(config.model_dump(), indent=2) + "\n")
