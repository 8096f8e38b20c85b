"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 8192
    temperature: float = 0.7
    max_retries: int = 2
    timeout: int = 120


class AgentConfig(BaseModel):
    max_turns: int = Field(default=50, ge=1)
    idle_timeout_minutes: float = Field(default=30, gt=0)
    silent_marker: str = "[SILENT]"
    history_window: int = Field(default=0, ge=0)  # 0 = unbounded
    tools: list[str] = Field(
        default_factory=lambda: [
            "query_logs",
            "check_env_vars",
            "server_exec",
            "create_jira_ticket",
            "update_memory",
        ]
    )


class PricingConfig(BaseModel):
    """USD per million tokens."""

    input_per_mtok: float = 3.0
    output_per_mtok: float = 15.0

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1_000_000 * self.input_per_mtok
            + output_tokens / 1_000_000 * self.output_per_mtok
        )


class PromptConfig(BaseModel):
    system_prompt_path: str = "./prompts/system.md"
    memory_path: str = "./data/agent-memory.md"


class CliqConfig(BaseModel):
    webhook_url: str = ""
    webhook_secret: Optional[str] = None
    bot_name: str = "BugBuster 3000"
    max_message_length: int = 4000
    timeout: float = 15.0


class JiraConfig(BaseModel):
    base_url: str
    email: str
    api_token: str
    project_key: str
    issue_type: str = "Bug"
    timeout: float = 30.0


class DockerConfig(BaseModel):
    # Logical service name -> container name
    containers: dict[str, str] = Field(
        default_factory=lambda: {
            "main-app": "awkward-crm-app",
            "seo-engine": "awkward-crm-seo-engine",
        }
    )
    timeout: int = 30


class SSHServerConfig(BaseModel):
    host: str
    user: str
    port: int = 22
    # Either or both; with neither, the agent and default keys are tried
    password: Optional[str] = None
    identity_file: Optional[str] = None


class SSHConfig(BaseModel):
    servers: dict[str, SSHServerConfig] = Field(default_factory=dict)
    connect_timeout: int = 10
    command_timeout: int = 60
    verify_host_keys: bool = True


class HTTPServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3002
    debug_endpoints: bool = True


class AppConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = False
    data_dir: str = "./data"
    anthropic: AnthropicConfig
    agent: AgentConfig = Field(default_factory=AgentConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)
    cliq: CliqConfig = Field(default_factory=CliqConfig)
    jira: Optional[JiraConfig] = None
    docker: DockerConfig = Field(default_factory=DockerConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    server: HTTPServerConfig = Field(default_factory=HTTPServerConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced as ${data_dir} elsewhere in the file
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = _drop_unresolved(yaml.safe_load(interpolated) or {})

    # Optional integrations with missing credentials count as not configured
    jira = data.get("jira")
    if isinstance(jira, dict) and not _JIRA_REQUIRED.issubset(jira):
        data["jira"] = None
    servers = (data.get("ssh") or {}).get("servers")
    if isinstance(servers, dict):
        data["ssh"]["servers"] = {
            name: s for name, s in servers.items() if isinstance(s, dict) and s.get("host")
        }

    return AppConfig(**data)


_JIRA_REQUIRED = {"base_url", "email", "api_token", "project_key"}


def _drop_unresolved(value):
    """Remove mapping entries whose value is an unset ``${VAR}`` or empty, so defaults apply."""
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            if item is None or (isinstance(item, str) and (not item or _ENV_VAR_PATTERN.fullmatch(item))):
                continue
            cleaned[key] = _drop_unresolved(item)
        return cleaned
    if isinstance(value, list):
        return [_drop_unresolved(v) for v in value]
    return value
