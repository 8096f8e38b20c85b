"""Container environment variable check tool."""

from __future__ import annotations

import json
import re
from typing import Any

from bugbuster.ai.tools import process
from bugbuster.ai.tools.base import Tool
from bugbuster.config import DockerConfig

_VAR_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class CheckEnvVarsTool(Tool):
    """Reports whether variables are set inside a container, never their values."""

    def __init__(self, config: DockerConfig):
        self._containers = config.containers
        self._timeout = config.timeout

    @property
    def name(self) -> str:
        return "check_env_vars"

    @property
    def description(self) -> str:
        return (
            "Check if environment variables are configured on the server. "
            "Use this to verify configuration issues."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "service": {
                    "type": "string",
                    "enum": list(self._containers),
                    "description": "Service to check",
                },
                "var_names": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Environment variable names to check",
                },
            },
            "required": ["service", "var_names"],
        }

    async def execute(self, **kwargs: Any) -> str:
        service = kwargs.get("service", "")
        var_names: list[str] = kwargs.get("var_names") or []

        container_name = self._containers.get(service)
        if container_name is None:
            raise ValueError(f"Unknown service: {service}")
        if not var_names:
            raise ValueError("var_names must not be empty")

        variables: dict[str, dict[str, Any]] = {}
        for var_name in var_names:
            if not _VAR_NAME.match(var_name):
                variables[var_name] = {"configured": False, "status": "invalid name"}
                continue

            try:
                result = await process.run_process(
                    "docker", "exec", container_name, "printenv", var_name,
                    timeout=self._timeout,
                )
            except FileNotFoundError:
                raise RuntimeError("Docker is not available. Cannot check environment.")

            if "No such container" in result.stderr or "is not running" in result.stderr:
                raise RuntimeError(f"Container not running: {container_name}")

            configured = result.ok and bool(result.stdout.strip())
            variables[var_name] = {
                "configured": configured,
                "status": "present" if configured else "missing",
            }

        configured_count = sum(1 for v in variables.values() if v["configured"])
        return json.dumps(
            {
                "service": service,
                "variables": variables,
                "all_configured": configured_count == len(variables),
                "summary": {
                    "total": len(variables),
                    "configured": configured_count,
                    "missing": len(variables) - configured_count,
                },
            },
            indent=2,
        )
