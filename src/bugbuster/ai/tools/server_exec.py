"""Whitelisted diagnostic commands on remote servers over SSH."""

from __future__ import annotations

import asyncio
import os
from typing import Any

import asyncssh

from bugbuster.ai.tools import process
from bugbuster.ai.tools.base import Tool
from bugbuster.config import SSHConfig, SSHServerConfig
from bugbuster.log import get_logger

logger = get_logger(__name__)

ALLOWED_COMMANDS = (
    # Docker
    "docker ps", "docker logs", "docker inspect", "docker stats", "docker top",
    "docker exec", "docker restart",
    # System
    "free", "df", "top", "htop", "uptime", "ps", "du",
    # Network
    "netstat", "ss", "lsof", "ping", "curl", "wget", "traceroute",
    # Files
    "cat", "head", "tail", "less", "more", "grep", "find", "ls", "tree",
    # Info
    "uname", "whoami", "hostname", "date", "env", "printenv",
)

# Rejected anywhere in the command: no chaining or redirection on the remote shell
_FORBIDDEN_TOKENS = (";", "&&", "||", "|", "`", "$(", ">", "<", "\n")


def validate_command(command: str) -> str:
    """Return the trimmed command or raise ``ValueError`` if it is not allowed."""
    trimmed = command.strip()
    if not trimmed:
        raise ValueError("Command is empty")

    for token in _FORBIDDEN_TOKENS:
        if token in trimmed:
            raise ValueError(f"Command contains forbidden token {token!r}: {trimmed!r}")

    for allowed in ALLOWED_COMMANDS:
        if trimmed == allowed or trimmed.startswith(allowed + " "):
            return trimmed

    raise ValueError(
        f'Command not allowed: "{trimmed}"\n\nAllowed commands: {", ".join(ALLOWED_COMMANDS)}'
    )


class ServerExecTool(Tool):
    """Runs read-mostly diagnostics on configured servers over SSH.

    Each call opens its own connection, authenticating with the server's
    password and/or identity file.
    """

    def __init__(self, config: SSHConfig):
        self._servers = config.servers
        self._connect_timeout = config.connect_timeout
        self._command_timeout = config.command_timeout
        self._verify_host_keys = config.verify_host_keys

    @property
    def name(self) -> str:
        return "server_exec"

    @property
    def description(self) -> str:
        return (
            "Execute diagnostic commands on remote servers via SSH.\n\n"
            f"Available servers: {', '.join(self._servers) or '(none)'}\n\n"
            "Allowed commands (whitelist):\n"
            "- Docker: ps, logs, inspect, stats, top, restart, exec\n"
            "- System: free, df, top, htop, uptime, ps, du\n"
            "- Network: netstat, ss, lsof, ping, curl, wget, traceroute\n"
            "- Files: cat, head, tail, less, more, ls, grep, find, tree\n"
            "- Info: uname, whoami, hostname, date, env, printenv\n\n"
            "Commands run without a terminal, so prefer batch forms (top -b -n 1). "
            "Pipes, redirects and command chaining are rejected."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "server": {
                    "type": "string",
                    "enum": list(self._servers),
                    "description": "Configured server name (e.g. production, staging)",
                },
                "command": {
                    "type": "string",
                    "description": "Command to execute; must start with a whitelisted command",
                },
            },
            "required": ["server", "command"],
        }

    def connect_options(self, server: SSHServerConfig) -> dict[str, Any]:
        """Keyword arguments for ``asyncssh.connect``."""
        options: dict[str, Any] = {
            "host": server.host,
            "port": server.port,
            "username": server.user,
            "connect_timeout": self._connect_timeout,
        }
        if server.password:
            options["password"] = server.password
        if server.identity_file:
            options["client_keys"] = [os.path.expanduser(server.identity_file)]
        if not self._verify_host_keys:
            options["known_hosts"] = None
        return options

    async def execute(self, **kwargs: Any) -> str:
        server_name = kwargs.get("server", "")
        command = validate_command(kwargs.get("command", ""))

        server = self._servers.get(server_name)
        if server is None:
            available = ", ".join(self._servers) or "(none)"
            raise ValueError(f'Server "{server_name}" not found. Available servers: {available}')

        logger.info("server_exec", server=server_name, command=command)
        try:
            async with asyncssh.connect(**self.connect_options(server)) as conn:
                result = await conn.run(command, check=False, timeout=self._command_timeout)
        except asyncio.TimeoutError:
            raise RuntimeError(f"SSH command on {server_name} timed out")
        except (OSError, asyncssh.Error) as e:
            raise RuntimeError(f"SSH connection to {server_name} failed: {e}")

        stdout = str(result.stdout or "")[: process.MAX_STDOUT_CHARS]
        stderr = str(result.stderr or "")[: process.MAX_STDERR_CHARS]
        if result.exit_status != 0:
            raise RuntimeError(f"Command exited with code {result.exit_status}\n{stderr.strip()}")

        output = stdout or stderr
        if not output.strip():
            return "Command executed successfully (no output)"
        return f"Output from {server_name}:\n\n{output}"
