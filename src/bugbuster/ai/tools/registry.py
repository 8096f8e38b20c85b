"""Tool registry: name dispatch for model tool invocations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bugbuster.ai.tools.base import Tool, ToolInvocation, ToolOutput, ToolResult
from bugbuster.log import get_logger

if TYPE_CHECKING:
    from bugbuster.config import AppConfig

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_tools_by_names(self, names: list[str]) -> list[Tool]:
        """Get a subset of tools by name list."""
        return [self._tools[n] for n in names if n in self._tools]

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def definitions(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        tools = self.all_tools() if names is None else self.get_tools_by_names(names)
        return [t.to_api_dict() for t in tools]

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        """Run one invocation. Failures come back as error results, never as exceptions."""
        tool = self._tools.get(invocation.name)
        if tool is None:
            logger.warning("tool_unknown", tool=invocation.name)
            return ToolResult(
                invocation_id=invocation.invocation_id,
                content=f"Error: unknown tool '{invocation.name}'",
                is_error=True,
                name=invocation.name,
            )

        try:
            output = await tool.execute(**invocation.input)
        except Exception as e:
            logger.error("tool_execution_error", tool=invocation.name, error=str(e))
            return ToolResult(
                invocation_id=invocation.invocation_id,
                content=f"Error: {e}",
                is_error=True,
                name=invocation.name,
            )

        if isinstance(output, ToolOutput):
            return ToolResult(
                invocation_id=invocation.invocation_id,
                content=output.text,
                name=invocation.name,
                data=dict(output.data),
            )
        return ToolResult(
            invocation_id=invocation.invocation_id,
            content=str(output),
            name=invocation.name,
        )

    def discover_and_register(self, config: AppConfig) -> None:
        """Import and register the built-in tools enabled by configuration."""
        from bugbuster.ai.tools.env_vars import CheckEnvVarsTool
        from bugbuster.ai.tools.jira import CreateJiraTicketTool
        from bugbuster.ai.tools.memory import UpdateMemoryTool
        from bugbuster.ai.tools.query_logs import QueryLogsTool
        from bugbuster.ai.tools.server_exec import ServerExecTool

        self.register(QueryLogsTool(config.docker))
        self.register(CheckEnvVarsTool(config.docker))
        self.register(UpdateMemoryTool(config.prompt.memory_path))

        if config.ssh.servers:
            self.register(ServerExecTool(config.ssh))
        else:
            logger.info("tool_skipped", tool="server_exec", reason="no ssh servers configured")

        if config.jira is not None:
            self.register(CreateJiraTicketTool(config.jira))
        else:
            logger.info("tool_skipped", tool="create_jira_ticket", reason="jira not configured")
