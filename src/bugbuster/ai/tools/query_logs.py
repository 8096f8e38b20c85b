"""Docker container log query tool."""

from __future__ import annotations

from typing import Any

from bugbuster.ai.tools import process
from bugbuster.ai.tools.base import Tool
from bugbuster.config import DockerConfig
from bugbuster.log import get_logger

logger = get_logger(__name__)

MAX_RETURNED_LINES = 100


class QueryLogsTool(Tool):
    """Reads recent container logs, optionally filtered by a search pattern."""

    def __init__(self, config: DockerConfig):
        self._containers = config.containers
        self._timeout = config.timeout

    @property
    def name(self) -> str:
        return "query_logs"

    @property
    def description(self) -> str:
        return (
            "Query Docker container logs to find errors and warnings. "
            "Use this to investigate runtime issues."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "container": {
                    "type": "string",
                    "enum": list(self._containers),
                    "description": "Logical container name",
                },
                "query": {
                    "type": "string",
                    "description": "Case-insensitive text to filter log lines by",
                },
                "tail": {
                    "type": "integer",
                    "description": "Number of lines to retrieve (default: 100)",
                },
            },
            "required": ["container"],
        }

    async def execute(self, **kwargs: Any) -> str:
        container = kwargs.get("container", "")
        query = kwargs.get("query") or ""
        tail = int(kwargs.get("tail") or 100)

        container_name = self._containers.get(container)
        if container_name is None:
            raise ValueError(f"Unknown container: {container}")

        try:
            result = await process.run_process(
                "docker", "logs", "--tail", str(tail), container_name,
                timeout=self._timeout,
            )
        except FileNotFoundError:
            raise RuntimeError("Docker is not available. Cannot query container logs.")

        if not result.ok:
            if "No such container" in result.stderr:
                raise RuntimeError(f"Container not found: {container_name}")
            raise RuntimeError(f"Failed to query logs: {result.stderr.strip()}")

        # docker logs writes the container's stderr stream to our stderr
        lines = (result.stdout + result.stderr).splitlines()
        if query:
            needle = query.lower()
            lines = [line for line in lines if needle in line.lower()]
        lines = lines[-MAX_RETURNED_LINES:]

        logger.info("logs_queried", container=container, query=query, lines=len(lines))
        if not lines:
            suffix = f' matching "{query}"' if query else ""
            return f"No logs found for container {container}{suffix}"

        header = f"Logs from {container} (last {tail} lines"
        header += f', filtered by "{query}"):' if query else "):"
        return header + "\n\n" + "\n".join(lines)
