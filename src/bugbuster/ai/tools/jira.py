"""Jira ticket creation tool."""

from __future__ import annotations

from typing import Any

import httpx

from bugbuster.ai.tools.base import Tool, ToolOutput
from bugbuster.config import JiraConfig
from bugbuster.log import get_logger

logger = get_logger(__name__)

TICKET_TOOL_NAME = "create_jira_ticket"
PRIORITIES = ["Highest", "High", "Medium", "Low", "Lowest"]
SIGNATURE = "_Created by BugBuster 3000 AI Agent_"


class CreateJiraTicketTool(Tool):
    """Files an issue through the Jira REST API v2."""

    def __init__(self, config: JiraConfig):
        self._config = config

    @property
    def name(self) -> str:
        return TICKET_TOOL_NAME

    @property
    def description(self) -> str:
        return (
            "Create a Jira ticket with bug details. Only use this when you have "
            "gathered enough information and confirmed it is a real bug."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": "Short, descriptive title for the bug",
                },
                "description": {
                    "type": "string",
                    "description": (
                        "Detailed description in Markdown: problem statement, root cause, "
                        "reproduction steps, and possible fix"
                    ),
                },
                "priority": {
                    "type": "string",
                    "enum": PRIORITIES,
                    "description": "Priority level (default: Medium)",
                },
                "labels": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": 'Labels, e.g. ["bug", "backend"]',
                },
                "affected_files": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "File paths affected by the bug",
                },
            },
            "required": ["title", "description"],
        }

    def build_issue(self, **kwargs: Any) -> dict[str, Any]:
        """Build the issue creation body."""
        title = kwargs.get("title", "").strip()
        if not title:
            raise ValueError("title is required")
        priority = kwargs.get("priority") or "Medium"
        if priority not in PRIORITIES:
            raise ValueError(f"Invalid priority: {priority}")

        description = kwargs.get("description", "")
        affected_files = kwargs.get("affected_files") or []
        if affected_files:
            description += "\n\n## Affected Files\n"
            description += "".join(f"• {f}\n" for f in affected_files)
        description += f"\n\n---\n{SIGNATURE}"

        fields: dict[str, Any] = {
            "project": {"key": self._config.project_key},
            "summary": title,
            "description": description,
            "issuetype": {"name": self._config.issue_type},
            "priority": {"name": priority},
        }
        labels = kwargs.get("labels") or []
        if labels:
            fields["labels"] = labels
        return {"fields": fields}

    async def execute(self, **kwargs: Any) -> ToolOutput:
        issue = self.build_issue(**kwargs)
        base_url = self._config.base_url.rstrip("/")

        async with httpx.AsyncClient(timeout=self._config.timeout) as client:
            response = await client.post(
                f"{base_url}/rest/api/2/issue",
                json=issue,
                auth=(self._config.email, self._config.api_token),
            )
            if response.status_code >= 400:
                raise RuntimeError(f"Jira API error: {response.status_code} - {response.text}")
            result = response.json()

        key = result["key"]
        url = f"{base_url}/browse/{key}"
        title = issue["fields"]["summary"]
        priority = issue["fields"]["priority"]["name"]
        logger.info("jira_ticket_created", key=key)
        return ToolOutput(
            text=(
                "Jira ticket created successfully!\n\n"
                f"Ticket: {key}\nURL: {url}\nPriority: {priority}\nTitle: {title}"
            ),
            data={"key": key, "url": url, "priority": priority, "title": title},
        )
