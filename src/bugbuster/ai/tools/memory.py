"""Persistent memory notes the model can write for future conversations."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

from bugbuster.ai.tools.base import Tool
from bugbuster.log import get_logger

logger = get_logger(__name__)

CATEGORIES = ["jira", "debugging", "user-preferences", "common-issues", "workflow"]
MEMORY_HEADER = "# BugBuster Memory\n\nThings I've learned while helping the team.\n"


def add_memory_entry(memory: str, category: str, entry: str) -> str:
    """Insert ``entry`` at the end of the ``## category`` section, creating it if needed."""
    header = f"## {category}"
    lines = memory.split("\n")

    try:
        start = lines.index(header)
    except ValueError:
        if not memory.endswith("\n"):
            memory += "\n"
        return f"{memory}\n{header}\n{entry}\n"

    insert_at = len(lines)
    for i in range(start + 1, len(lines)):
        if lines[i].startswith("## "):
            insert_at = i
            break
    # Keep the entry directly under the section's last non-blank line
    while insert_at > start + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    lines.insert(insert_at, entry)
    return "\n".join(lines)


class UpdateMemoryTool(Tool):
    def __init__(self, memory_path: str | Path):
        self._path = Path(memory_path)

    @property
    def name(self) -> str:
        return "update_memory"

    @property
    def description(self) -> str:
        return (
            "Save important learnings, patterns, or preferences to memory. Use this when "
            "you learn something useful that should be remembered for future conversations."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "note": {
                    "type": "string",
                    "description": "The learning or pattern to remember (concise, actionable)",
                },
                "category": {
                    "type": "string",
                    "enum": CATEGORIES,
                    "description": "Category for this memory",
                },
            },
            "required": ["note", "category"],
        }

    async def execute(self, **kwargs: Any) -> str:
        note = " ".join(str(kwargs.get("note", "")).split())
        category = kwargs.get("category", "")
        if not note:
            raise ValueError("note is required")
        if category not in CATEGORIES:
            raise ValueError(f"Invalid category: {category}")

        memory = self._path.read_text(encoding="utf-8") if self._path.exists() else MEMORY_HEADER
        entry = f"- [{date.today().isoformat()}] {note}"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(add_memory_entry(memory, category, entry), encoding="utf-8")

        logger.info("memory_updated", category=category)
        return "Saved to memory"
