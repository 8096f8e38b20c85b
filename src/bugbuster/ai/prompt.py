"""System prompt assembly: prompt file plus the memory notes written by update_memory."""

from __future__ import annotations

from pathlib import Path

from bugbuster.config import PromptConfig
from bugbuster.log import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are BugBuster 3000, a debugging assistant in the dev team's group chat.

- Keep messages short, casual, and in English.
- Use query_logs, check_env_vars and server_exec to investigate runtime issues.
- Create a Jira ticket only for confirmed bugs.
- Save useful learnings with update_memory.
- If a message is casual chat that is not meant for you, reply with exactly [SILENT].
"""


class SystemPrompt:
    """Loads the base prompt once and re-reads the memory file on every build."""

    def __init__(self, config: PromptConfig):
        self._memory_path = Path(config.memory_path)
        self._base = self._load_base(Path(config.system_prompt_path))

    @staticmethod
    def _load_base(path: Path) -> str:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("system_prompt_fallback", path=str(path), error=str(e))
            return DEFAULT_SYSTEM_PROMPT
        logger.info("system_prompt_loaded", path=str(path), chars=len(text))
        return text

    def build(self) -> str:
        try:
            memory = self._memory_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self._base
        except OSError as e:
            logger.warning("memory_load_failed", path=str(self._memory_path), error=str(e))
            return self._base
        return f"{self._base}\n\n---\n\n# YOUR MEMORY\n\n{memory}"
