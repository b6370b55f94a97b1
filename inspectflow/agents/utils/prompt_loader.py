"""System prompts for agents, read from text files shipped in the package.

Each agent package ``worker_<name>/`` carries ``worker_<name>_prompt.txt``.
Prompts are read once per process.
"""

import logging
from functools import cache
from pathlib import Path

logger = logging.getLogger(__name__)

_AGENTS_DIR = Path(__file__).resolve().parent.parent


class PromptLoadError(Exception):
    """Raised when an agent's prompt file is missing or unreadable."""


def prompt_path(agent_name: str, filename: str | None = None) -> Path:
    """Location of an agent's prompt file (``evidence_analyst`` or ``worker_evidence_analyst``)."""
    package = agent_name if agent_name.startswith("worker_") else f"worker_{agent_name}"
    return _AGENTS_DIR / package / (filename or f"{package}_prompt.txt")


@cache
def _read_prompt(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise PromptLoadError(f"No prompt file at {path}") from None
    except OSError as e:
        raise PromptLoadError(f"Cannot read prompt file {path}: {e}") from e
    logger.debug(f"Read agent prompt {path.name} ({len(text)} chars)")
    return text


def load_agent_prompt(agent_name: str, filename: str | None = None, use_cache: bool = True) -> str:
    """Return the system prompt for ``agent_name``.

    Raises:
        PromptLoadError: If the prompt file cannot be read.
    """
    path = prompt_path(agent_name, filename)
    if not use_cache:
        _read_prompt.cache_clear()
    try:
        return _read_prompt(path)
    except PromptLoadError as e:
        logger.error(f"Prompt for agent '{agent_name}' unavailable: {e}")
        raise


def clear_prompt_cache() -> None:
    _read_prompt.cache_clear()
