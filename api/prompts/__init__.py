"""System prompts for chat."""

import os
from functools import lru_cache
from pathlib import Path


def load_prompt(filename: str) -> str:
    """Load a prompt template from the prompts directory.

    Args:
        filename: Name of the prompt file (e.g., 'default_system_prompt.txt')

    Returns:
        Prompt template as string
    """
    prompt_path = Path(__file__).parent / filename
    return prompt_path.read_text(encoding="utf-8").strip()


@lru_cache(maxsize=1)
def get_default_system_prompt() -> str:
    """Get the system instruction for chat.

    ``CHAT_SYSTEM_PROMPT`` overrides the packaged prompt file.
    """
    return os.getenv("CHAT_SYSTEM_PROMPT") or load_prompt("default_system_prompt.txt")
