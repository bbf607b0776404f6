"""
Prompt loader for ralph.

Loads prompt templates shipped in ralph/prompts/ and interpolates variables.
A project may override any template by placing a file with the same name in
its configured prompts directory.

Templates use Python str.format() syntax: {variable_name}
Use {{ and }} for literal braces (e.g., JSON examples).

HTML comments (<!-- ... -->) are stripped before rendering - use them for
documentation that shouldn't be sent to the agent.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = [
    "PromptError",
    "load_prompt",
    "render_prompt",
    "bullet_list",
    "clear_cache",
    "PROMPTS_DIR",
]

# Pattern to strip HTML comments (including multiline)
_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptError(Exception):
    """Raised when prompt loading or rendering fails."""
    pass


@lru_cache(maxsize=32)
def load_prompt(name: str, override_dir: Path | None = None) -> str:
    """
    Load a prompt template by name (cached).

    An override file wins over the packaged template. A missing override is
    not an error.

    Raises:
        PromptError: If no template with that name exists
    """
    prompt_path = PROMPTS_DIR / f"{name}.md"
    if override_dir is not None:
        candidate = Path(override_dir) / f"{name}.md"
        if candidate.is_file():
            logger.debug(f"Using prompt override: {candidate}")
            prompt_path = candidate

    if not prompt_path.exists():
        raise PromptError(
            f"Prompt template '{name}' not found. "
            f"Expected file: {prompt_path}"
        )

    content = prompt_path.read_text()
    content = _HTML_COMMENT_PATTERN.sub('', content)
    return content.lstrip()


def render_prompt(name: str, override_dir: Path | None = None, **kwargs) -> str:
    """
    Load and render a prompt template with variables.

    Raises:
        PromptError: If template not found or required variable missing

    Example:
        render_prompt('qa_fix', prd_path='...', failed_tests='...')
    """
    template = load_prompt(name, override_dir)

    try:
        return template.format(**kwargs)
    except (KeyError, IndexError) as e:
        raise PromptError(
            f"Missing required variable {e} in prompt '{name}'. "
            f"Provided: {list(kwargs.keys())}"
        ) from e


def bullet_list(items: list[str], empty_msg: str = "(none)") -> str:
    if not items:
        return empty_msg
    return "\n".join(f"- {item}" for item in items)


def clear_cache():
    """Clear the prompt cache (useful for testing or hot-reload)."""
    load_prompt.cache_clear()
