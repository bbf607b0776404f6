"""Output shaping helpers shared by commands and prompts."""

MAX_DIFF_CHARS = 20000


def truncate_output(output: str, max_chars: int = MAX_DIFF_CHARS) -> str:
    """Truncate output, keeping start and end for context.

    Returns:
        Original text if under limit, otherwise truncated with marker
    """
    if len(output) <= max_chars:
        return output
    marker = "\n\n... [truncated] ...\n\n"
    available = max_chars - len(marker)
    head_chars = (available * 2) // 3
    tail_chars = available - head_chars
    return f"{output[:head_chars]}{marker}{output[-tail_chars:]}"


def tail_lines(output: str, n: int) -> list[str]:
    """Last n lines of output, ignoring the empty string after a final newline."""
    lines = output.split("\n")
    if lines and lines[-1] == "":
        lines = lines[:-1]
    if n <= 0:
        return []
    return lines[-n:]


def tail_chars(text: str, n: int) -> str:
    return text if len(text) <= n else text[-n:]
