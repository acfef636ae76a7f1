"""Terminal helpers shared by the CLI entry point."""

from enum import Enum
from typing import Any

_RESET = "\033[0m"


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"


def colorize(text: str, color: AnsiColors) -> str:
    """Wrap *text* in the escape sequence for *color*."""
    return f"{color.value}{text}{_RESET}"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(colorize(text, color), *args, **kwargs)


def render_terminal(result: Any, width: int = 60) -> str:
    """
    Plain-text view of an :class:`~abapforge.core.schema.AgentResult` for the terminal.

    Tables are padded into aligned columns; colours are applied to the title and headings only.
    """
    rule = "=" * width
    lines = ["", rule, colorize(f"  {result.title}", AnsiColors.BOLD), f"  Agent: {result.role.upper()}"]
    if result.duration:
        lines.append(f"  Duration: {result.duration}")
    lines.extend([rule, ""])

    for section in result.sections:
        lines.append("-" * width)
        lines.append(colorize(f"  {section.heading}", AnsiColors.CYAN))
        lines.append("-" * width)
        if section.table:
            lines.append(_terminal_table(section.table.headers, section.table.rows))
        if section.content:
            lines.extend(f"  {line}" for line in section.content.split("\n"))
        lines.append("")

    lines.append(rule)
    return "\n".join(lines)


def _terminal_table(headers: list, rows: list) -> str:
    widths = [
        max([len(h)] + [len(row[i]) for row in rows if i < len(row)]) + 2 for i, h in enumerate(headers)
    ]
    lines = ["  " + "| ".join(h.ljust(w) for h, w in zip(headers, widths))]
    lines.append("  " + "+-".join("-" * w for w in widths))
    for row in rows:
        lines.append("  " + "| ".join((cell or "").ljust(w) for cell, w in zip(row, widths)))
    return "\n".join(lines)
