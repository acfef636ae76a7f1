"""
Permissive extraction of sections and tables from an agent's final Markdown answer.

The parser never raises: text that does not look like Markdown ends up as a single ``Output``
section holding the original text.
"""

import re
from typing import (
    List,
    Optional,
)

from abapforge.core.schema import (
    AgentResult,
    Section,
    Table,
)

_HEADING = re.compile(r"^(#{1,3})\s+(.*\S)\s*$")
FALLBACK_HEADING = "Output"


def _is_table_line(line: str) -> bool:
    stripped = line.strip()
    return len(stripped) > 1 and stripped.startswith("|") and stripped.endswith("|")


def _split_row(line: str) -> List[str]:
    return [cell.strip() for cell in line.strip()[1:-1].split("|")]


def parse_table(lines: List[str]) -> Table:
    """Header row, skipped separator row, then data rows."""
    return Table(headers=_split_row(lines[0]), rows=[_split_row(line) for line in lines[2:]])


class _Draft:
    def __init__(self, heading: Optional[str]) -> None:
        self.heading = heading
        self.lines: List[str] = []
        self.table: Optional[Table] = None

    @property
    def content(self) -> Optional[str]:
        text = "\n".join(self.lines).strip()
        return text or None

    def to_section(self) -> Section:
        return Section(heading=self.heading or FALLBACK_HEADING, content=self.content, table=self.table)


def parse_sections(text: str) -> List[_Draft]:
    preamble = _Draft(None)
    drafts = [preamble]
    lines = (text or "").splitlines()

    i = 0
    while i < len(lines):
        line = lines[i]
        match = _HEADING.match(line.strip())
        if match:
            drafts.append(_Draft(match.group(2).strip()))
            i += 1
            continue

        if _is_table_line(line):
            start = i
            while i < len(lines) and _is_table_line(lines[i]):
                i += 1
            block = lines[start:i]
            current = drafts[-1]
            if current.table is None:
                current.table = parse_table(block)
            else:
                # only the first table of a section is structured
                current.lines.extend(block)
            continue

        drafts[-1].lines.append(line)
        i += 1

    return drafts


def parse_agent_output(text: Optional[str], role: str, default_title: str) -> AgentResult:
    """
    Build an :class:`AgentResult` from free-form model text.

    ``#``, ``##`` and ``###`` headings open sections; runs of ``|``-delimited lines become the
    section's table.  If the first heading has neither body nor table it becomes the title.  Text
    before the first heading is kept as a leading ``Output`` section.  Without any heading the
    whole text is one ``Output`` section.
    """
    text = text or ""
    preamble, *headed = parse_sections(text)

    if not headed:
        return AgentResult(
            role=role,
            title=default_title,
            sections=[Section(heading=FALLBACK_HEADING, content=text.strip())],
        )

    title = default_title
    first = headed[0]
    if first.content is None and first.table is None:
        title = first.heading
        headed = headed[1:]

    sections = [d.to_section() for d in headed]
    if preamble.content is not None or preamble.table is not None:
        sections.insert(0, preamble.to_section())
    if not sections:
        sections = [Section(heading=FALLBACK_HEADING, content=text.strip())]

    return AgentResult(role=role, title=title, sections=sections)
