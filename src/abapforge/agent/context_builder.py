"""
Conversation context for the agent loop.

* builds the first user message from the requirement and the previous agent's result,
* estimates token counts (about four characters per token, no tokenizer dependency),
* compresses long conversations to a token budget by keeping the head and the most recent tail,
* renders tool results as compact, deterministic text for the model.
"""

import json
import math
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
)

from abapforge.agent.tool_executor import UNKNOWN_TOOL_PREFIX
from abapforge.core.schema import (
    AgentResult,
    Message,
    Table,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)

DEFAULT_CONTEXT_BUDGET = 100_000
MESSAGE_OVERHEAD_TOKENS = 4
MAX_SOURCE_CHARS = 8000
MAX_JSON_CHARS = 2000


# ---------------------------------------------------------------------------
# Message building
# ---------------------------------------------------------------------------
def format_table(table: Table) -> str:
    """Render *table* as pipe-delimited Markdown rows (header, separator, data)."""
    lines = ["| " + " | ".join(table.headers) + " |"]
    lines.append("| " + " | ".join("---" for _ in table.headers) + " |")
    for row in table.rows:
        lines.append("| " + " | ".join(row) + " |")
    return "\n".join(lines)


def build_user_message(requirement: str, previous: Optional[AgentResult] = None) -> str:
    """The initial user message: the requirement plus, when chaining, the prior agent's output."""
    parts = ["## Requirement", requirement]

    if previous is not None:
        parts.extend(
            [
                "",
                "## Context from Previous Agent",
                f"**Agent:** {previous.role}",
                f"**Title:** {previous.title}",
            ]
        )
        for section in previous.sections:
            parts.extend(["", f"### {section.heading}"])
            if section.content:
                parts.append(section.content)
            if section.table:
                parts.append(format_table(section.table))

    return "\n".join(parts)


def build_assistant_tool_use_message(tool_calls: Sequence[ToolCall], text: Optional[str] = None) -> Message:
    """Assistant message carrying optional text followed by one tool-use block per call."""
    blocks: List[Any] = [TextBlock(text=text)] if text else []
    blocks.extend(ToolUseBlock(id=c.id, name=c.name, input=c.input) for c in tool_calls)
    return Message(role="assistant", content=blocks)


def build_tool_result_message(tool_use_id: str, content: str) -> Message:
    """User message whose single block is the result for *tool_use_id*."""
    return Message(role="user", content=[ToolResultBlock(tool_use_id=tool_use_id, content=content)])


# ---------------------------------------------------------------------------
# Token estimation and compression
# ---------------------------------------------------------------------------
def estimate_tokens(text: Optional[str]) -> int:
    """``ceil(len(text) / 4)``; zero for empty text."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def estimate_message_tokens(message: Message) -> int:
    if isinstance(message.content, str):
        total = estimate_tokens(message.content)
    else:
        total = 0
        for block in message.content:
            if isinstance(block, TextBlock):
                total += estimate_tokens(block.text)
            elif isinstance(block, ToolUseBlock):
                total += estimate_tokens(json.dumps(block.input, separators=(",", ":")))
            elif isinstance(block, ToolResultBlock):
                total += estimate_tokens(block.content)
    return total + MESSAGE_OVERHEAD_TOKENS


def estimate_messages_tokens(messages: Sequence[Message]) -> int:
    """Sum of per-message estimates, including the per-message overhead."""
    return sum(estimate_message_tokens(m) for m in messages)


def compress_context(messages: Sequence[Message], budget: int = DEFAULT_CONTEXT_BUDGET) -> List[Message]:
    """
    Fit *messages* into *budget* estimated tokens.

    The system prompt and the initial user message are always kept.  Walking back from the end,
    recent messages are kept while they fit; the first one that does not fit stops the scan.  When
    anything was dropped a single marker message takes the place of the omitted span.
    """
    messages = list(messages)
    if estimate_messages_tokens(messages) <= budget:
        return messages

    head = messages[:2]
    used = estimate_messages_tokens(head)
    tail: List[Message] = []
    for message in reversed(messages[2:]):
        cost = estimate_message_tokens(message)
        if used + cost > budget:
            break
        tail.append(message)
        used += cost
    tail.reverse()

    result = list(head)
    dropped = len(messages) - len(head) - len(tail)
    if dropped > 0:
        result.append(
            Message(role="user", content=f"[{dropped} earlier message(s) omitted for context budget]")
        )
    result.extend(tail)
    return result


# ---------------------------------------------------------------------------
# Tool result formatting
# ---------------------------------------------------------------------------
def truncate_json(obj: Any, max_len: int = MAX_JSON_CHARS) -> str:
    text = json.dumps(obj, indent=2, default=str)
    if len(text) > max_len:
        return text[:max_len] + "\n... [truncated]"
    return text


def _format_source(result: Dict[str, Any]) -> str:
    header = f"{result.get('object_type') or 'ABAP'}: {result.get('object_name')}"
    if result.get("package"):
        header += f" (package: {result['package']})"
    if result.get("description"):
        header += f"\n{result['description']}"
    source = str(result.get("source") or "(empty)")
    if len(source) > MAX_SOURCE_CHARS:
        source = source[:MAX_SOURCE_CHARS] + f"\n... [truncated, {len(source)} chars total]"
    return f"{header}\n\n{source}"


def _format_write(result: Dict[str, Any]) -> str:
    return f"Written: {result.get('object_name') or 'unknown'} ({result.get('status') or 'ok'})"


def _format_list(result: Dict[str, Any]) -> str:
    objects = result.get("objects")
    if not isinstance(objects, list):
        return truncate_json(result)
    lines = [
        f"  {o.get('type', '')} {o.get('name', '')}" if isinstance(o, dict) else f"   {o}"
        for o in objects
    ]
    return f"Package: {result.get('package') or 'unknown'}\nObjects ({len(objects)}):\n" + "\n".join(lines)


def _format_search(result: Dict[str, Any]) -> str:
    hits = result.get("results")
    if not isinstance(hits, list):
        return truncate_json(result)
    lines = [
        f"  {h.get('type', '')} {h.get('name', '')} - {h.get('description', '')}"
        if isinstance(h, dict)
        else f"   {h}"
        for h in hits
    ]
    return f"Search results ({len(hits)}):\n" + "\n".join(lines)


def _format_ddic(result: Dict[str, Any]) -> str:
    header = f"{result.get('type') or 'DDIC'}: {result.get('name') or result.get('object_name') or 'unknown'}"
    fields = result.get("fields")
    if not isinstance(fields, list):
        return f"{header}\n{truncate_json(result)}"
    lines = [
        f"  {f.get('name', '')} {f.get('type', '')} {f.get('length', '')} - {f.get('description', '')}"
        if isinstance(f, dict)
        else f"  {f}"
        for f in fields
    ]
    return f"{header}\nFields ({len(fields)}):\n" + "\n".join(lines)


def _format_activate(result: Dict[str, Any]) -> str:
    return f"Activated: {result.get('object_name') or 'unknown'} - {result.get('status') or 'ok'}"


def _format_tests(result: Dict[str, Any]) -> str:
    summary = result.get("summary")
    if summary and not isinstance(summary, dict):
        return truncate_json(result)
    text = (
        f"Passed: {summary.get('passed', 0)}, Failed: {summary.get('failed', 0)}, "
        f"Skipped: {summary.get('skipped', 0)}"
        if summary
        else ""
    )
    coverage = result.get("coverage")
    if isinstance(coverage, dict):
        coverage = coverage.get("statement") or coverage.get("line")
    if coverage:
        text += f"\nCoverage: {coverage}%"
    return f"Unit Tests: {text}"


def _format_syntax(result: Dict[str, Any]) -> str:
    errors = result.get("errors")
    if result.get("status") == "clean" or errors == []:
        return "Syntax check: CLEAN - no errors found"
    if isinstance(errors, list):
        lines = [
            f"  Line {e.get('line', '?')}: {e.get('message', e)}" if isinstance(e, dict) else f"  {e}"
            for e in errors
        ]
        return f"Syntax check: {len(errors)} error(s)\n" + "\n".join(lines)
    return f"Syntax check: {result.get('status') or 'unknown'}"


_FORMATTERS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "read_abap_source": _format_source,
    "write_abap_source": _format_write,
    "list_objects": _format_list,
    "search_repository": _format_search,
    "get_data_dictionary": _format_ddic,
    "activate_object": _format_activate,
    "run_unit_tests": _format_tests,
    "run_syntax_check": _format_syntax,
}


def format_tool_result(tool_name: str, result: Any) -> str:
    """Model-facing text for a raw tool result.  Presentation only; *result* is not modified."""
    if not result:
        return "No result returned."
    if isinstance(result, dict) and result.get("error"):
        error = str(result["error"])
        if error.startswith(UNKNOWN_TOOL_PREFIX):
            return error
        return f"Error: {error}"
    formatter = _FORMATTERS.get(tool_name)
    if formatter is None or not isinstance(result, dict):
        return truncate_json(result)
    return formatter(result)
