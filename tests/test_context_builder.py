"""Tests for message building, token estimation, compression and tool-result formatting."""

import json
import math

import pytest

from abapforge.agent.context_builder import (
    build_assistant_tool_use_message,
    build_tool_result_message,
    build_user_message,
    compress_context,
    estimate_messages_tokens,
    estimate_tokens,
    format_tool_result,
)
from abapforge.agent.output_parser import parse_agent_output
from abapforge.core.schema import (
    AgentResult,
    Message,
    Section,
    Table,
    ToolCall,
)


def test_user_message_without_context() -> None:
    """Just the requirement section."""
    assert build_user_message("Add vendor rating") == "## Requirement\nAdd vendor rating"


def test_user_message_with_previous_result() -> None:
    """The previous agent's role, title and sections follow the requirement."""
    previous = AgentResult(
        role="planner",
        title="Scope Analysis",
        sections=[
            Section(heading="Summary", content="Rate vendors"),
            Section(heading="Objects", table=Table(headers=["Object", "Type"], rows=[["ZCL_A", "CLAS"]])),
        ],
    )

    text = build_user_message("Add vendor rating", previous)

    assert text.split("\n") == [
        "## Requirement",
        "Add vendor rating",
        "",
        "## Context from Previous Agent",
        "**Agent:** planner",
        "**Title:** Scope Analysis",
        "",
        "### Summary",
        "Rate vendors",
        "",
        "### Objects",
        "| Object | Type |",
        "| --- | --- |",
        "| ZCL_A | CLAS |",
    ]


def test_rendered_table_parses_back() -> None:
    """A table rendered into the context message parses to the same headers and rows."""
    table = Table(headers=["Risk", "Severity"], rows=[["Slow reads", "Medium"], ["Unclear", "Low"]])
    previous = AgentResult(role="planner", title="T", sections=[Section(heading="Risks", table=table)])

    parsed = parse_agent_output(build_user_message("req", previous), "x", "X")

    risks = next(s for s in parsed.sections if s.heading == "Risks")
    assert risks.table == table


@pytest.mark.parametrize("text", ["", "a", "abcd", "abcde", "x" * 401])
def test_estimate_tokens(text: str) -> None:
    """ceil(len / 4)."""
    assert estimate_tokens(text) == math.ceil(len(text) / 4)


def test_estimate_messages_counts_blocks_and_overhead() -> None:
    """Text, tool input JSON and tool results count, plus 4 per message."""
    call = ToolCall(id="t1", name="list_objects", input={"package": "ZTEST"})
    messages = [
        Message(role="system", content="abcd"),
        build_assistant_tool_use_message([call], "12345678"),
        build_tool_result_message("t1", "xy"),
    ]
    input_json = json.dumps({"package": "ZTEST"}, separators=(",", ":"))

    expected = (1 + 4) + (2 + estimate_tokens(input_json) + 4) + (1 + 4)
    assert estimate_messages_tokens(messages) == expected


def _long_conversation(count: int):
    messages = [Message(role="system", content="S" * 40), Message(role="user", content="U" * 40)]
    for i in range(count):
        messages.append(Message(role="assistant", content=f"{i:03d}" + "a" * 37))
    return messages


def test_compress_under_budget_is_identity() -> None:
    """Nothing changes when the conversation fits."""
    messages = _long_conversation(10)
    assert compress_context(messages, budget=10**9) == messages


def test_compress_keeps_head_and_recent_tail() -> None:
    """Head preserved, newest messages kept, a marker replaces the dropped middle."""
    messages = _long_conversation(10)  # each message costs 10 + 4 tokens

    compressed = compress_context(messages, budget=14 * 5)

    assert compressed[0] is messages[0]
    assert compressed[1] is messages[1]
    assert compressed[2].role == "user"
    assert compressed[2].content == "[7 earlier message(s) omitted for context budget]"
    assert compressed[3:] == messages[-3:]
    assert len(compressed) <= len(messages)


def test_compress_with_tiny_budget_keeps_head_only() -> None:
    """Even when nothing else fits, system and initial user messages stay."""
    messages = _long_conversation(3)

    compressed = compress_context(messages, budget=1)

    assert compressed[:2] == messages[:2]
    assert compressed[2].content == "[3 earlier message(s) omitted for context budget]"
    assert len(compressed) == 3


# ---------------------------------------------------------------------------
# Tool result formatting
# ---------------------------------------------------------------------------
def test_format_error_and_empty() -> None:
    """Error results are prefixed, empty results have a fixed text."""
    assert format_tool_result("list_objects", {"error": "Package ZX not found"}) == "Error: Package ZX not found"
    assert format_tool_result("list_objects", None) == "No result returned."


def test_format_source_truncates_long_bodies() -> None:
    """Source beyond 8000 chars is cut with a length marker."""
    result = {"object_name": "ZCL_A", "object_type": "CLAS", "package": "ZPKG", "source": "x" * 9000}

    text = format_tool_result("read_abap_source", result)

    assert text.startswith("CLAS: ZCL_A (package: ZPKG)\n\n")
    assert text.endswith("\n... [truncated, 9000 chars total]")
    assert "x" * 8000 in text
    assert "x" * 8001 not in text
    assert len(result["source"]) == 9000


def test_format_per_tool_headers() -> None:
    """Each tool kind renders a fixed header."""
    assert format_tool_result("write_abap_source", {"object_name": "ZCL_A", "status": "SAVED"}) == (
        "Written: ZCL_A (SAVED)"
    )
    assert format_tool_result("activate_object", {"object_name": "ZCL_A", "status": "ACTIVE"}) == (
        "Activated: ZCL_A - ACTIVE"
    )
    assert format_tool_result(
        "list_objects", {"package": "ZTEST", "objects": [{"type": "CLAS", "name": "ZCL_A"}]}
    ) == "Package: ZTEST\nObjects (1):\n  CLAS ZCL_A"
    assert format_tool_result("run_syntax_check", {"status": "OK", "errors": []}) == (
        "Syntax check: CLEAN - no errors found"
    )
    assert format_tool_result(
        "run_unit_tests", {"summary": {"passed": 3, "failed": 1, "skipped": 0}, "coverage": {"statement": 90}}
    ) == "Unit Tests: Passed: 3, Failed: 1, Skipped: 0\nCoverage: 90%"


def test_format_unknown_tool_falls_back_to_truncated_json() -> None:
    """Unknown tools are pretty-printed JSON, cut at 2000 chars."""
    short = format_tool_result("mystery", {"a": 1})
    assert short == json.dumps({"a": 1}, indent=2)

    long = format_tool_result("mystery", {"blob": "y" * 5000})
    assert long.endswith("\n... [truncated]")
    assert len(long) == 2000 + len("\n... [truncated]")


def test_format_unknown_tool_error_is_passed_through() -> None:
    """The dispatcher's unknown-tool error reaches the model unprefixed."""
    assert format_tool_result("not_a_tool", {"error": "Unknown tool: not_a_tool"}) == "Unknown tool: not_a_tool"


@pytest.mark.parametrize(
    "tool, result, expected",
    [
        (
            "run_unit_tests",
            {"summary": {"passed": 2}, "coverage": 87.5},
            "Unit Tests: Passed: 2, Failed: 0, Skipped: 0\nCoverage: 87.5%",
        ),
        ("run_unit_tests", {"summary": "all green"}, None),
        (
            "get_data_dictionary",
            {"name": "ZT", "type": "TABL", "fields": ["MANDT"]},
            "TABL: ZT\nFields (1):\n  MANDT",
        ),
        ("read_abap_source", {"object_name": "ZCL_A", "source": ["line"]}, None),
    ],
)
def test_format_tolerates_unexpected_shapes(tool, result, expected) -> None:
    """Scalars where objects are expected still render without raising."""
    text = format_tool_result(tool, result)

    assert isinstance(text, str)
    if expected is not None:
        assert text == expected
