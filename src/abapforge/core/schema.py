"""
Schema definitions for agent <-> provider <-> tool messages.

These data models serve as the contract between the LLM providers, the agent loop, the tools and
the workflow orchestrator.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


# ---------------------------------------------------------------------------
# Conversation content
# ---------------------------------------------------------------------------
class TextBlock(BaseModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the model."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """The formatted outcome of a tool invocation, fed back to the model."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


class Message(BaseModel):
    """One conversation message.  ``content`` is a string or an ordered list of blocks."""

    role: Literal["system", "user", "assistant"]
    content: Union[str, List[ContentBlock]]

    @property
    def blocks(self) -> List[ContentBlock]:
        """Content as a block list (string content becomes a single text block)."""
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)]
        return list(self.content)

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
class ToolDescriptor(BaseModel):
    """A tool as advertised to the model: name, description and JSON-schema input."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any]

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required", []))


# ---------------------------------------------------------------------------
# Provider responses
# ---------------------------------------------------------------------------
class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(..., description="Provider-assigned call id")
    name: str = Field(..., description="Registered tool name")
    input: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool")


class Usage(BaseModel):
    """Token accounting for one or more provider calls."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMResponse(BaseModel):
    """Provider-neutral completion result."""

    stop_reason: Literal["tool_use", "end_turn"]
    text: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    usage: Usage = Field(default_factory=Usage)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def is_text_response(self) -> bool:
        return self.text is not None and not self.has_tool_calls


# ---------------------------------------------------------------------------
# Agent output
# ---------------------------------------------------------------------------
class Table(BaseModel):
    """A header row plus data rows, as extracted from a Markdown table."""

    headers: List[str]
    rows: List[List[str]] = Field(default_factory=list)


class Section(BaseModel):
    """One heading of an agent's output with optional prose and table."""

    heading: str
    content: Optional[str] = None
    table: Optional[Table] = None


class AgentResult(BaseModel):
    """Structured output of one agent run."""

    model_config = ConfigDict(frozen=True)

    role: str
    title: str
    sections: List[Section] = Field(default_factory=list)
    duration: Optional[str] = None
    usage: Optional[Usage] = None

    def to_markdown(self) -> str:
        """Render the result as a Markdown fragment."""
        lines = [f"## {self.title}", "", f"**Agent:** {self.role}"]
        if self.duration:
            lines.append(f"**Duration:** {self.duration}")
        lines.append("")
        for section in self.sections:
            lines.extend([f"### {section.heading}", ""])
            if section.table:
                lines.append("| " + " | ".join(section.table.headers) + " |")
                lines.append("| " + " | ".join("---" for _ in section.table.headers) + " |")
                for row in section.table.rows:
                    lines.append("| " + " | ".join(row) + " |")
                lines.append("")
            if section.content:
                lines.extend([section.content, ""])
        return "\n".join(lines)


class WorkflowResult(BaseModel):
    """Ordered agent results of one ``workflow`` invocation plus aggregate usage."""

    results: List[AgentResult] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
