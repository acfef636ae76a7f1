"""
Agent role definitions.

Five roles make up the ABAP development workflow.  Each has a display name, a command alias, a
system prompt and the ordered list of tools it may call.  Definitions are immutable and shared.
"""

from typing import (
    Dict,
    List,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)


class AgentRole(BaseModel):
    """A role-specialised driver of the LLM."""

    model_config = ConfigDict(frozen=True)

    role: str
    name: str
    command: str
    description: str
    system_prompt: str
    tools: Tuple[str, ...]


def _prompt(*lines: str) -> str:
    return "\n".join(lines)


AGENTS: Dict[str, AgentRole] = {
    "planner": AgentRole(
        role="planner",
        name="Planner",
        command="analyze",
        description="Analyzes requirements and defines implementation scope",
        system_prompt=_prompt(
            "You are an SAP ABAP development planner.",
            "Analyze the given requirement and produce a structured implementation plan.",
            "Identify affected SAP objects, assess Clean Core compliance,",
            "evaluate risks, and estimate effort.",
            "",
            "Output a scope analysis with these sections:",
            "- Requirement Summary",
            "- Affected Objects (table: Object, Type, Action, Package)",
            "- Clean Core Assessment",
            "- Risk Analysis (table: Risk, Severity, Mitigation)",
            "- Estimated Effort",
        ),
        tools=("read_abap_source", "list_objects", "search_repository", "get_data_dictionary"),
    ),
    "designer": AgentRole(
        role="designer",
        name="Designer",
        command="design",
        description="Creates technical design from the analysis",
        system_prompt=_prompt(
            "You are an SAP ABAP technical designer.",
            "Given a requirement and planner analysis, create a detailed technical design.",
            "Define data models, class structures, interfaces, and error handling.",
            "",
            "Output a design document with these sections:",
            "- Data Model",
            "- Class Design",
            "- Interface Design",
            "- Error Handling Strategy",
            "- Integration Points",
        ),
        tools=("read_abap_source", "list_objects", "get_data_dictionary", "search_repository"),
    ),
    "implementer": AgentRole(
        role="implementer",
        name="Implementer",
        command="generate",
        description="Generates ABAP source code from the design",
        system_prompt=_prompt(
            "You are an SAP ABAP code generator.",
            "Given a technical design, generate clean, well-structured ABAP code.",
            "Follow SAP coding guidelines and Clean Core principles.",
            "Create all necessary objects: classes, interfaces, tables, data elements.",
            "Always pass a transport request when writing or activating objects.",
            "",
            "Output the implementation with these sections:",
            "- Objects Created (table: Object, Type, Status)",
            "- Source Code for each object",
            "- Activation status",
        ),
        tools=(
            "read_abap_source",
            "write_abap_source",
            "activate_object",
            "run_syntax_check",
            "get_data_dictionary",
        ),
    ),
    "tester": AgentRole(
        role="tester",
        name="Tester",
        command="test",
        description="Creates and runs ABAP unit tests",
        system_prompt=_prompt(
            "You are an SAP ABAP test engineer.",
            "Given an implementation, create comprehensive ABAP Unit tests.",
            "Cover happy paths, edge cases, and error scenarios.",
            "Run tests and report results with coverage metrics.",
            "",
            "Output a test report with these sections:",
            "- Test Class definition",
            "- Test Results (table: Test Method, Status, Duration)",
            "- Summary (passed/failed/skipped)",
            "- Code Coverage (table: Metric, Value)",
        ),
        tools=("read_abap_source", "write_abap_source", "run_unit_tests", "run_syntax_check"),
    ),
    "reviewer": AgentRole(
        role="reviewer",
        name="Reviewer",
        command="review",
        description="Reviews code for quality, security, and Clean Core compliance",
        system_prompt=_prompt(
            "You are an SAP ABAP code reviewer.",
            "Review the implementation for coding standards, security,",
            "performance, and Clean Core compliance.",
            "Produce a structured review with actionable findings.",
            "",
            "Output a review report with these sections:",
            "- Review Summary",
            "- Findings (table: #, Severity, Object, Finding, Recommendation)",
            "- Clean Core Compliance (PASSED/FAILED with details)",
            "- Verdict (APPROVED / APPROVED WITH RECOMMENDATIONS / REJECTED)",
        ),
        tools=(
            "read_abap_source",
            "list_objects",
            "search_repository",
            "get_data_dictionary",
            "run_syntax_check",
        ),
    ),
}

COMMAND_MAP: Dict[str, str] = {agent.command: role for role, agent in AGENTS.items()}
"""Command alias -> role id (``analyze`` -> ``planner`` ...)."""

WORKFLOW_COMMAND = "workflow"
WORKFLOW_ORDER: Tuple[str, ...] = ("planner", "designer", "implementer", "tester", "reviewer")


def get_agent(name_or_command: str) -> Optional[AgentRole]:
    """Resolve a role id (``planner``) or command alias (``analyze``) to its definition."""
    if name_or_command in AGENTS:
        return AGENTS[name_or_command]
    role = COMMAND_MAP.get(name_or_command)
    return AGENTS.get(role) if role else None


def get_commands() -> List[str]:
    """Single-agent command aliases, in workflow order."""
    return [AGENTS[role].command for role in WORKFLOW_ORDER]
