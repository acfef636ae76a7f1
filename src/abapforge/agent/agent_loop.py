"""Tool-use loop for one agent role."""

from __future__ import annotations

import logging
import threading
import time
from typing import (
    Callable,
    List,
    Optional,
)

from abapforge.agent.agents import AgentRole
from abapforge.agent.context_builder import (
    DEFAULT_CONTEXT_BUDGET,
    build_assistant_tool_use_message,
    build_tool_result_message,
    build_user_message,
    compress_context,
    format_tool_result,
)
from abapforge.agent.output_parser import parse_agent_output
from abapforge.agent.safety_gate import SafetyGate
from abapforge.agent.tool_executor import execute_tool
from abapforge.core.schema import (
    AgentResult,
    Message,
    Section,
    ToolCall,
    Usage,
)
from abapforge.llm.base import LLMProvider
from abapforge.tools import (
    RemoteOperations,
    get_tools_for_role,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 25


class UsageTracker:
    """Process-wide token totals, safe to update from concurrent runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._usage = Usage()
        self._runs = 0

    def add(self, usage: Usage) -> None:
        with self._lock:
            self._usage = self._usage + usage
            self._runs += 1

    @property
    def total(self) -> Usage:
        with self._lock:
            return self._usage

    @property
    def runs(self) -> int:
        with self._lock:
            return self._runs

    def reset(self) -> None:
        with self._lock:
            self._usage = Usage()
            self._runs = 0


def format_duration(seconds: float) -> str:
    return f"{seconds:.1f}s"


# ---------------------------------------------------------------------------
# Agent Runner
# ---------------------------------------------------------------------------
class AgentRunner:
    """
    Drives one agent role against an LLM provider until it gives a text answer.

    Parameters
    ----------
    provider:
        The LLM provider to complete against.
    remote:
        Remote-operation facade the tools dispatch to.
    safety_gate:
        Consulted before mutating tools.  ``None`` runs them unconditionally.
    max_iterations:
        Number of tool rounds before giving up with a degraded result.
    context_budget:
        Estimated token budget for each provider request.
    usage_tracker:
        Receives the token usage of every finished run.
    """

    def __init__(
        self,
        provider: LLMProvider,
        remote: RemoteOperations,
        safety_gate: Optional[SafetyGate] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        context_budget: int = DEFAULT_CONTEXT_BUDGET,
        usage_tracker: Optional[UsageTracker] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.remote = remote
        self.safety_gate = safety_gate
        self.max_iterations = max_iterations
        self.context_budget = context_budget
        self.usage_tracker = usage_tracker or UsageTracker()
        self._clock = clock

    async def run(
        self, agent: AgentRole, requirement: str, previous: Optional[AgentResult] = None
    ) -> AgentResult:
        """Run *agent* on *requirement*, with *previous* as chained context when given."""
        started = self._clock()
        conversation: List[Message] = [
            Message(role="system", content=agent.system_prompt),
            Message(role="user", content=build_user_message(requirement, previous)),
        ]
        tools = get_tools_for_role(agent.tools)
        usage = Usage()
        logger.info("Starting %s agent with %d tool(s)", agent.name, len(tools))

        for iteration in range(self.max_iterations):
            messages = compress_context(conversation, self.context_budget)
            response = await self.provider.complete(messages, tools)
            usage = usage + response.usage

            if not response.has_tool_calls:
                parsed = parse_agent_output(response.text, agent.role, f"{agent.name} Output")
                return self._finish(agent, parsed, started, usage)

            calls = response.tool_calls or []
            logger.info(
                "%s iteration %d: %d tool call(s) %s",
                agent.name,
                iteration + 1,
                len(calls),
                [c.name for c in calls],
            )
            conversation.append(build_assistant_tool_use_message(calls, response.text))
            for call in calls:
                content = await self._execute_call(call)
                conversation.append(build_tool_result_message(call.id, content))

        logger.warning("%s agent reached the iteration limit (%d)", agent.name, self.max_iterations)
        degraded = AgentResult(
            role=agent.role,
            title=f"{agent.name} Output (max iterations reached)",
            sections=[
                Section(
                    heading="Note",
                    content=(
                        f"The agent did not produce a final answer within {self.max_iterations} "
                        "iterations."
                    ),
                )
            ],
        )
        return self._finish(agent, degraded, started, usage)

    async def _execute_call(self, call: ToolCall) -> str:
        """Gate, dispatch and format one tool call.  Failures become the returned text."""
        if self.safety_gate is not None:
            blocked = await self.safety_gate.check(call.name, call.input)
            if blocked is not None:
                return blocked["error"]

        try:
            result = await execute_tool(call.name, call.input, self.remote)
            return format_tool_result(call.name, result)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Tool '%s' failed: %s", call.name, exc)
            return f"Tool {call.name} failed: {exc}"

    def _finish(self, agent: AgentRole, result: AgentResult, started: float, usage: Usage) -> AgentResult:
        duration = format_duration(self._clock() - started)
        self.usage_tracker.add(usage)
        logger.info(
            "%s agent finished in %s (%d input / %d output tokens)",
            agent.name,
            duration,
            usage.input_tokens,
            usage.output_tokens,
        )
        return result.model_copy(update={"duration": duration, "usage": usage})
