"""
Workflow orchestrator.

Resolves a command to one agent role, or to all five roles in workflow order, and runs them one
after another, handing each result to the next role as context.  Without an LLM provider the
orchestrator runs in mock mode and answers from the fixture file.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Union,
)

from abapforge.agent.agent_loop import (
    AgentRunner,
    UsageTracker,
)
from abapforge.agent.agents import (
    WORKFLOW_COMMAND,
    WORKFLOW_ORDER,
    AgentRole,
    get_agent,
)
from abapforge.agent.context_builder import DEFAULT_CONTEXT_BUDGET
from abapforge.agent.safety_gate import (
    SafetyGate,
    create_safety_gate,
)
from abapforge.config import settings
from abapforge.core.errors import (
    MockDataError,
    UnknownCommandError,
)
from abapforge.core.schema import (
    AgentResult,
    Usage,
    WorkflowResult,
)
from abapforge.llm.base import LLMProvider
from abapforge.remote.fixture_gateway import load_fixture
from abapforge.tools import RemoteOperations

logger = logging.getLogger(__name__)

MOCK_DURATION = "0.1s (mock)"


class Orchestrator:
    """
    Runs single agents or the full five-stage workflow.

    Parameters
    ----------
    provider:
        LLM provider for live runs.  ``None`` selects mock mode.
    remote:
        Remote-operation facade the tools use.  Required in live mode.
    safety_gate:
        Gate for mutating tools (live mode only).
    mock_data:
        Fixture content for mock mode; the bundled fixture is loaded lazily when omitted.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        remote: Optional[RemoteOperations] = None,
        safety_gate: Optional[SafetyGate] = None,
        mock_data: Optional[Dict[str, Any]] = None,
        max_iterations: int = 25,
        context_budget: int = DEFAULT_CONTEXT_BUDGET,
        usage_tracker: Optional[UsageTracker] = None,
    ) -> None:
        self.mode = "live" if provider is not None else "mock"
        self.usage_tracker = usage_tracker or UsageTracker()
        self.remote = remote
        self._mock_data = mock_data
        self.runner: Optional[AgentRunner] = None

        if provider is not None:
            if remote is None:
                raise ValueError("A remote facade is required in live mode")
            self.runner = AgentRunner(
                provider,
                remote,
                safety_gate=safety_gate,
                max_iterations=max_iterations,
                context_budget=context_budget,
                usage_tracker=self.usage_tracker,
            )

    async def aclose(self) -> None:
        """Close the remote facade's HTTP client, when it has one."""
        close = getattr(self.remote, "aclose", None)
        if close is not None:
            await close()

    async def run(self, command: str, requirement: str) -> Union[AgentResult, List[AgentResult]]:
        """``workflow`` returns the five results in order; any other command returns one result."""
        if command == WORKFLOW_COMMAND:
            return await self.run_workflow(requirement)
        return await self.run_single_agent(command, requirement)

    async def run_single_agent(
        self, command: str, requirement: str, previous: Optional[AgentResult] = None
    ) -> AgentResult:
        agent = get_agent(command)
        if agent is None:
            raise UnknownCommandError(f"Unknown agent command: {command}", details={"command": command})

        logger.info("Running %s agent (%s mode)", agent.name, self.mode)
        if self.runner is None:
            return self._run_mock_agent(agent)
        return await self.runner.run(agent, requirement, previous)

    async def run_workflow(self, requirement: str) -> List[AgentResult]:
        """Run all roles in workflow order.  The first failure aborts the remaining roles."""
        logger.info("Starting workflow (%d agents)", len(WORKFLOW_ORDER))
        results: List[AgentResult] = []
        previous: Optional[AgentResult] = None
        for role in WORKFLOW_ORDER:
            result = await self.run_single_agent(role, requirement, previous)
            results.append(result)
            previous = result
        logger.info("Workflow complete")
        return results

    # -----------------------------------------------------------------------
    # Mock mode
    # -----------------------------------------------------------------------
    def _load_mock_outputs(self) -> Dict[str, Any]:
        if self._mock_data is None:
            self._mock_data = load_fixture()
        return self._mock_data.get("agentOutputs") or {}

    def _run_mock_agent(self, agent: AgentRole) -> AgentResult:
        output = self._load_mock_outputs().get(agent.role)
        if not output:
            raise MockDataError(f"No mock output for agent role: {agent.role}", details={"role": agent.role})
        return AgentResult(
            role=agent.role,
            title=output["title"],
            sections=output.get("sections", []),
            duration=MOCK_DURATION,
            usage=Usage(),
        )


def summarize(results: List[AgentResult]) -> WorkflowResult:
    """Wrap *results* with their aggregate token usage."""
    total = Usage()
    for result in results:
        if result.usage is not None:
            total = total + result.usage
    return WorkflowResult(results=results, usage=total)


def create_orchestrator(api_key: Optional[str] = None) -> Orchestrator:
    """
    Orchestrator configured from :mod:`abapforge.config`.

    Live mode needs an API key (argument or ``AI_API_KEY``); without one the orchestrator runs in
    mock mode and no provider, remote system or gate is built.
    """
    # pylint: disable=import-outside-toplevel
    from abapforge.llm.factory import create_provider
    from abapforge.remote import create_remote

    api_key = api_key or settings.AI_API_KEY
    if not api_key:
        logger.info("No AI_API_KEY configured; running in mock mode")
        return Orchestrator()

    return Orchestrator(
        provider=create_provider(api_key=api_key),
        remote=create_remote(),
        safety_gate=create_safety_gate(settings.SAFETY_GATE_ENABLED, settings.SAFETY_STRICTNESS),
        max_iterations=settings.AGENT_MAX_ITERATIONS,
        context_budget=settings.CONTEXT_BUDGET,
    )
