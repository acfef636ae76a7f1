"""Tests for the command-line entry point."""

import pytest

from abapforge import main as main_module
from abapforge.agent.orchestrator import Orchestrator


@pytest.fixture(autouse=True)
def mock_orchestrator(monkeypatch):
    monkeypatch.setattr(main_module, "create_orchestrator", Orchestrator)


def test_cli_prints_markdown(capsys) -> None:
    """One command prints its result once."""
    main_module.main(["analyze", "Add", "vendor", "rating", "--format", "md", "--log-level", "warning"])

    out = capsys.readouterr().out
    assert "## Scope Analysis: Vendor Rating" in out
    assert "**Agent:** planner" in out


def test_cli_workflow_prints_every_role(capsys) -> None:
    """workflow renders five results to the terminal."""
    main_module.main(["workflow", "Add vendor rating", "--log-level", "warning"])

    out = capsys.readouterr().out
    for title in ("Scope Analysis", "Technical Design", "Implementation", "Test Report", "Code Review"):
        assert title in out


def test_cli_requires_requirement() -> None:
    """Missing requirement is a usage error."""
    with pytest.raises(SystemExit) as exc_info:
        main_module.main(["analyze", "--log-level", "warning"])
    assert exc_info.value.code == 2


def test_cli_rejects_unknown_command() -> None:
    """argparse restricts the command to known aliases."""
    with pytest.raises(SystemExit):
        main_module.main(["deploy", "x"])


class ClosingRemote:
    """Remote facade stand-in that records aclose calls."""

    def __init__(self) -> None:
        self.closed = 0

    async def aclose(self) -> None:
        self.closed += 1


def test_cli_closes_remote_after_run(monkeypatch, capsys) -> None:
    """The remote facade's client is closed once the command finishes, also on failure."""
    remote = ClosingRemote()
    monkeypatch.setattr(main_module, "create_orchestrator", lambda: Orchestrator(remote=remote))

    main_module.main(["analyze", "Add vendor rating", "--log-level", "warning"])
    assert remote.closed == 1

    monkeypatch.setattr(
        main_module,
        "create_orchestrator",
        lambda: Orchestrator(remote=remote, mock_data={"agentOutputs": {}}),
    )
    with pytest.raises(SystemExit):
        main_module.main(["design", "x", "--log-level", "warning"])
    assert remote.closed == 2
