"""Tests for the safety gate and the built-in artifact policy."""

import pytest

from abapforge.agent.safety_gate import (
    ArtifactPolicy,
    SafetyGate,
    build_artifact,
    create_safety_gate,
)


class StaticEvaluator:
    """Returns a fixed verdict and records the artifacts it saw."""

    def __init__(self, verdict) -> None:
        self.verdict = verdict
        self.seen = []

    def evaluate(self, artifact):
        self.seen.append(artifact)
        return self.verdict


class BrokenEvaluator:
    def evaluate(self, artifact):
        raise RuntimeError("policy service down")


class AsyncEvaluator:
    async def evaluate(self, artifact):
        return {"approved": False, "failures": [{"message": "async says no"}]}


def test_artifact_type_map() -> None:
    """Object-type codes map to artifact kinds; unknown or missing is a program."""
    assert build_artifact({"object_name": "ZCL_A", "object_type": "CLAS"})["type"] == "class"
    assert build_artifact({"object_name": "ZIF_A", "object_type": "INTF"})["type"] == "interface"
    assert build_artifact({"object_name": "Z_A", "object_type": "FUGR"})["type"] == "function_module"
    assert build_artifact({"object_name": "ZT", "object_type": "TABL"})["type"] == "configuration"
    assert build_artifact({"object_name": "ZD", "object_type": "DTEL"})["type"] == "program"
    assert build_artifact({"object_name": "ZP"})["type"] == "program"


@pytest.mark.asyncio
async def test_rejection_is_returned_as_error_result() -> None:
    """approved=False blocks with the joined failure messages."""
    evaluator = StaticEvaluator({"approved": False, "failures": [{"message": "missing transport"}]})
    gate = SafetyGate(evaluator)

    result = await gate.check("write_abap_source", {"object_name": "ZCL_X", "source": "..."})

    assert result == {"error": "Safety gate blocked: missing transport"}
    assert evaluator.seen == [{"name": "ZCL_X", "type": "program", "source": "...", "transport": None}]


@pytest.mark.asyncio
async def test_multiple_failures_are_joined() -> None:
    """Messages are joined with '; '."""
    gate = SafetyGate(StaticEvaluator({"approved": False, "failures": [{"message": "a"}, {"message": "b"}]}))

    assert await gate.check("activate_object", {"object_name": "ZCL_X"}) == {"error": "Safety gate blocked: a; b"}


@pytest.mark.asyncio
async def test_read_only_tools_are_not_evaluated() -> None:
    """Only mutating tools reach the evaluator."""
    evaluator = StaticEvaluator({"approved": False})
    gate = SafetyGate(evaluator)

    assert await gate.check("read_abap_source", {"object_name": "ZCL_X"}) is None
    assert evaluator.seen == []


@pytest.mark.asyncio
async def test_approved_passes() -> None:
    """An approving verdict lets the call run."""
    gate = SafetyGate(StaticEvaluator({"approved": True}))
    assert await gate.check("write_abap_source", {"object_name": "ZCL_X", "source": "x"}) is None


@pytest.mark.asyncio
async def test_evaluator_fault_fails_open() -> None:
    """If the evaluator raises, the call proceeds."""
    gate = SafetyGate(BrokenEvaluator())
    assert await gate.check("write_abap_source", {"object_name": "ZCL_X", "source": "x"}) is None


@pytest.mark.asyncio
async def test_coroutine_evaluator_is_awaited() -> None:
    """Evaluators may be async."""
    gate = SafetyGate(AsyncEvaluator())
    assert await gate.check("write_abap_source", {"object_name": "ZCL_X"}) == {
        "error": "Safety gate blocked: async says no"
    }


# ---------------------------------------------------------------------------
# ArtifactPolicy
# ---------------------------------------------------------------------------
GOOD_SOURCE = "METHOD run.\n  IF x = 1.\n    LOOP AT t INTO w.\n    ENDLOOP.\n  ENDIF.\nENDMETHOD."


def test_policy_approves_well_formed_artifact() -> None:
    """Customer namespace, valid transport, balanced blocks."""
    verdict = ArtifactPolicy().evaluate(
        {"name": "ZCL_VENDOR_RATING", "type": "class", "source": GOOD_SOURCE, "transport": "DEVK900123"}
    )
    assert verdict["approved"] is True
    assert verdict["failures"] == []


def test_policy_requires_transport() -> None:
    """A missing transport is a failure under moderate strictness."""
    verdict = ArtifactPolicy("moderate").evaluate({"name": "ZCL_X", "type": "class", "source": None})

    assert verdict["approved"] is False
    assert verdict["failures"] == [{"message": "missing transport"}]


def test_permissive_downgrades_missing_transport_except_configuration() -> None:
    """Permissive only warns for code artifacts, configuration still needs a transport."""
    policy = ArtifactPolicy("permissive")

    assert policy.evaluate({"name": "ZCL_X", "type": "class"})["approved"] is True
    assert policy.evaluate({"name": "ZTABLE", "type": "configuration"})["approved"] is False


@pytest.mark.asyncio
async def test_data_element_is_checked_as_program() -> None:
    """DTEL activation without a transport only warns under permissive, and needs the Z/Y prefix."""
    gate = create_safety_gate(strictness="permissive")

    assert await gate.check("activate_object", {"object_name": "ZDE_RATING", "object_type": "DTEL"}) is None
    blocked = await gate.check("activate_object", {"object_name": "DE_RATING", "object_type": "DTEL"})
    assert "naming convention" in blocked["error"]


def test_policy_rejects_bad_names_and_transports() -> None:
    """Namespace prefix, whitespace, length and transport format are enforced."""
    policy = ArtifactPolicy()

    verdict = policy.evaluate({"name": "CL_STANDARD", "type": "class", "transport": "DEVK12"})
    messages = [f["message"] for f in verdict["failures"]]
    assert any("naming convention" in m for m in messages)
    assert any("Invalid transport number format" in m for m in messages)

    long_name = "Z" + "X" * 30
    verdict = policy.evaluate({"name": long_name, "type": "program", "transport": "DEVK900001"})
    assert any("30 character limit" in f["message"] for f in verdict["failures"])


def test_policy_detects_unbalanced_blocks() -> None:
    """IF without ENDIF fails the syntax check."""
    verdict = ArtifactPolicy().evaluate(
        {"name": "ZCL_X", "type": "class", "source": "IF a = b.\n  x = 1.", "transport": "DEVK900001"}
    )
    assert verdict["failures"] == [{"message": "Unmatched IF/ENDIF: 1 IF vs 0 ENDIF"}]


def test_strict_turns_naming_warnings_into_failures() -> None:
    """Lower-case names only warn unless strictness is strict."""
    artifact = {"name": "zcl_lower", "type": "class", "transport": "DEVK900001"}

    assert ArtifactPolicy("moderate").evaluate(artifact)["approved"] is True
    assert ArtifactPolicy("strict").evaluate(artifact)["approved"] is False


def test_create_safety_gate_respects_enabled_flag() -> None:
    """Disabled gate means no gate at all."""
    assert create_safety_gate(enabled=False) is None
    gate = create_safety_gate(enabled=True, strictness="strict")
    assert isinstance(gate.evaluator, ArtifactPolicy)
    assert gate.evaluator.strictness == "strict"
