"""
Pre-execution policy check for tools that change the remote system.

Only the tools in :data:`~abapforge.tools.MUTATING_TOOLS` are intercepted.  The gate describes the
call as an *artifact* and asks an evaluator for a verdict; a rejection is handed back to the model
as an ordinary tool result so it can correct itself.  If the evaluator itself breaks, the call goes
through (fail-open).
"""

import inspect
import logging
import re
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
)

from abapforge.tools import MUTATING_TOOLS

logger = logging.getLogger(__name__)

ARTIFACT_TYPES: Dict[str, str] = {
    "CLAS": "class",
    "INTF": "interface",
    "FUGR": "function_module",
    "PROG": "program",
    "TABL": "configuration",
    "DTEL": "program",
}
DEFAULT_ARTIFACT_TYPE = "program"

STRICTNESS_LEVELS = ("strict", "moderate", "permissive")


class ArtifactEvaluator(Protocol):
    """``evaluate(artifact) -> {"approved": bool, "failures": [{"message": str}], "summary": str}``.

    May be a plain method or a coroutine.
    """

    def evaluate(self, artifact: Dict[str, Any]) -> Any: ...


def build_artifact(args: Mapping[str, Any]) -> Dict[str, Any]:
    """Describe a mutating tool call as an artifact for policy evaluation."""
    return {
        "name": args.get("object_name"),
        "type": ARTIFACT_TYPES.get(args.get("object_type") or "", DEFAULT_ARTIFACT_TYPE),
        "source": args.get("source"),
        "transport": args.get("transport"),
    }


class SafetyGate:
    """Intercepts mutating tool calls and consults *evaluator* before they run."""

    def __init__(self, evaluator: ArtifactEvaluator) -> None:
        self.evaluator = evaluator

    async def check(self, tool_name: str, args: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Return ``None`` when the call may proceed, or the tool result to report instead.

        A verdict with ``approved`` set to ``False`` yields
        ``{"error": "Safety gate blocked: <messages>"}``.  Exceptions raised by the evaluator are
        logged and the call is allowed.
        """
        if tool_name not in MUTATING_TOOLS:
            return None

        artifact = build_artifact(args)
        try:
            verdict = self.evaluator.evaluate(artifact)
            if inspect.isawaitable(verdict):
                verdict = await verdict
        except Exception:  # pylint: disable=broad-except
            logger.exception("Safety gate evaluation failed for %s; allowing the call", artifact["name"])
            return None

        if not isinstance(verdict, Mapping) or verdict.get("approved") is not False:
            return None

        messages = [
            f["message"] for f in verdict.get("failures") or [] if isinstance(f, Mapping) and f.get("message")
        ]
        reason = "; ".join(messages) or verdict.get("summary") or "rejected by policy"
        logger.warning("Safety gate blocked %s on %s: %s", tool_name, artifact["name"], reason)
        return {"error": f"Safety gate blocked: {reason}"}


# ---------------------------------------------------------------------------
# Built-in policy
# ---------------------------------------------------------------------------
TRANSPORT_PATTERN = re.compile(r"^[A-Z]{3}K\d{6}$")
MAX_NAME_LENGTH = 30

NAMING_PATTERNS: Dict[str, re.Pattern] = {
    "program": re.compile(r"^[ZY]", re.IGNORECASE),
    "class": re.compile(r"^[ZY]CL_", re.IGNORECASE),
    "function_module": re.compile(r"^[ZY]_", re.IGNORECASE),
    "interface": re.compile(r"^[ZY]IF_", re.IGNORECASE),
}

_BLOCK_PAIRS = (("IF", "ENDIF"), ("LOOP", "ENDLOOP"), ("DO", "ENDDO"))


class ArtifactPolicy:
    """
    Customer-namespace rules for generated ABAP artifacts.

    Checks run in order: naming convention, transport assignment, control-structure balance.  A
    failed check rejects the artifact; warnings are reported in the summary only.  Under
    ``strict`` naming warnings fail too, under ``permissive`` a missing transport is only a
    warning unless the artifact is configuration.

    Parameters
    ----------
    strictness:
        One of ``strict``, ``moderate`` or ``permissive``.  Unknown values fall back to
        ``moderate``.
    """

    def __init__(self, strictness: str = "moderate") -> None:
        self.strictness = strictness if strictness in STRICTNESS_LEVELS else "moderate"

    def evaluate(self, artifact: Mapping[str, Any]) -> Dict[str, Any]:
        failures: List[Dict[str, str]] = []
        warnings: List[str] = []

        for check in (self._check_naming, self._check_transport, self._check_syntax):
            errors, notes = check(artifact)
            failures.extend({"message": e} for e in errors)
            warnings.extend(notes)

        summary = f"{len(failures)} failure(s), {len(warnings)} warning(s)"
        if warnings:
            summary += ": " + "; ".join(warnings)
        return {"approved": not failures, "failures": failures, "summary": summary}

    def _check_naming(self, artifact: Mapping[str, Any]):
        name = artifact.get("name")
        if not name:
            return ["Artifact name is missing"], []

        errors, warnings = [], []
        kind = artifact.get("type") or DEFAULT_ARTIFACT_TYPE
        pattern = NAMING_PATTERNS.get(kind)
        if pattern and not pattern.match(name):
            errors.append(f'Name "{name}" does not follow Z*/Y* naming convention for type "{kind}"')
        if re.search(r"\s", name):
            errors.append(f'Name "{name}" contains whitespace')
        if len(name) > MAX_NAME_LENGTH:
            errors.append(f'Name "{name}" exceeds {MAX_NAME_LENGTH} character limit ({len(name)} chars)')
        if name != name.upper():
            warnings.append(f'Name "{name}" is not in UPPER_CASE')

        if warnings and self.strictness == "strict":
            return errors + warnings, []
        return errors, warnings

    def _check_transport(self, artifact: Mapping[str, Any]):
        transport = artifact.get("transport")
        if not transport:
            if self.strictness == "permissive" and artifact.get("type") != "configuration":
                return [], ["No transport request assigned"]
            return ["missing transport"], []
        if not TRANSPORT_PATTERN.match(transport):
            return [f'Invalid transport number format: "{transport}" (expected pattern: XXXK######)'], []
        return [], []

    @staticmethod
    def _check_syntax(artifact: Mapping[str, Any]):
        source = artifact.get("source")
        if not source:
            return [], []
        errors = []
        for opener, closer in _BLOCK_PAIRS:
            opened = len(re.findall(rf"\b{opener}\b", source, re.IGNORECASE))
            closed = len(re.findall(rf"\b{closer}\b", source, re.IGNORECASE))
            if opened != closed:
                errors.append(f"Unmatched {opener}/{closer}: {opened} {opener} vs {closed} {closer}")
        return errors, []


def create_safety_gate(enabled: bool = True, strictness: str = "moderate") -> Optional[SafetyGate]:
    """The gate used by live runs: :class:`ArtifactPolicy` at *strictness*, or ``None`` if disabled."""
    if not enabled:
        return None
    return SafetyGate(ArtifactPolicy(strictness))
