"""
abapforge entry point.

This file handles startup concerns (arg-parsing, logging) and either runs one command against the
orchestrator or launches the REST API.
"""

import argparse
import asyncio
import logging
import sys

from abapforge.agent.agents import (
    WORKFLOW_COMMAND,
    get_commands,
)
from abapforge.agent.orchestrator import (
    Orchestrator,
    create_orchestrator,
)
from abapforge.common import (
    AnsiColors,
    colored_print,
    render_terminal,
)
from abapforge.config import settings
from abapforge.core.errors import AbapForgeError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Quiet the HTTP client libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the abapforge ABAP development agents")
    parser.add_argument(
        "command",
        nargs="?",
        choices=[*get_commands(), WORKFLOW_COMMAND],
        help="Agent command, or 'workflow' for all five agents in order",
    )
    parser.add_argument("requirement", nargs="*", help="The development requirement")
    parser.add_argument(
        "--mode",
        choices=["cli", "api"],
        type=str.lower,
        default="cli",
        help="Run one command (cli) or serve the REST API (api) (default: cli)",
    )
    parser.add_argument(
        "--format",
        choices=["terminal", "md"],
        type=str.lower,
        default="terminal",
        help="Output format for cli mode (default: terminal)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


async def _run_once(orchestrator: Orchestrator, command: str, requirement: str):
    try:
        return await orchestrator.run(command, requirement)
    finally:
        await orchestrator.aclose()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the abapforge application.

    In cli mode the command runs once and its results are printed; in api mode the FastAPI service
    is started.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    if args.mode == "api":
        # Lazy import so cli runs never touch the web stack
        from abapforge.api.app import run_api  # pylint: disable=import-outside-toplevel

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    requirement = " ".join(args.requirement).strip()
    if not args.command or not requirement:
        parser.error("a command and a requirement are required in cli mode")

    orchestrator = create_orchestrator()
    logger.info("Running '%s' [%s mode]", args.command, orchestrator.mode)

    try:
        outcome = asyncio.run(_run_once(orchestrator, args.command, requirement))
    except AbapForgeError as exc:
        colored_print(f"Error [{exc.code}]: {exc.message}", AnsiColors.RED)
        sys.exit(1)

    results = outcome if isinstance(outcome, list) else [outcome]
    for result in results:
        print(result.to_markdown() if args.format == "md" else render_terminal(result))

    total = orchestrator.usage_tracker.total
    if total.total_tokens:
        colored_print(
            f"Tokens: {total.input_tokens} input / {total.output_tokens} output", AnsiColors.YELLOW
        )


if __name__ == "__main__":
    main()
