"""
Core API backend for abapforge.

It exposes the following endpoints:
- **GET /health** - liveness probe, also reports whether the orchestrator runs live or mock.
- **GET /agents** - the agent roles with their command aliases and tools.
- **POST /run**   - run one agent or the whole workflow: {"command": "...", "requirement": "..."}
"""

import logging
from functools import lru_cache
from typing import (
    Dict,
    List,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)

from abapforge.agent.agents import (
    AGENTS,
    WORKFLOW_ORDER,
)
from abapforge.agent.orchestrator import (
    Orchestrator,
    create_orchestrator,
    summarize,
)
from abapforge.api.models import (
    AgentInfo,
    RunRequest,
    RunResponse,
)
from abapforge.common import (
    AnsiColors,
    colored_print,
)
from abapforge.config import settings
from abapforge.core.errors import (
    AbapForgeError,
    AuthenticationError,
    RateLimitError,
    UnknownCommandError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="abapforge API", version="0.1.0", description="ABAP multi-agent workflow API")


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    """One orchestrator per process so breaker, token cache and usage totals are shared."""
    return create_orchestrator()


def _status_for(exc: AbapForgeError) -> int:
    if isinstance(exc, UnknownCommandError):
        return 400
    if isinstance(exc, RateLimitError):
        return 429
    if isinstance(exc, AuthenticationError):
        return 401
    return 502


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok", "mode": orchestrator.mode}


@app.get("/agents", response_model=List[AgentInfo], summary="List agent roles")
async def list_agents() -> List[AgentInfo]:
    """The five roles in workflow order."""
    return [
        AgentInfo(
            role=agent.role,
            name=agent.name,
            command=agent.command,
            description=agent.description,
            tools=list(agent.tools),
        )
        for agent in (AGENTS[role] for role in WORKFLOW_ORDER)
    ]


@app.post("/run", response_model=RunResponse, summary="Run an agent or the workflow")
async def run(req: RunRequest, orchestrator: Orchestrator = Depends(get_orchestrator)) -> RunResponse:
    """Run *command* on *requirement* and return the agent results in order."""
    try:
        outcome = await orchestrator.run(req.command, req.requirement)
    except AbapForgeError as exc:
        logger.warning("Run '%s' failed: %s", req.command, exc)
        raise HTTPException(
            status_code=_status_for(exc), detail={"code": exc.code, "message": exc.message}
        ) from exc

    results = outcome if isinstance(outcome, list) else [outcome]
    summary = summarize(results)
    return RunResponse(mode=orchestrator.mode, results=summary.results, usage=summary.usage)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int | None = None, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server (port defaults to ``API_PORT``).
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the library modules
    import uvicorn  # pylint: disable=import-outside-toplevel

    port = port or settings.API_PORT
    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info("Starting abapforge API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level)
    colored_print(f"abapforge API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "abapforge.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m abapforge.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
