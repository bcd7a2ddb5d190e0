"""FastAPI self-test service.

Gives a configuration UI something to call before a job is saved:
- GET  /health          - liveness check
- GET  /credentials     - credential ids available for the drop-down
- POST /test-connection - authenticate with a credential against an endpoint

Tokens are never returned by any endpoint.

To run locally:
    git-status-wrapper serve --port 8000
    # or: uvicorn git_status_wrapper.main:app --reload --port 8000
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from git_status_wrapper import __version__
from git_status_wrapper.config import load_settings
from git_status_wrapper.credentials import default_store
from git_status_wrapper.errors import ConfigError, GitStatusWrapperError
from git_status_wrapper.github import check_connection
from git_status_wrapper.logging_config import get_logger, setup_logging
from git_status_wrapper.schemas import ConnectionCheck

logger = get_logger(__name__)


class ConnectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    credentials_id: str = Field("", alias="credentialsId")
    git_api_url: str = Field("", alias="gitApiUrl")


class CredentialItem(BaseModel):
    id: str
    description: str = ""


# ---------------------------------------------------------------------------
# Application Lifespan (startup/shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load settings and the credential store once at startup."""
    settings = load_settings(os.environ.get("GIT_STATUS_WRAPPER_SETTINGS"), os.environ)
    setup_logging(settings.environment, settings.log_level)
    app.state.settings = settings
    app.state.store = default_store(settings.credentials_file)
    yield


app = FastAPI(
    title="Git Status Wrapper",
    description="Connectivity self-test for the git status wrapper",
    version=__version__,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("config_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": "config_error", "detail": str(exc)},
    )


@app.exception_handler(GitStatusWrapperError)
async def wrapper_error_handler(request: Request, exc: GitStatusWrapperError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/credentials", response_model=list[CredentialItem])
async def list_credentials(request: Request) -> list[CredentialItem]:
    """Credential ids the wrapper can use, without their secrets."""
    return [
        CredentialItem(id=credential.id, description=credential.description)
        for credential in request.app.state.store.list()
    ]


@app.post("/test-connection", response_model=ConnectionCheck)
async def run_connection_check(body: ConnectionRequest, request: Request) -> ConnectionCheck:
    """Try to authenticate with the given credentials id.

    Always answers 200; the outcome is in the ``ok`` field, matching what a
    form validation call expects.
    """
    settings = request.app.state.settings
    result = await check_connection(
        body.credentials_id,
        body.git_api_url or settings.api_url,
        request.app.state.store,
        proxy=settings.proxy,
    )
    logger.info(
        "connection_checked",
        credentials_id=body.credentials_id,
        ok=result.ok,
    )
    return result
