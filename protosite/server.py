"""FastAPI boundary for the Canva plugin.

Routes (all under ``/protosite`` except the health banner):

* ``POST /upload``              generate a project from a design image URL
* ``GET  /project``             the current project in WebContainer format
* ``POST /github/auth``         start GitHub authorization
* ``GET  /github/callback``     OAuth redirect target, renders an HTML page
* ``POST /github/auth/status``  poll an authorization attempt
* ``POST /github/export``       publish a project to a new repository

Every piece of mutable state lives in one :class:`ProtositeService` stored on
``app.state``; handlers reach it through a dependency.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from protosite.ai.designer import DesignAssistant, DesignCapability
from protosite.ai.ollama_client import OllamaClient
from protosite.auth.flow import AuthorizationFlow
from protosite.auth.sessions import SessionState, SessionStore
from protosite.config import Config
from protosite.errors import RETRY_MESSAGE, InvalidInputError, ProtositeError
from protosite.github.client import GitHubClient, GitHubOAuthClient
from protosite.github.exporter import RepoExporter
from protosite.pipeline import GenerationPipeline
from protosite.project.tree import ProjectTree
from protosite.templates import TemplateRenderer

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Service container
# ---------------------------------------------------------------------------


class ProtositeService:
    """Owns the current project, the session table and the collaborators."""

    def __init__(
        self,
        config: Config,
        pipeline: GenerationPipeline,
        auth: AuthorizationFlow,
        exporter: RepoExporter,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.config = config
        self.pipeline = pipeline
        self.auth = auth
        self.exporter = exporter
        self.renderer = renderer or TemplateRenderer()

    @classmethod
    def from_config(
        cls, config: Config, designer: DesignCapability | None = None
    ) -> ProtositeService:
        renderer = TemplateRenderer()
        if designer is None:
            designer = DesignAssistant(
                OllamaClient(base_url=config.ollama.url, timeout=config.ollama.timeout),
                vision_model=config.ollama.vision_model,
                code_model=config.ollama.code_model,
                code_model_fallback=config.ollama.code_model_fallback,
            )

        gh = config.github
        oauth = None
        if gh.is_configured:
            oauth = GitHubOAuthClient(
                gh.client_id,
                gh.client_secret,
                gh.callback_url,
                scope=gh.scope,
                oauth_url=gh.oauth_url,
                timeout=gh.timeout,
            )
        else:
            log.warning("GitHub OAuth is not configured; export authorization is disabled")

        return cls(
            config=config,
            pipeline=GenerationPipeline(designer, config.limits, renderer),
            auth=AuthorizationFlow(oauth, SessionStore(ttl=config.limits.session_ttl)),
            exporter=RepoExporter(
                client_factory=functools.partial(
                    GitHubClient, api_url=gh.api_url, timeout=gh.timeout
                ),
                renderer=renderer,
                write_delay=gh.write_delay,
            ),
            renderer=renderer,
        )


def get_service(request: Request) -> ProtositeService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UploadRequest(_Body):
    image_url: Any = Field(default=None, alias="imageUrl")


class StatusRequest(_Body):
    state: Any = None


class ExportRequest(_Body):
    token: Any = None
    project_data: Any = Field(default=None, alias="projectData")
    repo_name: Any = Field(default=None, alias="repoName")
    description: Any = ""
    owner: Any = None


def _require_str(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"Missing or invalid {field}", f"'{field}' is required.")
    return value.strip()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter(prefix="/protosite")


@router.post("/upload")
async def upload(body: UploadRequest, service: ProtositeService = Depends(get_service)):
    """Generate a project from the design image at ``imageUrl``."""
    log.info("POST /protosite/upload")
    project = await service.pipeline.generate_from_url(body.image_url)
    return {
        "success": True,
        "message": "File processed successfully",
        "project": project.to_webcontainer(),
    }


@router.get("/project")
async def current_project(service: ProtositeService = Depends(get_service)):
    return {"app": service.pipeline.current_project.to_webcontainer()}


@router.post("/github/auth")
async def github_auth(service: ProtositeService = Depends(get_service)):
    start = await service.auth.initiate()
    return {"authUrl": start.auth_url, "state": start.state}


@router.get("/github/callback", response_class=HTMLResponse)
async def github_callback(
    code: str | None = None,
    state: str | None = None,
    service: ProtositeService = Depends(get_service),
):
    """OAuth redirect target; always answers with a human-readable page."""
    try:
        await service.auth.complete_callback(code, state)
    except ProtositeError as exc:
        _log_error(exc)
        page = service.renderer.render(
            "pages/callback.html.j2",
            {"success": False, "title": "Authorization Failed", "message": exc.user_message},
        )
        return HTMLResponse(page, status_code=exc.status_code)

    page = service.renderer.render(
        "pages/callback.html.j2",
        {
            "success": True,
            "title": "Authorization Successful",
            "message": "GitHub is now connected to Protosite.",
        },
    )
    return HTMLResponse(page)


@router.post("/github/auth/status")
async def github_auth_status(body: StatusRequest, service: ProtositeService = Depends(get_service)):
    state = _require_str(body.state, "state")
    status = await service.auth.poll_status(state)
    match status.state:
        case SessionState.NOT_FOUND:
            return JSONResponse(
                {"authenticated": False, "error": "Unknown authorization state."}, status_code=404
            )
        case SessionState.EXPIRED:
            return JSONResponse(
                {"authenticated": False, "error": "Authorization expired. Please try again."},
                status_code=410,
            )
        case SessionState.AUTHORIZED:
            return {"authenticated": True, "token": status.credential}
        case _:
            return {"authenticated": False}


@router.post("/github/export")
async def github_export(body: ExportRequest, service: ProtositeService = Depends(get_service)):
    """Create a repository and publish the supplied project into it."""
    token = _require_str(body.token, "token")
    repo_name = _require_str(body.repo_name, "repoName")
    if body.project_data is None:
        raise InvalidInputError("Missing projectData", "'projectData' is required.")
    tree = ProjectTree.from_webcontainer(body.project_data)
    description = body.description if isinstance(body.description, str) else ""
    owner = body.owner if isinstance(body.owner, str) and body.owner.strip() else None

    log.info("POST /protosite/github/export repo=%s files=%d", repo_name, tree.file_count)
    result = await service.exporter.export(token, repo_name, description, tree, owner_hint=owner)
    return {
        "success": True,
        "repoUrl": result.html_url,
        "filesWritten": result.files_written,
        "readmeWritten": result.readme_written,
    }


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


def _log_error(exc: ProtositeError) -> None:
    if exc.status_code >= 500:
        log.error("%s: %s", type(exc).__name__, exc, exc_info=exc)
    else:
        log.warning("%s: %s", type(exc).__name__, exc)


async def _handle_protosite_error(request: Request, exc: ProtositeError) -> JSONResponse:
    _log_error(exc)
    body: dict[str, Any] = {"success": False, "error": exc.user_message, "code": exc.code}
    for attr, key in (("path", "path"), ("repo_url", "repoUrl"), ("files_written", "filesWritten")):
        value = getattr(exc, attr, None)
        if value is not None:
            body[key] = value
    return JSONResponse(body, status_code=exc.status_code)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = InvalidInputError(
        f"Invalid request body on {request.url.path}: {exc.errors()}",
        "Request body is missing or malformed.",
    )
    return await _handle_protosite_error(request, error)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        {"success": False, "error": RETRY_MESSAGE, "code": "internal_error"}, status_code=500
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: Config | None = None, service: ProtositeService | None = None) -> FastAPI:
    """Build the FastAPI application around a single service instance."""
    config = config or (service.config if service else Config.from_env())
    service = service or ProtositeService.from_config(config)

    app = FastAPI(title="Protosite", description="Canva design to Vite + React exporter")
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ProtositeError, _handle_protosite_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)

    @app.get("/")
    async def health():
        return {
            "message": "Protosite up and running!!",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(router)
    return app
