"""Shared pytest fixtures for the Protosite test suite.

Provides reusable fixtures for:
- The template renderer and a fresh project skeleton
- A sample generation payload
- A controllable clock for session expiry
- A fake design capability
- An in-memory fake of the GitHub REST/OAuth API served through
  ``httpx.MockTransport``
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

import httpx
import pytest

from protosite.errors import DescriptionFailedError
from protosite.project.tree import GenerationPayload, ProjectTree
from protosite.templates import TemplateRenderer

# A minimal valid PNG header followed by filler bytes.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


# ---------------------------------------------------------------------------
# Project fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def skeleton(renderer: TemplateRenderer) -> ProjectTree:
    return ProjectTree.initialize(renderer)


@pytest.fixture
def sample_payload() -> GenerationPayload:
    """The generation output for a one-page site with a nav bar."""
    return GenerationPayload(
        components={"Nav.jsx": "export default function Nav() { return <nav />; }\n"},
        styles={"index.css": "body { margin: 0; }\n"},
        pages={"main.jsx": "import './styles/index.css';\n"},
    )


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """A monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Design capability
# ---------------------------------------------------------------------------


class FakeDesigner:
    """Records calls and returns canned results, or raises a configured error."""

    def __init__(
        self,
        payload: GenerationPayload | None = None,
        describe_error: Exception | None = None,
        generate_error: Exception | None = None,
    ) -> None:
        self.payload = payload or GenerationPayload(pages={"main.jsx": "// app"})
        self.describe_error = describe_error
        self.generate_error = generate_error
        self.images: list[bytes] = []
        self.descriptions: list[str] = []

    async def describe_image(self, image: bytes) -> str:
        self.images.append(image)
        if self.describe_error:
            raise self.describe_error
        return "A landing page with a navigation bar."

    async def generate_project(self, description: str) -> GenerationPayload:
        self.descriptions.append(description)
        if self.generate_error:
            raise self.generate_error
        return self.payload


@pytest.fixture
def fake_designer(sample_payload: GenerationPayload) -> FakeDesigner:
    return FakeDesigner(payload=sample_payload)


@pytest.fixture
def failing_designer() -> FakeDesigner:
    return FakeDesigner(describe_error=DescriptionFailedError("vision model offline"))


# ---------------------------------------------------------------------------
# Fake GitHub
# ---------------------------------------------------------------------------


def _sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FakeGitHub:
    """In-memory stand-in for the parts of GitHub Protosite talks to.

    Knobs:
        user_status: HTTP status for ``GET /user``.
        create_status: HTTP status for repository creation.
        fail_put_paths: File paths whose ``PUT`` fails with ``put_status``.
        token_response: JSON body returned by the OAuth token endpoint.
    """

    def __init__(self) -> None:
        self.login = "octocat"
        self.user_status = 200
        self.create_status = 201
        self.put_status = 500
        self.fail_put_paths: set[str] = set()
        self.token_response: dict[str, Any] = {"access_token": "gho_test_token", "token_type": "bearer"}
        self.token_status = 200
        self.requests: list[httpx.Request] = []
        self.repos: dict[str, dict[str, bytes]] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -- Inspection helpers --------------------------------------------------

    def put_paths(self) -> list[str]:
        """Paths of every file PUT, in request order."""
        return [
            r.url.path.split("/contents/", 1)[1]
            for r in self.requests
            if r.method == "PUT"
        ]

    def file_text(self, full_name: str, path: str) -> str:
        return self.repos[full_name][path].decode("utf-8")

    # -- Request handling ----------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/login/oauth/access_token"):
            return httpx.Response(self.token_status, json=self.token_response)
        if request.method == "GET" and path == "/user":
            if self.user_status != 200:
                return httpx.Response(self.user_status, json={"message": "Bad credentials"})
            return httpx.Response(200, json={"login": self.login})
        if request.method == "POST" and (path == "/user/repos" or path.startswith("/orgs/")):
            return self._create_repo(request)
        if "/contents/" in path:
            return self._contents(request)
        return httpx.Response(404, json={"message": "Not Found"})

    def _create_repo(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        owner = request.url.path.split("/")[2] if request.url.path.startswith("/orgs/") else self.login
        full_name = f"{owner}/{body['name']}"
        if self.create_status != 201:
            return httpx.Response(self.create_status, json={"message": "Request failed"})
        if full_name in self.repos:
            return httpx.Response(
                422,
                json={
                    "message": "Repository creation failed.",
                    "errors": [{"message": "name already exists on this account"}],
                },
            )
        self.repos[full_name] = {}
        return httpx.Response(
            201,
            json={
                "name": body["name"],
                "full_name": full_name,
                "owner": {"login": owner},
                "html_url": f"https://github.com/{full_name}",
            },
        )

    def _contents(self, request: httpx.Request) -> httpx.Response:
        repo_part, file_path = request.url.path.split("/contents/", 1)
        _, _, owner, repo = repo_part.split("/")
        files = self.repos.get(f"{owner}/{repo}")
        if files is None:
            return httpx.Response(404, json={"message": "Not Found"})

        if request.method == "GET":
            if file_path not in files:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"path": file_path, "sha": _sha(files[file_path])})

        if file_path in self.fail_put_paths:
            return httpx.Response(self.put_status, json={"message": "Server Error"})
        body = json.loads(request.content)
        if file_path in files and body.get("sha") != _sha(files[file_path]):
            return httpx.Response(409, json={"message": "sha does not match"})
        files[file_path] = base64.b64decode(body["content"])
        return httpx.Response(
            201, json={"content": {"path": file_path, "sha": _sha(files[file_path])}}
        )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def designer_factory() -> type[FakeDesigner]:
    """The ``FakeDesigner`` class, for tests that need custom failures."""
    return FakeDesigner


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    return JPEG_BYTES
