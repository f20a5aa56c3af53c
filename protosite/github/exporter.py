"""Publish a :class:`ProjectTree` to a freshly created GitHub repository.

The export runs in distinct steps, each with its own failure:

1. Resolve the authenticated user (401 -> :class:`AuthExpiredError`).
2. Create the repository (422 -> :class:`NameConflictError`).
3. Walk the tree depth-first and upsert every file, pausing between
   writes.  The first failing write aborts the walk with
   :class:`FileWriteFailedError`.
4. Write ``README.md`` last, unless the project already ships its own
   root README.  A README failure is logged and reported on the result but
   does not fail the export.

Writes are strictly sequential.  Nothing is retried here; because every
write is an upsert, calling :meth:`RepoExporter.upload_tree` again against
a partially populated repository completes it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from protosite.errors import (
    AuthExpiredError,
    ExportFailedError,
    FileWriteFailedError,
    InvalidInputError,
    NameConflictError,
    ProtositeError,
)
from protosite.github.client import GitHubAPIError, GitHubClient
from protosite.project.tree import FileNode, ProjectTree
from protosite.templates import TemplateRenderer

log = logging.getLogger(__name__)

README_PATH = "README.md"
DEFAULT_WRITE_DELAY = 0.1

_REPO_NAME_RE = re.compile(r"^[A-Za-z0-9._-]{1,100}$")

ClientFactory = Callable[[str], GitHubClient]


class RepoResult(BaseModel):
    """Outcome of a successful export."""

    owner: str
    name: str
    html_url: str
    files_written: int = Field(default=0, description="Generated files written, README excluded")
    readme_written: bool = False


def validate_repo_name(name: str) -> str:
    """Return *name* stripped, or raise if GitHub would reject it."""
    candidate = (name or "").strip()
    if not _REPO_NAME_RE.match(candidate) or candidate in (".", ".."):
        raise InvalidInputError(
            f"Invalid repository name {name!r}",
            "Repository names may only contain letters, digits, '.', '-' and '_'.",
        )
    return candidate


class RepoExporter:
    """Creates a repository and populates it file-by-file.

    Args:
        client_factory: Builds a :class:`GitHubClient` from an access token.
        renderer: Renders the provenance README.
        write_delay: Seconds to wait between file writes.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        renderer: TemplateRenderer | None = None,
        write_delay: float = DEFAULT_WRITE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client_factory = client_factory or GitHubClient
        self.renderer = renderer or TemplateRenderer()
        self.write_delay = write_delay
        self._sleep = sleep

    async def export(
        self,
        credential: str,
        repo_name: str,
        description: str,
        tree: ProjectTree,
        owner_hint: str | None = None,
    ) -> RepoResult:
        """Create ``repo_name`` and write every file of *tree* into it."""
        repo_name = validate_repo_name(repo_name)
        if not credential:
            raise InvalidInputError("Missing GitHub access token", "A GitHub token is required.")

        try:
            async with self.client_factory(credential) as gh:
                login = await self._resolve_user(gh)
                org = owner_hint if owner_hint and owner_hint.lower() != login.lower() else None
                repo = await self._create_repository(gh, repo_name, description, org)
                result = RepoResult(
                    owner=repo.get("owner", {}).get("login") or org or login,
                    name=repo.get("name") or repo_name,
                    html_url=repo.get("html_url") or f"https://github.com/{org or login}/{repo_name}",
                )
                log.info("Created repository %s/%s", result.owner, result.name)

                result.files_written = await self.upload_tree(gh, result, tree)
                result.readme_written = await self._write_readme(gh, result, description, tree)
        except ProtositeError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ExportFailedError(f"Unexpected error exporting {repo_name!r}: {exc}") from exc

        log.info(
            "Exported %d file(s) to %s (README written: %s)",
            result.files_written,
            result.html_url,
            result.readme_written,
        )
        return result

    async def upload_tree(self, gh: GitHubClient, repo: RepoResult, tree: ProjectTree) -> int:
        """Upsert every file of *tree* in walk order; return how many were written.

        Raises:
            FileWriteFailedError: On the first failing write. Later files are
                not attempted.
            AuthExpiredError: When GitHub rejects the token mid-walk. Carries
                the same progress fields.
        """
        written = 0
        for path, contents in tree.iter_files():
            if written:
                await self._sleep(self.write_delay)
            try:
                await self._upsert(gh, repo, path, contents, f"Add {path}")
            except GitHubAPIError as exc:
                if exc.response_status == 401:
                    raise AuthExpiredError(
                        str(exc), path=path, repo_url=repo.html_url, files_written=written
                    ) from exc
                raise FileWriteFailedError(path, repo.html_url, written, str(exc)) from exc
            written += 1
            log.debug("Wrote %s (%d)", path, written)
        return written

    # -- Steps ----------------------------------------------------------------

    @staticmethod
    async def _resolve_user(gh: GitHubClient) -> str:
        try:
            user = await gh.get_authenticated_user()
        except GitHubAPIError as exc:
            if exc.response_status == 401:
                raise AuthExpiredError(str(exc)) from exc
            raise ExportFailedError(f"Could not resolve GitHub user: {exc}") from exc
        login = user.get("login")
        if not login:
            raise ExportFailedError(f"GitHub user response has no login: {user!r}")
        return login

    @staticmethod
    async def _create_repository(
        gh: GitHubClient, name: str, description: str, org: str | None
    ) -> dict:
        try:
            return await gh.create_repository(name, description, org=org)
        except GitHubAPIError as exc:
            if exc.response_status == 401:
                raise AuthExpiredError(str(exc)) from exc
            if exc.response_status == 422:
                raise NameConflictError(name) from exc
            raise ExportFailedError(f"Could not create repository {name!r}: {exc}") from exc

    @staticmethod
    async def _upsert(
        gh: GitHubClient, repo: RepoResult, path: str, contents: str, message: str
    ) -> None:
        sha = await gh.get_file_sha(repo.owner, repo.name, path)
        if sha:
            message = message.replace("Add ", "Update ", 1)
        await gh.put_file(repo.owner, repo.name, path, contents, message, sha=sha)

    async def _write_readme(
        self, gh: GitHubClient, repo: RepoResult, description: str, tree: ProjectTree
    ) -> bool:
        if isinstance(tree.get(README_PATH), FileNode):
            log.info("Project has its own %s; skipping the generated one", README_PATH)
            return False
        if repo.files_written:
            await self._sleep(self.write_delay)
        readme = self.renderer.render(
            "export/README.md.j2",
            {
                "repo_name": repo.name,
                "description": description,
                "exported_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
                "file_count": repo.files_written,
                "paths": tree.paths(),
            },
        )
        try:
            await self._upsert(gh, repo, README_PATH, readme, "Add README")
        except GitHubAPIError as exc:
            log.warning("README write to %s failed: %s", repo.html_url, exc)
            return False
        return True
