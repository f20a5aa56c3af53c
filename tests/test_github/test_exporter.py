"""Tests for the repository exporter (protosite.github.exporter).

Covers:
- Repository name validation
- N file writes plus exactly one README, README strictly last
- Upsert behaviour when files already exist (re-export)
- Failure taxonomy: AuthExpired, NameConflict, FileWriteFailed, ExportFailed
- Abort-on-first-failure ordering
- README failure does not fail the export; a project README is kept
- Inter-file pacing
"""

from __future__ import annotations

import functools
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from protosite.errors import (
    AuthExpiredError,
    ExportFailedError,
    FileWriteFailedError,
    InvalidInputError,
    NameConflictError,
)
from protosite.github.client import GitHubClient
from protosite.github.exporter import README_PATH, RepoExporter, RepoResult, validate_repo_name
from protosite.project.tree import merge

pytestmark = pytest.mark.unit


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def exporter(fake_github, renderer, sleep) -> RepoExporter:
    return RepoExporter(
        client_factory=functools.partial(GitHubClient, transport=fake_github.transport),
        renderer=renderer,
        write_delay=0.1,
        sleep=sleep,
    )


@pytest.fixture
def tree(skeleton, sample_payload):
    return merge(skeleton, sample_payload)


# ---------------------------------------------------------------------------
# validate_repo_name
# ---------------------------------------------------------------------------


class TestValidateRepoName:
    @pytest.mark.parametrize("name", ["site", "my-site_v2.0", "  padded  ", "a" * 100])
    def test_valid(self, name):
        assert validate_repo_name(name) == name.strip()

    @pytest.mark.parametrize("name", ["", "   ", "has space", "slash/name", ".", "..", "a" * 101])
    def test_invalid(self, name):
        with pytest.raises(InvalidInputError):
            validate_repo_name(name)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestExport:
    async def test_writes_every_file_then_readme(self, exporter, fake_github, tree):
        result = await exporter.export("tok", "my-site", "From Canva", tree)

        assert result.owner == "octocat"
        assert result.name == "my-site"
        assert result.html_url == "https://github.com/octocat/my-site"
        assert result.files_written == tree.file_count
        assert result.readme_written is True
        assert fake_github.put_paths() == [*tree.paths(), README_PATH]

    async def test_file_contents_are_published_verbatim(self, exporter, fake_github, tree):
        await exporter.export("tok", "my-site", "", tree)
        for path, contents in tree.iter_files():
            assert fake_github.file_text("octocat/my-site", path) == contents

    async def test_readme_describes_provenance(self, exporter, fake_github, tree):
        await exporter.export("tok", "my-site", "Landing page for Acme", tree)
        readme = fake_github.file_text("octocat/my-site", README_PATH)
        assert readme.startswith("# my-site")
        assert "Landing page for Acme" in readme
        assert "generated by Protosite" in readme
        assert "- `src/components/Nav.jsx`" in readme

    async def test_project_readme_is_kept(self, exporter, fake_github, tree):
        tree.set_file(README_PATH, "# mine\n")
        result = await exporter.export("tok", "my-site", "", tree)
        assert result.readme_written is False
        assert result.files_written == tree.file_count
        assert fake_github.file_text("octocat/my-site", README_PATH) == "# mine\n"
        assert fake_github.put_paths().count(README_PATH) == 1

    async def test_call_order(self, exporter, fake_github, tree):
        await exporter.export("tok", "my-site", "", tree)
        first = [(r.method, r.url.path) for r in fake_github.requests[:2]]
        assert first == [("GET", "/user"), ("POST", "/user/repos")]

    async def test_pacing_between_writes(self, exporter, sleep, tree):
        await exporter.export("tok", "my-site", "", tree)
        # One pause before every write except the first, README included.
        assert sleep.await_count == tree.file_count
        sleep.assert_awaited_with(0.1)

    async def test_owner_hint_for_organisation(self, exporter, fake_github, tree):
        result = await exporter.export("tok", "my-site", "", tree, owner_hint="acme")
        assert result.owner == "acme"
        assert fake_github.requests[1].url.path == "/orgs/acme/repos"
        assert "acme/my-site" in fake_github.repos

    async def test_owner_hint_matching_user_creates_user_repo(self, exporter, fake_github, tree):
        await exporter.export("tok", "my-site", "", tree, owner_hint="OctoCat")
        assert fake_github.requests[1].url.path == "/user/repos"

    async def test_empty_token_rejected_before_network(self, exporter, fake_github, tree):
        with pytest.raises(InvalidInputError):
            await exporter.export("", "my-site", "", tree)
        assert fake_github.requests == []

    async def test_invalid_name_rejected_before_network(self, exporter, fake_github, tree):
        with pytest.raises(InvalidInputError):
            await exporter.export("tok", "bad name", "", tree)
        assert fake_github.requests == []


# ---------------------------------------------------------------------------
# Upsert / re-export
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestUpsert:
    async def test_upload_tree_updates_existing_files(self, exporter, fake_github, tree):
        fake_github.fail_put_paths = {"src/styles/index.css"}
        with pytest.raises(FileWriteFailedError):
            await exporter.export("tok", "my-site", "", tree)

        # Resume into the partially populated repository.
        fake_github.fail_put_paths = set()

        repo = RepoResult(owner="octocat", name="my-site", html_url="https://github.com/octocat/my-site")
        async with GitHubClient("tok", transport=fake_github.transport) as gh:
            written = await exporter.upload_tree(gh, repo, tree)

        assert written == tree.file_count
        for path, contents in tree.iter_files():
            assert fake_github.file_text("octocat/my-site", path) == contents

    async def test_existing_file_sends_sha(self, exporter, fake_github, tree):
        await exporter.export("tok", "my-site", "", tree)

        repo = RepoResult(owner="octocat", name="my-site", html_url="https://github.com/octocat/my-site")
        fake_github.requests.clear()
        async with GitHubClient("tok", transport=fake_github.transport) as gh:
            await exporter.upload_tree(gh, repo, tree)
        puts = [json.loads(r.content) for r in fake_github.requests if r.method == "PUT"]
        assert all("sha" in body for body in puts)
        assert all(body["message"].startswith("Update ") for body in puts)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestFailures:
    async def test_expired_credential(self, exporter, fake_github, tree):
        fake_github.user_status = 401
        with pytest.raises(AuthExpiredError):
            await exporter.export("tok", "my-site", "", tree)
        assert fake_github.repos == {}

    async def test_name_conflict_not_renamed(self, exporter, fake_github, tree):
        fake_github.repos["octocat/my-site"] = {}
        with pytest.raises(NameConflictError) as excinfo:
            await exporter.export("tok", "my-site", "", tree)
        assert excinfo.value.repo_name == "my-site"
        assert list(fake_github.repos) == ["octocat/my-site"]
        assert fake_github.put_paths() == []

    async def test_create_failure_is_export_failed(self, exporter, fake_github, tree):
        fake_github.create_status = 500
        with pytest.raises(ExportFailedError):
            await exporter.export("tok", "my-site", "", tree)

    async def test_kth_write_failure_stops_walk(self, exporter, fake_github, tree):
        paths = tree.paths()
        k = 3
        fake_github.fail_put_paths = {paths[k]}

        with pytest.raises(FileWriteFailedError) as excinfo:
            await exporter.export("tok", "my-site", "", tree)

        err = excinfo.value
        assert err.path == paths[k]
        assert err.files_written == k
        assert err.repo_url == "https://github.com/octocat/my-site"
        assert "partially populated" in err.user_message
        # Writes after K, and the README, are never attempted.
        assert fake_github.put_paths() == paths[: k + 1]

    async def test_write_401_is_auth_expired(self, exporter, fake_github, tree):
        paths = tree.paths()
        k = 3
        fake_github.fail_put_paths = {paths[k]}
        fake_github.put_status = 401

        with pytest.raises(AuthExpiredError) as excinfo:
            await exporter.export("tok", "my-site", "", tree)

        err = excinfo.value
        assert err.path == paths[k]
        assert err.files_written == k
        assert err.repo_url == "https://github.com/octocat/my-site"
        assert "sign in again" in err.user_message
        assert "partially populated" in err.user_message
        assert fake_github.put_paths() == paths[: k + 1]

    async def test_non_json_write_response_counts_as_written(self, exporter, fake_github, tree):
        def plain_text_puts(request):
            response = fake_github.handle(request)
            if request.method == "PUT" and response.status_code == 201:
                return httpx.Response(201, text="Created")
            return response

        exporter.client_factory = functools.partial(
            GitHubClient, transport=httpx.MockTransport(plain_text_puts)
        )
        result = await exporter.export("tok", "my-site", "", tree)
        assert result.files_written == tree.file_count
        assert result.readme_written is True

    async def test_readme_failure_does_not_fail_export(self, exporter, fake_github, tree):
        fake_github.fail_put_paths = {README_PATH}
        result = await exporter.export("tok", "my-site", "", tree)
        assert result.files_written == tree.file_count
        assert result.readme_written is False

    async def test_unexpected_error_wrapped(self, renderer, tree):
        def broken_factory(token: str) -> GitHubClient:
            raise ValueError("bad transport")

        exporter = RepoExporter(client_factory=broken_factory, renderer=renderer, sleep=AsyncMock())
        with pytest.raises(ExportFailedError, match="bad transport"):
            await exporter.export("tok", "my-site", "", tree)
