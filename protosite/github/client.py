"""Async clients for the GitHub OAuth endpoints and REST API.

Only the handful of operations Protosite needs are wrapped:

* OAuth: build the authorize URL, exchange a callback code for a token.
* REST: resolve the authenticated user, create a repository, look up a
  file's blob SHA, create or update a file.

Both clients use ``httpx.AsyncClient``.  Transport-level failures and
non-success responses surface as :class:`GitHubAPIError` carrying the
provider status code (``None`` when no response was received).

Typical usage::

    async with GitHubClient(token) as gh:
        user = await gh.get_authenticated_user()
        repo = await gh.create_repository("my-site", "Generated site")
"""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from protosite.errors import AuthExchangeError, UpstreamError

API_VERSION = "2022-11-28"
USER_AGENT = "protosite"


class GitHubAPIError(UpstreamError):
    """A GitHub REST call failed."""

    code = "github_error"

    def __init__(self, message: str, response_status: int | None = None) -> None:
        self.response_status = response_status
        super().__init__(message)


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class GitHubOAuthClient:
    """The web application flow of a GitHub OAuth app."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scope: str = "repo",
        oauth_url: str = "https://github.com/login/oauth",
        timeout: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.oauth_url = oauth_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def authorize_url(self, state: str) -> str:
        """Return the URL the user's browser must visit to grant access."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": state,
        }
        return f"{self.oauth_url}/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Trade an authorization *code* for an access token.

        Raises:
            AuthExchangeError: On network failure, a non-2xx response, or a
                2xx response that carries an OAuth ``error`` field.
        """
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    f"{self.oauth_url}/access_token",
                    json=payload,
                    headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise AuthExchangeError(
                f"Token exchange returned HTTP {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthExchangeError(f"Token exchange request failed: {exc}") from exc
        except ValueError as exc:
            raise AuthExchangeError(f"Token exchange returned invalid JSON: {exc}") from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            error = data.get("error_description") or data.get("error") if isinstance(data, dict) else None
            raise AuthExchangeError(f"Token exchange did not return a token: {error or data!r}")
        return token


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------


class GitHubClient:
    """Authenticated GitHub REST client.

    Use as an async context manager so that a whole export shares one
    connection pool.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitHubClient:
        self._http = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": USER_AGENT,
            },
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # -- Internal helpers ---------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allow: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request; statuses in *allow* are returned instead of raised."""
        if self._http is None:
            raise RuntimeError("GitHubClient must be used inside 'async with'")
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise GitHubAPIError(f"{method} {url} timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"{method} {url} failed: {exc}") from exc

        if response.is_success or response.status_code in allow:
            return response
        raise GitHubAPIError(
            f"{method} {url} returned HTTP {response.status_code}: {_error_message(response)}",
            response.status_code,
        )

    @staticmethod
    def _contents_url(owner: str, repo: str, path: str) -> str:
        return f"/repos/{quote(owner)}/{quote(repo)}/contents/{quote(path, safe='/')}"

    # -- Public API ---------------------------------------------------------

    async def get_authenticated_user(self) -> dict[str, Any]:
        response = await self._request("GET", "/user")
        return _json_body(response)

    async def create_repository(
        self,
        name: str,
        description: str = "",
        *,
        org: str | None = None,
        private: bool = False,
    ) -> dict[str, Any]:
        """Create a repository for the user, or inside *org* when given."""
        url = f"/orgs/{quote(org)}/repos" if org else "/user/repos"
        payload = {
            "name": name,
            "description": description,
            "private": private,
            "auto_init": False,
        }
        response = await self._request("POST", url, json=payload)
        return _json_body(response)

    async def get_file_sha(self, owner: str, repo: str, path: str) -> str | None:
        """Return the blob SHA of *path*, or ``None`` if it does not exist."""
        response = await self._request("GET", self._contents_url(owner, repo, path), allow=(404,))
        if response.status_code == 404:
            return None
        data = _json_body(response)
        if isinstance(data, dict):
            return data.get("sha")
        # A list means the path is a directory.
        return None

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """Create *path*, or update it when *sha* names the current blob."""
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha:
            payload["sha"] = sha
        response = await self._request("PUT", self._contents_url(owner, repo, path), json=payload)
        return _json_body(response)


def _json_body(response: httpx.Response) -> Any:
    """Decoded JSON body, or an empty dict when a success response is not JSON."""
    try:
        return response.json()
    except ValueError:
        return {}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(data, dict):
        message = str(data.get("message", ""))
        errors = data.get("errors")
        if errors:
            message = f"{message} {errors}"
        return message[:500]
    return str(data)[:500]
