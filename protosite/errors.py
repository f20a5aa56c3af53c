"""Exception hierarchy shared by every Protosite component.

Each error carries two messages: ``str(exc)`` is the operator-facing detail
that goes to the log, ``user_message`` is what the HTTP layer returns to the
client.  ``status_code`` and ``code`` drive the JSON error body.
"""

from __future__ import annotations

RETRY_MESSAGE = "Something went wrong. Try again shortly."


class ProtositeError(Exception):
    """Base class for all errors raised by Protosite."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class InvalidInputError(ProtositeError):
    """Malformed or missing client input. Never retried."""

    status_code = 400
    code = "invalid_input"


class PayloadTooLargeError(InvalidInputError):
    """The fetched image exceeds the configured size ceiling."""

    code = "payload_too_large"

    def __init__(self, limit_bytes: int) -> None:
        self.limit_bytes = limit_bytes
        megabytes = limit_bytes // (1024 * 1024)
        super().__init__(
            f"Image exceeds the {limit_bytes} byte limit",
            f"File too large. Max. size is {megabytes}MB",
        )


# ---------------------------------------------------------------------------
# Upstream failures (AI capability, image host, GitHub)
# ---------------------------------------------------------------------------


class UpstreamError(ProtositeError):
    """An external collaborator failed. The cause is logged, not returned."""

    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message, user_message or RETRY_MESSAGE)


class FetchFailedError(UpstreamError):
    status_code = 500
    code = "fetch_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message, "Failed to fetch image from URL.")


class DescriptionFailedError(UpstreamError):
    status_code = 500
    code = "description_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message, "Failed to analyze image. Try again shortly.")


class GenerationFailedError(UpstreamError):
    status_code = 500
    code = "generation_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message, "App generation failed. Try again shortly.")


class AuthExchangeError(UpstreamError):
    """GitHub refused or failed to exchange an OAuth code for a token."""

    code = "auth_exchange_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message, "GitHub authorization failed. Try again shortly.")


class FileWriteFailedError(UpstreamError):
    """A file write aborted the export walk.

    The repository exists and holds ``files_written`` files; re-exporting
    into it upserts the remainder.
    """

    code = "file_write_failed"

    def __init__(self, path: str, repo_url: str, files_written: int, cause: str = "") -> None:
        self.path = path
        self.repo_url = repo_url
        self.files_written = files_written
        detail = f"Failed to write {path} to {repo_url} after {files_written} file(s)"
        if cause:
            detail = f"{detail}: {cause}"
        super().__init__(
            detail,
            f"Export stopped while writing {path}. The repository at {repo_url} "
            f"is partially populated; export again to finish it.",
        )


class ExportFailedError(UpstreamError):
    code = "export_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message, "Export to GitHub failed. Try again shortly.")


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthError(ProtositeError):
    """The session or credential is unusable; the client should re-authorize."""

    status_code = 401
    code = "auth_error"


class AuthExpiredError(AuthError):
    """GitHub rejected the token.

    When this interrupts the file walk, ``path``, ``repo_url`` and
    ``files_written`` describe the partially populated repository.
    """

    code = "auth_expired"

    def __init__(
        self,
        message: str = "GitHub rejected the access token",
        *,
        path: str | None = None,
        repo_url: str | None = None,
        files_written: int | None = None,
    ) -> None:
        self.path = path
        self.repo_url = repo_url
        self.files_written = files_written
        user_message = "GitHub authorization expired. Please sign in again."
        if repo_url:
            user_message = (
                f"{user_message} The repository at {repo_url} is partially populated; "
                f"export again to finish it."
            )
        super().__init__(message, user_message)


class InvalidCallbackError(AuthError):
    status_code = 400
    code = "invalid_callback"

    def __init__(self, message: str) -> None:
        super().__init__(message, "Invalid or expired authorization request. Please try again.")


class IntegrationNotConfiguredError(ProtositeError):
    status_code = 500
    code = "not_configured"

    def __init__(self, message: str = "GitHub OAuth credentials are not configured") -> None:
        super().__init__(message, "GitHub integration is not configured on this server.")


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictError(ProtositeError):
    status_code = 409
    code = "conflict"


class NameConflictError(ConflictError):
    code = "name_conflict"

    def __init__(self, repo_name: str) -> None:
        self.repo_name = repo_name
        super().__init__(
            f"Repository {repo_name!r} already exists",
            f"A repository named '{repo_name}' already exists. Choose another name.",
        )
