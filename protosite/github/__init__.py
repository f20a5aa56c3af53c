"""GitHub REST/OAuth clients and the repository exporter.

Quick usage::

    from protosite.github import RepoExporter

    result = await RepoExporter().export(token, "my-site", "From Canva", tree)
    print(result.html_url)
"""

from protosite.github.client import GitHubAPIError, GitHubClient, GitHubOAuthClient
from protosite.github.exporter import RepoExporter, RepoResult, validate_repo_name

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubOAuthClient",
    "RepoExporter",
    "RepoResult",
    "validate_repo_name",
]
