"""Protosite configuration.

Centralised, typed configuration for the service. All settings use Pydantic
v2 models so they can be validated at construction time and built from
environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

MAX_IMAGE_BYTES = 10 * 1024 * 1024
SESSION_TTL_SECONDS = 600


class GitHubConfig(BaseModel):
    """OAuth application credentials and REST API settings for GitHub."""

    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    callback_url: str = Field(default="", description="Redirect URI registered on the OAuth app")
    scope: str = Field(default="repo")
    api_url: str = Field(default="https://api.github.com")
    oauth_url: str = Field(default="https://github.com/login/oauth")
    timeout: int = Field(default=60, ge=1, description="Per-request timeout in seconds")
    write_delay: float = Field(
        default=0.1, ge=0.0, description="Pause between file writes during export, in seconds"
    )

    @property
    def is_configured(self) -> bool:
        """``True`` when the OAuth app credentials and callback are all set."""
        return bool(self.client_id and self.client_secret and self.callback_url)


class OllamaConfig(BaseModel):
    """Configuration for the local Ollama server."""

    url: str = Field(default="http://localhost:11434")
    vision_model: str = Field(default="qwen2.5vl:7b")
    code_model: str = Field(default="qwen2.5-coder:32b")
    code_model_fallback: str = Field(default="qwen2.5-coder:14b")
    timeout: int = Field(default=600, ge=10, description="Per-request timeout in seconds")


class LimitsConfig(BaseModel):
    """Size and time limits enforced by the request pipeline."""

    max_image_bytes: int = Field(default=MAX_IMAGE_BYTES, ge=1)
    session_ttl: float = Field(default=SESSION_TTL_SECONDS, gt=0)
    fetch_timeout: int = Field(default=60, ge=1)


class ServerConfig(BaseModel):
    """HTTP server binding and CORS policy."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000, ge=1, le=65535)
    allowed_origins: list[str] = Field(
        default_factory=lambda: [
            "https://localhost:5173",
            "http://localhost:5173",
            "http://localhost:3000",
            "https://www.canva.com",
            "https://canva.com",
        ]
    )


class Config(BaseModel):
    """Global Protosite configuration.

    Instances are typically created once by the CLI entry point and then
    handed to :func:`protosite.server.create_app`.
    """

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            GITHUB_CLIENT_ID, GITHUB_CLIENT_SECRET, GITHUB_CALLBACK_URL,
            PROTOSITE_GITHUB_SCOPE, PROTOSITE_GITHUB_WRITE_DELAY,
            OLLAMA_URL, PROTOSITE_VISION_MODEL, PROTOSITE_CODE_MODEL,
            PROTOSITE_CODE_MODEL_FALLBACK,
            PROTOSITE_OLLAMA_TIMEOUT, PROTOSITE_MAX_IMAGE_BYTES,
            PROTOSITE_SESSION_TTL, PROTOSITE_HOST, PROTOSITE_PORT,
            PROTOSITE_ALLOWED_ORIGINS, PROTOSITE_LOG_LEVEL.
        """
        github_kwargs: dict[str, Any] = {}
        if os.environ.get("GITHUB_CLIENT_ID"):
            github_kwargs["client_id"] = os.environ["GITHUB_CLIENT_ID"]
        if os.environ.get("GITHUB_CLIENT_SECRET"):
            github_kwargs["client_secret"] = os.environ["GITHUB_CLIENT_SECRET"]
        if os.environ.get("GITHUB_CALLBACK_URL"):
            github_kwargs["callback_url"] = os.environ["GITHUB_CALLBACK_URL"]
        if os.environ.get("PROTOSITE_GITHUB_SCOPE"):
            github_kwargs["scope"] = os.environ["PROTOSITE_GITHUB_SCOPE"]
        if os.environ.get("PROTOSITE_GITHUB_WRITE_DELAY"):
            github_kwargs["write_delay"] = float(os.environ["PROTOSITE_GITHUB_WRITE_DELAY"])

        ollama_kwargs: dict[str, Any] = {}
        if os.environ.get("OLLAMA_URL"):
            ollama_kwargs["url"] = os.environ["OLLAMA_URL"]
        if os.environ.get("PROTOSITE_VISION_MODEL"):
            ollama_kwargs["vision_model"] = os.environ["PROTOSITE_VISION_MODEL"]
        if os.environ.get("PROTOSITE_CODE_MODEL"):
            ollama_kwargs["code_model"] = os.environ["PROTOSITE_CODE_MODEL"]
        if os.environ.get("PROTOSITE_CODE_MODEL_FALLBACK"):
            ollama_kwargs["code_model_fallback"] = os.environ["PROTOSITE_CODE_MODEL_FALLBACK"]
        if os.environ.get("PROTOSITE_OLLAMA_TIMEOUT"):
            ollama_kwargs["timeout"] = int(os.environ["PROTOSITE_OLLAMA_TIMEOUT"])

        limits_kwargs: dict[str, Any] = {}
        if os.environ.get("PROTOSITE_MAX_IMAGE_BYTES"):
            limits_kwargs["max_image_bytes"] = int(os.environ["PROTOSITE_MAX_IMAGE_BYTES"])
        if os.environ.get("PROTOSITE_SESSION_TTL"):
            limits_kwargs["session_ttl"] = float(os.environ["PROTOSITE_SESSION_TTL"])

        server_kwargs: dict[str, Any] = {}
        if os.environ.get("PROTOSITE_HOST"):
            server_kwargs["host"] = os.environ["PROTOSITE_HOST"]
        if os.environ.get("PROTOSITE_PORT"):
            server_kwargs["port"] = int(os.environ["PROTOSITE_PORT"])
        origins = os.environ.get("PROTOSITE_ALLOWED_ORIGINS", "")
        if origins.strip():
            server_kwargs["allowed_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        return cls(
            github=GitHubConfig(**github_kwargs),
            ollama=OllamaConfig(**ollama_kwargs),
            limits=LimitsConfig(**limits_kwargs),
            server=ServerConfig(**server_kwargs),
            log_level=os.environ.get("PROTOSITE_LOG_LEVEL", "INFO").upper(),
        )
