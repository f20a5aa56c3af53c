"""Generation pipeline: design image in, project tree out.

Steps, in order:

1. Fetch the image from the URL handed over by the Canva plugin, enforcing
   the size ceiling while streaming.
2. Ask the design capability for a description of the image.
3. Ask it to generate the project files from that description.
4. Merge the generated files into a fresh skeleton and keep the result as
   the current project.

A failure in either AI step surfaces as a single
:class:`~protosite.errors.GenerationFailedError`; partial output is never
merged.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from protosite.ai.designer import DesignCapability, detect_image_type
from protosite.config import LimitsConfig
from protosite.errors import (
    FetchFailedError,
    GenerationFailedError,
    InvalidInputError,
    PayloadTooLargeError,
)
from protosite.project.tree import ProjectTree, merge
from protosite.templates import TemplateRenderer
from protosite.utils import format_duration

log = logging.getLogger(__name__)


def validate_image_url(image_url: object) -> str:
    """Return *image_url* if it is an absolute http(s) URL, else raise."""
    if not isinstance(image_url, str) or not image_url.strip():
        raise InvalidInputError("imageUrl is missing or not a string", "Malformed or invalid URL.")
    try:
        url = httpx.URL(image_url.strip())
    except httpx.InvalidURL as exc:
        raise InvalidInputError(f"Unparseable imageUrl: {exc}", "Malformed or invalid URL.") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidInputError(f"Unsupported imageUrl {image_url!r}", "Malformed or invalid URL.")
    return str(url)


class GenerationPipeline:
    """Owns the current project and produces new ones from design images.

    Attributes:
        designer: The AI capability that describes and generates.
        limits: Image size ceiling and fetch timeout.
    """

    def __init__(
        self,
        designer: DesignCapability,
        limits: LimitsConfig | None = None,
        renderer: TemplateRenderer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.designer = designer
        self.limits = limits or LimitsConfig()
        self.renderer = renderer or TemplateRenderer()
        self._transport = transport
        self._project = ProjectTree.initialize(self.renderer)
        self._lock = asyncio.Lock()

    @property
    def current_project(self) -> ProjectTree:
        """The most recently generated project (the bare skeleton before any)."""
        return self._project

    async def fetch_image(self, image_url: str) -> bytes:
        """Download *image_url*, aborting as soon as it exceeds the size limit.

        Raises:
            InvalidInputError: The URL is malformed.
            PayloadTooLargeError: The image is larger than the limit.
            FetchFailedError: Network error or non-2xx response.
        """
        url = validate_image_url(image_url)
        limit = self.limits.max_image_bytes
        buffer = bytearray()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.limits.fetch_timeout, connect=10.0),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise FetchFailedError(
                            f"Image host returned HTTP {response.status_code} for {url}"
                        )
                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > limit:
                        raise PayloadTooLargeError(limit)
                    async for chunk in response.aiter_bytes():
                        buffer.extend(chunk)
                        if len(buffer) > limit:
                            raise PayloadTooLargeError(limit)
        except httpx.HTTPError as exc:
            raise FetchFailedError(f"Could not fetch image {url}: {exc}") from exc
        return bytes(buffer)

    async def generate(self, image: bytes) -> ProjectTree:
        """Describe, generate and merge; the result becomes the current project."""
        if len(image) > self.limits.max_image_bytes:
            raise PayloadTooLargeError(self.limits.max_image_bytes)
        mime_type = detect_image_type(image)
        if mime_type is None:
            log.warning("Unrecognised image signature; treating it as image/jpeg")
            mime_type = "image/jpeg"

        start = time.monotonic()
        log.info("Generating project from %s image (%d bytes)", mime_type, len(image))
        try:
            description = await self.designer.describe_image(image)
            payload = await self.designer.generate_project(description)
        except GenerationFailedError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise GenerationFailedError(f"{type(exc).__name__}: {exc}") from exc

        project = merge(ProjectTree.initialize(self.renderer), payload)
        async with self._lock:
            self._project = project
        log.info(
            "Generated project with %d file(s) in %s",
            project.file_count,
            format_duration(time.monotonic() - start),
        )
        return project

    async def generate_from_url(self, image_url: str) -> ProjectTree:
        image = await self.fetch_image(image_url)
        return await self.generate(image)
