"""Async client for the local Ollama API.

Wraps the Ollama HTTP API (``/api/generate``, ``/api/tags``) with timeout
handling, structured responses, and automatic model fallback.  All methods
are async so they integrate with the FastAPI request handlers.

Typical usage::

    client = OllamaClient()
    if await client.is_available():
        resp = await client.vision(image_bytes, "Describe this design")
        print(resp.text)
"""

from __future__ import annotations

import base64

import httpx
from pydantic import BaseModel, Field


class OllamaResponse(BaseModel):
    """Structured response from an Ollama generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    duration_ms: float = Field(default=0.0, description="Server-side generation time in ms")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")


class OllamaClient:
    """Async client for the Ollama REST API.

    Generation failures never raise; they come back as an ``OllamaResponse``
    with ``success=False`` and a readable ``error``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        timeout: int = 600,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Pull the generated text out of a /api/generate JSON response."""
        return data.get("response", "")

    @staticmethod
    def _extract_duration_ms(data: dict) -> float:
        """Extract the total generation duration in milliseconds.

        The API returns ``total_duration`` in **nanoseconds**.
        """
        ns = data.get("total_duration", 0)
        return ns / 1_000_000.0

    async def _post_generate(self, payload: dict, model: str, what: str) -> OllamaResponse:
        try:
            async with self._client() as client:
                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
                return OllamaResponse(
                    text=self._extract_text(data),
                    model=data.get("model", model),
                    duration_ms=self._extract_duration_ms(data),
                    success=True,
                )
        except httpx.ConnectError:
            return OllamaResponse(
                model=model,
                success=False,
                error=f"Cannot connect to Ollama at {self.base_url}. Is the server running?",
            )
        except httpx.TimeoutException:
            return OllamaResponse(
                model=model,
                success=False,
                error=f"{what} request to Ollama timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return OllamaResponse(
                model=model,
                success=False,
                error=f"Ollama returned HTTP {exc.response.status_code}: {exc.response.text[:500]}",
            )
        except Exception as exc:  # noqa: BLE001
            return OllamaResponse(
                model=model,
                success=False,
                error=f"Unexpected error during Ollama {what.lower()}: {exc}",
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        model: str = "qwen2.5-coder:32b",
        system: str = "",
        json_output: bool = False,
    ) -> OllamaResponse:
        """Generate text from a prompt.

        Args:
            prompt: The user prompt.
            model: Ollama model tag to use.
            system: Optional system prompt prepended to the context.
            json_output: Ask Ollama to constrain the output to valid JSON.

        Returns:
            An ``OllamaResponse`` with the generated text or an error.
        """
        payload: dict = {
            "model": model,
            "prompt": prompt,
            "stream": False,
        }
        if system:
            payload["system"] = system
        if json_output:
            payload["format"] = "json"
        return await self._post_generate(payload, model, "Generate")

    async def generate_with_fallback(
        self,
        prompt: str,
        primary_model: str = "qwen2.5-coder:32b",
        fallback_model: str = "qwen2.5-coder:14b",
        system: str = "",
        json_output: bool = False,
    ) -> OllamaResponse:
        """Try ``primary_model`` first; on failure fall back to ``fallback_model``."""
        result = await self.generate(
            prompt, model=primary_model, system=system, json_output=json_output
        )
        if result.success or fallback_model == primary_model:
            return result
        return await self.generate(
            prompt, model=fallback_model, system=system, json_output=json_output
        )

    async def vision(
        self,
        image: bytes,
        prompt: str,
        model: str = "qwen2.5vl:7b",
    ) -> OllamaResponse:
        """Analyse raw image bytes with an Ollama vision model.

        The image is base64-encoded for the ``images`` field expected by
        ``/api/generate``.
        """
        if not image:
            return OllamaResponse(model=model, success=False, error="Image is empty")

        payload: dict = {
            "model": model,
            "prompt": prompt,
            "images": [base64.b64encode(image).decode("ascii")],
            "stream": False,
        }
        return await self._post_generate(payload, model, "Vision")

    async def is_available(self) -> bool:
        """Return ``True`` if the Ollama server responds to ``/api/tags``."""
        try:
            async with self._client() as client:
                response = await client.get("/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> list[str]:
        """Return the sorted names of all locally-available models.

        Returns an empty list if the server is unreachable.
        """
        try:
            async with self._client() as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError):
            return []
        models = data.get("models", [])
        return sorted(m.get("name", "") for m in models if m.get("name"))
