"""Turn a design image into generated Vite + React source files.

Two model calls, run in order:

1. :meth:`DesignAssistant.describe_image` asks a vision model for a very
   detailed textual description of the design.
2. :meth:`DesignAssistant.generate_project` asks a code model to turn that
   description into a JSON object with ``components``, ``styles`` and
   ``pages`` sections, each mapping a filename to the full file text.

Only the top-level shape of the generated JSON is validated; the code itself
is taken verbatim.
"""

from __future__ import annotations

import json
import logging
import re
import textwrap
from typing import Any, Protocol

from pydantic import ValidationError

from protosite.ai.ollama_client import OllamaClient
from protosite.errors import DescriptionFailedError, GenerationFailedError
from protosite.project.tree import GenerationPayload

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

DESCRIBE_PROMPT = textwrap.dedent("""\
    The image is a complete web page designed in Canva.  It will be rebuilt
    as a Vite + React + CSS project, so describe it in as much detail as
    possible.  Cover:

    1. The overall layout and every section, top to bottom
    2. Colours, gradients and visual hierarchy
    3. Typography: font families, sizes, weights and styles
    4. Placement of every element and the spacing between them
    5. Interactive elements such as buttons, links and forms
    6. How the layout should adapt to smaller screens
    7. Every image or icon and what it depicts
    8. Navigation structure
    9. Borders, shadows, radii and other styling details

    Quote all visible text word for word.  Give concrete measurements,
    colour values and positions wherever you can.
""")

GENERATE_SYSTEM = textwrap.dedent("""\
    You turn a description of a web page design into a complete Vite + React
    project that reproduces that exact design, not a generic template.

    Respond ONLY with a JSON object (no markdown fencing, no commentary) of
    this shape:
    {
      "components": {"<Name>.jsx": "<file contents>"},
      "pages": {"<name>.jsx": "<file contents>"},
      "styles": {"<name>.css": "<file contents>"}
    }

    The project already has this index.html; pick web fonts that match the
    design and assume they are loaded there:
    <link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;600&display=swap" rel="stylesheet" />
    <div id="root"></div>
    <script type="module" src="/src/main.jsx"></script>

    Rules:
    - Target Vite 5+ and Node.js 18+.
    - Pages live in src/, components in src/components/, styles in src/styles/.
    - "pages" must contain main.jsx with the ReactDOM root render call.
    - "styles" must contain index.css as the global stylesheet.
    - Import components from main.jsx as ./components/<Name> and styles as
      ./styles/<name>.css; components import styles as ../styles/<name>.css.
    - The page must be fully responsive; use Flexbox or Grid for layout.
    - Use semantic HTML and a proper heading hierarchy.
    - Add hover states and transitions to interactive elements.
    - There is no assets folder: use images from well-known public image
      libraries and add beginner-friendly comments saying where to swap in
      real images and logos.
""")

GENERATE_PROMPT = "Create the Vite + React website for this design description:\n\n{description}"


# ---------------------------------------------------------------------------
# Capability protocol
# ---------------------------------------------------------------------------


class DesignCapability(Protocol):
    """The two AI operations the generation pipeline depends on."""

    async def describe_image(self, image: bytes) -> str: ...

    async def generate_project(self, description: str) -> GenerationPayload: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def detect_image_type(data: bytes) -> str | None:
    """Return the MIME type for PNG or JPEG magic bytes, else ``None``."""
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:4] == b"\x89PNG":
        return "image/png"
    return None


def parse_json_response(raw: str) -> Any:
    """Best-effort extraction of the first JSON object from *raw*.

    LLM responses sometimes include markdown fences or preamble text; this
    helper strips those away before parsing.  Returns ``None`` when nothing
    parses.
    """
    cleaned = re.sub(r"```(?:json)?\s*", "", raw)
    cleaned = cleaned.strip().rstrip("`").strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    return None


# ---------------------------------------------------------------------------
# DesignAssistant
# ---------------------------------------------------------------------------


class DesignAssistant:
    """Ollama-backed implementation of :class:`DesignCapability`."""

    def __init__(
        self,
        client: OllamaClient,
        vision_model: str = "qwen2.5vl:7b",
        code_model: str = "qwen2.5-coder:32b",
        code_model_fallback: str = "qwen2.5-coder:14b",
    ) -> None:
        self.client = client
        self.vision_model = vision_model
        self.code_model = code_model
        self.code_model_fallback = code_model_fallback

    async def describe_image(self, image: bytes) -> str:
        """Return a detailed description of the design in *image*.

        Raises:
            DescriptionFailedError: The vision call failed or returned no text.
        """
        response = await self.client.vision(image, DESCRIBE_PROMPT, model=self.vision_model)
        if not response.success:
            raise DescriptionFailedError(response.error or "Vision model call failed")
        text = response.text.strip()
        if not text:
            raise DescriptionFailedError(f"{response.model} returned an empty description")
        log.info("Described design with %s (%.0f ms)", response.model, response.duration_ms)
        return text

    async def generate_project(self, description: str) -> GenerationPayload:
        """Generate the project files for *description*.

        Raises:
            GenerationFailedError: The model call failed, the output is not
                JSON, a section has the wrong shape, or no section is present.
        """
        response = await self.client.generate_with_fallback(
            GENERATE_PROMPT.format(description=description),
            primary_model=self.code_model,
            fallback_model=self.code_model_fallback,
            system=GENERATE_SYSTEM,
            json_output=True,
        )
        if not response.success:
            raise GenerationFailedError(response.error or "Code model call failed")

        data = parse_json_response(response.text)
        if not isinstance(data, dict):
            raise GenerationFailedError(
                f"{response.model} returned output that is not a JSON object: {response.text[:200]!r}"
            )
        try:
            payload = GenerationPayload.model_validate(data)
        except ValidationError as exc:
            raise GenerationFailedError(f"Generated project has the wrong shape: {exc}") from exc

        if all(files is None for files in payload.sections().values()):
            raise GenerationFailedError(
                f"{response.model} output has none of components/styles/pages: {sorted(data)}"
            )
        log.info(
            "Generated %d file(s) with %s (%.0f ms)",
            sum(len(files or {}) for files in payload.sections().values()),
            response.model,
            response.duration_ms,
        )
        return payload
