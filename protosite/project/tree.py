"""In-memory project tree for generated Vite + React projects.

A project is a root :class:`DirectoryNode` whose entries are either files or
further directories.  Entries keep insertion order so that exporting a tree
always writes files in the same sequence.

The tree converts to and from the WebContainer file-system layout::

    {
        "package.json": {"file": {"contents": "..."}},
        "src": {"directory": {"main.jsx": {"file": {"contents": "..."}}}},
    }
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter, ValidationError

from protosite.errors import InvalidInputError
from protosite.templates import TemplateRenderer

log = logging.getLogger(__name__)

PAGE_ROOT = "src"
ENTRY_POINT = f"{PAGE_ROOT}/main.jsx"

# Where each generated section lands, relative to the project root.
SECTION_ROOTS: dict[str, tuple[str, ...]] = {
    "components": (PAGE_ROOT, "components"),
    "styles": (PAGE_ROOT, "styles"),
    "pages": (PAGE_ROOT,),
}

SKELETON_FILES: dict[str, str] = {
    "package.json": "skeleton/package.json.j2",
    "vite.config.js": "skeleton/vite.config.js.j2",
    "index.html": "skeleton/index.html.j2",
}


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class FileNode(BaseModel):
    """A leaf holding the full text of one file."""

    kind: Literal["file"] = "file"
    contents: str = ""


class DirectoryNode(BaseModel):
    """A directory whose entries are kept in insertion order."""

    kind: Literal["directory"] = "directory"
    entries: dict[str, ProjectNode] = Field(default_factory=dict)


ProjectNode = Annotated[Union[FileNode, DirectoryNode], Field(discriminator="kind")]

DirectoryNode.model_rebuild()


# ---------------------------------------------------------------------------
# Generation payload
# ---------------------------------------------------------------------------

_Section = dict[StrictStr, StrictStr]
_section_adapter: TypeAdapter[dict[str, str]] = TypeAdapter(_Section)


class GenerationPayload(BaseModel):
    """The three file mappings produced by the content-generation model.

    Each section maps a filename to the full text of that file.  A section
    the model did not produce is ``None``.
    """

    model_config = ConfigDict(extra="ignore")

    components: _Section | None = None
    styles: _Section | None = None
    pages: _Section | None = None

    def sections(self) -> dict[str, dict[str, str] | None]:
        return {"components": self.components, "styles": self.styles, "pages": self.pages}


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def _check_name(name: str, where: str) -> None:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise InvalidInputError(
            f"Invalid entry name {name!r} in {where or '/'}",
            "Project data contains an invalid file or directory name.",
        )


def _split_path(path: str) -> list[str]:
    parts = path.strip("/").split("/")
    for part in parts:
        _check_name(part, path)
    return parts


# ---------------------------------------------------------------------------
# ProjectTree
# ---------------------------------------------------------------------------


class ProjectTree:
    """A generated project, rooted at a single directory node."""

    def __init__(self, root: DirectoryNode | None = None) -> None:
        self.root = root if root is not None else DirectoryNode()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectTree):
            return NotImplemented
        return self.to_webcontainer() == other.to_webcontainer()

    def __repr__(self) -> str:
        return f"ProjectTree(files={self.file_count})"

    # -- Construction -------------------------------------------------------

    @classmethod
    def initialize(
        cls,
        renderer: TemplateRenderer | None = None,
        *,
        app_name: str = "canva-vite-react-app",
        description: str = "Your Canva Design as a Vite + React Project",
        title: str = "Vite App",
        dev_port: int = 3000,
    ) -> ProjectTree:
        """Return the fixed skeleton every generated project starts from.

        Contains ``package.json``, ``vite.config.js`` and ``index.html`` at
        the root plus empty ``src/components`` and ``src/styles``
        directories.
        """
        renderer = renderer or TemplateRenderer()
        context = {
            "app_name": app_name,
            "description": description,
            "title": title,
            "dev_port": dev_port,
            "entry_point": ENTRY_POINT,
        }
        tree = cls()
        for name, template in SKELETON_FILES.items():
            tree.root.entries[name] = FileNode(contents=renderer.render(template, context))
        for section in ("components", "styles"):
            tree.ensure_directory("/".join(SECTION_ROOTS[section]))
        return tree

    @classmethod
    def from_webcontainer(cls, data: Any) -> ProjectTree:
        """Parse and fully validate a WebContainer-format mapping.

        Raises:
            InvalidInputError: On the first malformed entry; the message names
                its path.
        """
        return cls(_parse_directory(data, ""))

    def copy(self) -> ProjectTree:
        return ProjectTree(self.root.model_copy(deep=True))

    # -- Lookup -------------------------------------------------------------

    def get(self, path: str) -> FileNode | DirectoryNode | None:
        """Return the node at a ``/``-separated path, or ``None``."""
        node: FileNode | DirectoryNode = self.root
        for part in [p for p in path.strip("/").split("/") if p]:
            match node:
                case DirectoryNode(entries=entries) if part in entries:
                    node = entries[part]
                case _:
                    return None
        return node

    def iter_files(self) -> Iterator[tuple[str, str]]:
        """Yield ``(path, contents)`` depth-first, entries in insertion order."""
        yield from _walk(self.root, "")

    @property
    def file_count(self) -> int:
        return sum(1 for _ in self.iter_files())

    def paths(self) -> list[str]:
        return [path for path, _ in self.iter_files()]

    # -- Mutation -----------------------------------------------------------

    def ensure_directory(self, path: str) -> DirectoryNode:
        """Return the directory at *path*, creating missing levels.

        Raises:
            InvalidInputError: If a file already occupies part of the path.
        """
        node = self.root
        for part in _split_path(path) if path.strip("/") else []:
            child = node.entries.get(part)
            match child:
                case None:
                    child = DirectoryNode()
                    node.entries[part] = child
                case FileNode():
                    raise InvalidInputError(
                        f"Cannot create directory {path!r}: {part!r} is a file"
                    )
            node = child
        return node

    def set_file(self, path: str, contents: str) -> None:
        """Insert or overwrite the file at *path*.

        Raises:
            InvalidInputError: If the path is invalid or names a directory.
        """
        *parents, name = _split_path(path)
        directory = self.ensure_directory("/".join(parents))
        if isinstance(directory.entries.get(name), DirectoryNode):
            raise InvalidInputError(f"Cannot overwrite directory {path!r} with a file")
        directory.entries[name] = FileNode(contents=contents)

    # -- Serialisation ------------------------------------------------------

    def to_webcontainer(self) -> dict[str, Any]:
        return _dump_directory(self.root)

    async def write_to(self, directory: str | Path) -> list[Path]:
        """Materialise every file under *directory* and return the written paths."""
        base = Path(directory)
        written: list[Path] = []
        for rel_path, contents in self.iter_files():
            target = base / rel_path
            await asyncio.to_thread(_write_file, target, contents)
            written.append(target)
        return written


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge(tree: ProjectTree, payload: GenerationPayload | Mapping[str, Any] | None) -> ProjectTree:
    """Return a copy of *tree* with the generated files merged in.

    Components land in ``src/components``, styles in ``src/styles`` and pages
    directly in ``src``.  Re-merging a filename replaces its contents.
    Missing or malformed sections, and individual files whose path cannot be
    placed, are skipped with a warning.
    """
    merged = tree.copy()
    for section, files in _payload_sections(payload).items():
        if files is None:
            continue
        root = "/".join(SECTION_ROOTS[section])
        for filename, contents in files.items():
            try:
                merged.set_file(f"{root}/{filename}", contents)
            except InvalidInputError as exc:
                log.warning("Skipping generated %s file %r: %s", section, filename, exc)
    return merged


def _payload_sections(
    payload: GenerationPayload | Mapping[str, Any] | None,
) -> dict[str, dict[str, str] | None]:
    if isinstance(payload, GenerationPayload):
        return payload.sections()
    if not isinstance(payload, Mapping):
        log.warning("Ignoring generation payload of type %s", type(payload).__name__)
        return {}

    sections: dict[str, dict[str, str] | None] = {}
    for section in SECTION_ROOTS:
        raw = payload.get(section)
        if raw is None:
            sections[section] = None
            continue
        try:
            sections[section] = _section_adapter.validate_python(raw)
        except ValidationError:
            log.warning("Skipping malformed %r section in generation payload", section)
            sections[section] = None
    return sections


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _walk(directory: DirectoryNode, prefix: str) -> Iterator[tuple[str, str]]:
    for name, node in directory.entries.items():
        path = f"{prefix}{name}"
        match node:
            case FileNode(contents=contents):
                yield path, contents
            case DirectoryNode():
                yield from _walk(node, f"{path}/")


def _dump_directory(directory: DirectoryNode) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, node in directory.entries.items():
        match node:
            case FileNode(contents=contents):
                out[name] = {"file": {"contents": contents}}
            case DirectoryNode():
                out[name] = {"directory": _dump_directory(node)}
    return out


def _parse_directory(data: Any, where: str) -> DirectoryNode:
    if not isinstance(data, Mapping):
        raise InvalidInputError(
            f"Expected a directory mapping at {where or '/'}, got {type(data).__name__}",
            "Project data is not a valid project tree.",
        )
    directory = DirectoryNode()
    for name, entry in data.items():
        if not isinstance(name, str):
            raise InvalidInputError(f"Non-string entry name in {where or '/'}")
        _check_name(name, where)
        path = f"{where}/{name}" if where else name
        directory.entries[name] = _parse_entry(entry, path)
    return directory


def _parse_entry(entry: Any, path: str) -> FileNode | DirectoryNode:
    if isinstance(entry, Mapping) and len(entry) == 1:
        if "file" in entry:
            body = entry["file"]
            if isinstance(body, Mapping) and isinstance(body.get("contents"), str):
                return FileNode(contents=body["contents"])
        elif "directory" in entry:
            return _parse_directory(entry["directory"], path)
    raise InvalidInputError(
        f"Malformed project entry at {path!r}",
        f"Project data has a malformed entry at '{path}'.",
    )


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
