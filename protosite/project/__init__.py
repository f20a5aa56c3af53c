"""Virtual project tree for generated Vite + React projects.

Usage::

    from protosite.project import ProjectTree, GenerationPayload, merge

    skeleton = ProjectTree.initialize()
    tree = merge(skeleton, GenerationPayload(pages={"main.jsx": "..."}))
    print(tree.paths())
"""

from protosite.project.tree import (
    DirectoryNode,
    FileNode,
    GenerationPayload,
    ProjectNode,
    ProjectTree,
    merge,
)

__all__ = [
    "DirectoryNode",
    "FileNode",
    "GenerationPayload",
    "ProjectNode",
    "ProjectTree",
    "merge",
]
