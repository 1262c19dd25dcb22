"""Static asset lookup and copying for the report directory."""
from __future__ import annotations

import zipfile
from importlib.resources import files
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Optional

from exceptions import StaticResourceError

BUNDLED_STATIC = "static"


def static_source(path: Optional[Path] = None, archive_root: str = "static/") -> Traversable:
    """
    Locate the static asset tree.

    Args:
        path: Directory or ``.zip`` archive holding the assets. Defaults to
            the tree bundled with the ``reporters`` package.
        archive_root: Folder inside the archive that holds the assets

    Returns:
        A Traversable over the asset tree, whichever storage backs it
    """
    if path is None:
        source = files("reporters") / BUNDLED_STATIC
        if not source.is_dir():
            raise StaticResourceError("Bundled static resources are missing", source=str(source))
        return source

    path = Path(path)
    if path.is_dir():
        return path
    if path.is_file() and zipfile.is_zipfile(path):
        root = archive_root.strip("/")
        source = zipfile.Path(path, at=f"{root}/" if root else "")
        # zipfile.Path.is_dir() only looks at the trailing slash
        if not source.exists():
            raise StaticResourceError(
                f"Archive has no {archive_root!r} folder", source=str(path)
            )
        return source
    raise StaticResourceError(f"Static resource source not found: {path}", source=str(path))


def copy_resource_tree(source: Traversable, destination: Path) -> int:
    """Copy ``source`` into ``destination`` verbatim; returns the number of files."""
    destination.mkdir(parents=True, exist_ok=True)
    copied = 0
    for entry in source.iterdir():
        target = destination / entry.name
        if entry.is_dir():
            copied += copy_resource_tree(entry, target)
        else:
            target.write_bytes(entry.read_bytes())
            copied += 1
    return copied
