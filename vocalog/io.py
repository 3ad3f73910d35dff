"""
vocalog.io - JSON, text and binary file helpers with atomic writes.

Centralized I/O utilities for the session store, backup codec and
transcription coordinator. Every writer goes through a temp file in the
destination directory and renames it into place.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any

from vocalog.logging import logger


def read_json(path: Path) -> Any:
    """Read JSON file with UTF-8 encoding.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON data

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write JSON file atomically with pretty formatting.

    Writes to a temp file first, then renames to prevent corruption
    on interruption.

    Args:
        path: Destination path for JSON file
        data: Data to write
        indent: Indentation level for pretty printing (default: 2)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            json.dump(data, tmp, indent=indent, ensure_ascii=False)
        except Exception:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    tmp_path.replace(path)


def read_text(path: Path) -> str:
    """Read text file with UTF-8 encoding."""
    with open(path, encoding="utf-8") as f:
        return f.read()


def write_text(path: Path, content: str) -> None:
    """Write text file atomically.

    Args:
        path: Destination path
        content: Text content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(content)
        except Exception:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    tmp_path.replace(path)


def write_bytes(path: Path, data: bytes) -> None:
    """Write binary file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="wb",
        dir=path.parent,
        delete=False,
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(data)
        except Exception:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    tmp_path.replace(path)


def remove_tree(path: Path) -> bool:
    """Remove a directory tree, logging instead of raising on failure.

    Returns:
        True if the directory is gone afterwards
    """
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
        return False
    return True
