"""Atomic file helpers for phono-grammar.

Snapshots and settings are always written to a temporary file in the target
directory and renamed into place, so a reader sees either the previous file or
the complete new one.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from phono_grammar.errors import SnapshotError


def atomic_write(path: Path, data: str, encoding: str = "utf-8") -> None:
    """Write data to a file atomically.

    Writes to a temporary file in the same directory, then renames to target.

    Args:
        path: Target file path
        data: String data to write
        encoding: File encoding (default utf-8)

    Raises:
        SnapshotError: If the write operation fails
    """
    fd = None
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        # Same directory keeps the rename on one filesystem
        fd, temp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=path.name + "_",
            dir=path.parent,
        )
        os.write(fd, data.encode(encoding))
        os.fsync(fd)
        os.close(fd)
        fd = None

        os.replace(temp_path, path)
        temp_path = None

    except OSError as e:
        raise SnapshotError(f"Failed to write {path}: {e}", context={"path": str(path)}) from e
    finally:
        if fd is not None:
            try:
                os.close(fd)
            except OSError:
                pass
        if temp_path is not None:
            try:
                os.unlink(temp_path)
            except OSError:
                pass


def atomic_write_json(path: Path, data: dict | list, indent: int = 2) -> None:
    """Write JSON data to a file atomically.

    Args:
        path: Target file path
        data: Data to serialize as JSON
        indent: JSON indentation level (default 2)
    """
    json_str = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
    atomic_write(path, json_str)


def read_json(path: Path) -> dict | list:
    """Read JSON data from a file.

    Args:
        path: File path to read

    Returns:
        Parsed JSON data

    Raises:
        SnapshotError: If the file is missing, unreadable or invalid JSON
    """
    if not path.exists():
        raise SnapshotError(f"File not found: {path}", context={"path": str(path)})

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise SnapshotError(f"Cannot read {path}: {e}", context={"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Invalid JSON in {path}: {e}", context={"path": str(path)}) from e
