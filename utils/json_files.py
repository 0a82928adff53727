"""
JSON file helpers for persisted indexes.

Writes go to a sibling temp file that is then renamed over the target, so a
concurrent reader sees either the previous file or the new one, never a
partially written document.
"""
import json
import logging
import os
import tempfile
from typing import Any, Optional

logger = logging.getLogger(__name__)


class JSONFileError(Exception):
    """A file exists but cannot be read or parsed as JSON."""


def read_json(path: str) -> Optional[Any]:
    """
    Read and parse a JSON file.

    Args:
        path: File to read

    Returns:
        Parsed document, or None if the file does not exist

    Raises:
        JSONFileError: If the file exists but is not valid JSON
    """
    if not os.path.exists(path):
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise JSONFileError(f"Corrupt JSON in {path}: {e}") from e
    except OSError as e:
        raise JSONFileError(f"Cannot read {path}: {e}") from e


def write_json_atomic(path: str, data: Any, indent: int = 2) -> bool:
    """
    Atomically replace ``path`` with ``data`` serialized as JSON.

    Returns:
        True on success, False if the write failed (the error is logged)
    """
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".tmp"
        )
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write {path}: {e}")
        return False
    finally:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
