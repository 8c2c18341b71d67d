# src/krocli/utils/resilient_io.py
"""
Safe file writes for small JSON config documents.

Writes go to a temp file in the destination directory and are moved into
place, so a reader sees either the old document or the new one. There is no
locking: the last writer wins.
"""

import json
import os
import shutil
import tempfile
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union


def safe_write_json(
    path: Union[str, Path],
    data: Dict[str, Any],
    logger: logging.Logger,
    indent: int = 2,
    secure_permissions: bool = False,
) -> Optional[OSError]:
    """
    Write JSON data to file with error handling.

    Args:
        path: File path to write to
        data: JSON-serializable data
        logger: Logger for warnings
        indent: JSON indentation level (default: 2)
        secure_permissions: Set file permissions to 0o600 (default: False)

    Returns:
        None on success, the OSError on failure (never raises)
    """
    path = Path(path)
    content = json.dumps(data, indent=indent)

    tmp_fd = None
    tmp_path = None
    try:
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=path.parent, prefix=".tmp_", suffix=".json", text=True
        )
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            f.write(content)
            tmp_fd = None

        # mkstemp already creates 0o600 on POSIX; enforce it anyway before the move
        if secure_permissions:
            try:
                os.chmod(tmp_path, 0o600)
            except (OSError, AttributeError):
                pass

        shutil.move(tmp_path, path)
        tmp_path = None
        return None

    except OSError as e:
        logger.warning(f"Failed to write JSON to {path}: {e}")
        return e

    finally:
        if tmp_fd is not None:
            try:
                os.close(tmp_fd)
            except OSError:
                pass
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                pass


def read_json_document(path: Union[str, Path]) -> Any:
    """
    Read and parse a JSON document.

    Raises:
        OSError: If the file cannot be read (FileNotFoundError when absent)
        ValueError: If the content is not valid JSON
    """
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
