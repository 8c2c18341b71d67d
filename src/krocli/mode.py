# src/krocli/mode.py
"""
Hosted vs. local mode resolution.

The mode is derived from the filesystem on every call and never cached:
hosted exactly when the credentials file does not exist.
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .utils.paths import CREDENTIALS_FILENAME, get_config_file

lib_logger = logging.getLogger("krocli")


class AuthMode(str, Enum):
    HOSTED = "hosted"
    LOCAL = "local"


def is_hosted_mode(config_dir: Optional[Union[Path, str]] = None) -> bool:
    """
    Return True when no credentials file exists at the computed path.

    Never creates the configuration directory. Any filesystem outcome other
    than "does not exist" (permission errors included) counts as local.
    """
    try:
        path = get_config_file(CREDENTIALS_FILENAME, config_dir)
    except RuntimeError as e:
        # Path.home() could not be determined
        lib_logger.debug(f"Cannot compute credentials path, assuming local mode: {e}")
        return False

    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return True
    except OSError as e:
        lib_logger.debug(f"Cannot stat {path}, assuming local mode: {e}")
        return False
    return False


def resolve_mode(config_dir: Optional[Union[Path, str]] = None) -> AuthMode:
    return AuthMode.HOSTED if is_hosted_mode(config_dir) else AuthMode.LOCAL
