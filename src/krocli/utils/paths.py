# src/krocli/utils/paths.py
"""
Centralized path management for krocli.

All on-disk documents live in one per-user configuration directory:
1. KROCLI_CONFIG_DIR, when set
2. Otherwise ~/.config/krocli

Computing a path never touches the filesystem. The directory is created
(owner-only) by ensure_config_dir(), which callers invoke only when a write
is imminent.
"""

import os
import logging
from pathlib import Path
from typing import Mapping, Optional, Union

lib_logger = logging.getLogger("krocli")

CONFIG_DIR_ENV = "KROCLI_CONFIG_DIR"
CREDENTIALS_FILENAME = "credentials.json"
TELEGRAM_FILENAME = "telegram.json"
VAULT_FILENAME = "tokens.enc.json"


def get_default_config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the default configuration directory without creating it.

    Args:
        env: Environment mapping to consult. If None, uses os.environ.

    Returns:
        Path to the configuration directory
    """
    env = os.environ if env is None else env
    override = env.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "krocli"


def get_config_file(filename: str, root: Optional[Union[Path, str]] = None) -> Path:
    """
    Get the path to a document in the configuration directory.

    Args:
        filename: Name of the file (e.g., "credentials.json")
        root: Optional configuration directory. If None, uses the default.

    Returns:
        Path to the file (does not create the file or its directory)
    """
    base = Path(root) if root else get_default_config_dir()
    return base / filename


def ensure_config_dir(root: Optional[Union[Path, str]] = None) -> Path:
    """
    Create the configuration directory with owner-only permissions.

    Raises:
        OSError: If the directory cannot be created
    """
    config_dir = Path(root) if root else get_default_config_dir()
    if not config_dir.is_dir():
        config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        lib_logger.debug(f"Created config directory {config_dir}")
    try:
        os.chmod(config_dir, 0o700)
    except (OSError, NotImplementedError):
        # Windows ignores POSIX modes
        pass
    return config_dir
