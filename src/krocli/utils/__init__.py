# src/krocli/utils/__init__.py

from .headless_detection import is_headless_environment
from .paths import (
    CREDENTIALS_FILENAME,
    TELEGRAM_FILENAME,
    VAULT_FILENAME,
    ensure_config_dir,
    get_config_file,
    get_default_config_dir,
)
from .resilient_io import read_json_document, safe_write_json

__all__ = [
    "is_headless_environment",
    "CREDENTIALS_FILENAME",
    "TELEGRAM_FILENAME",
    "VAULT_FILENAME",
    "ensure_config_dir",
    "get_config_file",
    "get_default_config_dir",
    "read_json_document",
    "safe_write_json",
]
