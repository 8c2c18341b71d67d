# src/krocli/settings.py
"""
Process-wide settings, read once from the environment.

Settings.from_env takes the environment as a mapping so callers decide what it
contains; the CLI passes os.environ after loading .env.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import httpx

from .timeout_config import TimeoutConfig
from .utils.paths import get_default_config_dir

lib_logger = logging.getLogger("krocli")

DEFAULT_PROXY_URL = "https://us-central1-krocli.cloudfunctions.net"
DEFAULT_API_BASE = "https://api.kroger.com/v1"
DEFAULT_TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_OAUTH_PORT = 8085

# Injected by an orchestrating bot host; both must be set to take effect
HOST_BOT_TOKEN_ENV = "TELEGRAM_BOT_TOKEN"
HOST_CHAT_ID_ENV = "TELEGRAM_CHAT_ID"


@dataclass
class Settings:
    config_dir: Path
    proxy_url: str = DEFAULT_PROXY_URL
    api_base: str = DEFAULT_API_BASE
    oauth_port: int = DEFAULT_OAUTH_PORT
    delivery: str = "auto"
    vault_backend: str = "keyring"
    vault_passphrase: Optional[str] = field(default=None, repr=False)
    telegram_api_base: str = DEFAULT_TELEGRAM_API_BASE
    timeout: httpx.Timeout = field(default_factory=TimeoutConfig.default)
    log_file: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = dict(os.environ) if env is None else dict(env)
        return cls(
            config_dir=get_default_config_dir(env),
            proxy_url=env.get("KROCLI_PROXY_URL", DEFAULT_PROXY_URL).rstrip("/"),
            api_base=env.get("KROCLI_API_BASE", DEFAULT_API_BASE).rstrip("/"),
            oauth_port=_get_env_int(env, "KROCLI_OAUTH_PORT", DEFAULT_OAUTH_PORT),
            delivery=env.get("KROCLI_DELIVERY", "auto").strip().lower(),
            vault_backend=env.get("KROCLI_VAULT_BACKEND", "keyring").strip().lower(),
            vault_passphrase=env.get("KROCLI_VAULT_PASSPHRASE") or None,
            telegram_api_base=env.get(
                "KROCLI_TELEGRAM_API_BASE", DEFAULT_TELEGRAM_API_BASE
            ).rstrip("/"),
            timeout=TimeoutConfig.default(env),
            log_file=env.get("KROCLI_LOG_FILE") or None,
            env=env,
        )


def _get_env_int(env: Dict[str, str], key: str, default: int) -> int:
    value = env.get(key)
    if value:
        try:
            return int(value)
        except ValueError:
            lib_logger.warning(f"Invalid {key} value: {value}, using default {default}")
    return default
