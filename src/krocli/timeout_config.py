# src/krocli/timeout_config.py
"""
Centralized timeout configuration for HTTP requests.

All values can be overridden via environment variables:
    KROCLI_TIMEOUT_CONNECT - Connection establishment timeout (default: 10s)
    KROCLI_TIMEOUT_READ - Response read timeout (default: 30s)
"""

import os
import logging
from typing import Mapping, Optional

import httpx

lib_logger = logging.getLogger("krocli")


class TimeoutConfig:
    """HTTP timeouts for the messaging API and the OAuth endpoints."""

    _CONNECT = 10.0
    _READ = 30.0

    @classmethod
    def _get_env_float(
        cls, key: str, default: float, env: Optional[Mapping[str, str]] = None
    ) -> float:
        """Get a float value from environment variable, or return default."""
        env = os.environ if env is None else env
        value = env.get(key)
        if value is not None:
            try:
                return float(value)
            except ValueError:
                lib_logger.warning(
                    f"Invalid value for {key}: {value}. Using default: {default}"
                )
        return default

    @classmethod
    def default(cls, env: Optional[Mapping[str, str]] = None) -> httpx.Timeout:
        connect = cls._get_env_float("KROCLI_TIMEOUT_CONNECT", cls._CONNECT, env)
        read = cls._get_env_float("KROCLI_TIMEOUT_READ", cls._READ, env)
        return httpx.Timeout(read, connect=connect)
