# src/krocli/notifications/telegram.py
"""
Telegram bot messaging channel.

TelegramConfigStore persists the bot token and chat id to telegram.json in the
config directory. TelegramClient issues one sendMessage request per delivery
and surfaces the API's failure description verbatim.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import httpx

from ..error_handler import (
    ChannelAPIError,
    ChannelConfigNotFoundError,
    ConfigIOError,
    InvalidChannelConfigError,
    MissingFieldsError,
    mask_secret,
)
from ..utils.paths import TELEGRAM_FILENAME, ensure_config_dir, get_config_file
from ..utils.resilient_io import read_json_document, safe_write_json

lib_logger = logging.getLogger("krocli")

DEFAULT_BASE_URL = "https://api.telegram.org"
REQUIRED_FIELDS = ("bot_token", "chat_id")


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str = field(repr=False)
    chat_id: str
    # True when sourced from a bot host; such configs are never written to disk
    transient: bool = field(default=False, compare=False)

    def is_complete(self) -> bool:
        return bool(self.bot_token) and bool(self.chat_id)

    def to_dict(self) -> dict:
        return {"bot_token": self.bot_token, "chat_id": self.chat_id}

    @classmethod
    def from_document(cls, document: Any) -> "TelegramConfig":
        if not isinstance(document, dict):
            raise InvalidChannelConfigError("telegram config must be a JSON object")
        values = {}
        for name in REQUIRED_FIELDS:
            value = document.get(name)
            # chat ids are numeric in the Bot API; accept them either way
            if isinstance(value, int) and not isinstance(value, bool):
                value = str(value)
            if value is not None and not isinstance(value, str):
                raise InvalidChannelConfigError(f"{name} must be a string")
            values[name] = (value or "").strip()
        return cls(**values)


class TelegramConfigStore:
    """Reads and writes telegram.json."""

    def __init__(self, config_dir: Optional[Union[Path, str]] = None):
        self.path = get_config_file(TELEGRAM_FILENAME, config_dir)

    def load(self) -> TelegramConfig:
        """
        Raises:
            ChannelConfigNotFoundError: No config file exists
            InvalidChannelConfigError: The file is malformed or a field is empty
            ConfigIOError: The file exists but cannot be read
        """
        try:
            document = read_json_document(self.path)
        except FileNotFoundError:
            raise ChannelConfigNotFoundError()
        except ValueError as e:
            raise InvalidChannelConfigError(f"'{self.path}' is not valid JSON: {e}")
        except OSError as e:
            raise ConfigIOError(self.path, e)

        config = TelegramConfig.from_document(document)
        if not config.is_complete():
            raise InvalidChannelConfigError(
                f"'{self.path}' must contain non-empty bot_token and chat_id"
            )
        return config

    def save(self, config: TelegramConfig) -> None:
        """
        Raises:
            MissingFieldsError: bot_token or chat_id is empty
            ConfigIOError: The directory or file cannot be written
        """
        if not config.is_complete():
            raise MissingFieldsError(REQUIRED_FIELDS)
        try:
            ensure_config_dir(self.path.parent)
        except OSError as e:
            raise ConfigIOError(self.path.parent, e)
        error = safe_write_json(self.path, config.to_dict(), lib_logger, secure_permissions=True)
        if error is not None:
            raise ConfigIOError(self.path, error)
        lib_logger.info(f"Saved Telegram config to {self.path}")


class TelegramClient:
    """Minimal Bot API client: sendMessage only."""

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        base_url: str = DEFAULT_BASE_URL,
    ):
        """
        Args:
            http_client: Client used for requests. If None, a short-lived
                         client is created per request.
            base_url: Bot API base endpoint
        """
        self._http_client = http_client
        self.base_url = base_url.rstrip("/")

    def send_message(self, config: TelegramConfig, text: str) -> None:
        """
        Send text to the configured chat.

        Raises:
            ChannelAPIError: The request failed or the API answered ok=false.
                The API's description is carried unmodified.
        """
        url = f"{self.base_url}/bot{config.bot_token}/sendMessage"
        payload = {"chat_id": config.chat_id, "text": text}
        lib_logger.debug(
            f"Sending Telegram message to chat {config.chat_id} "
            f"(bot {mask_secret(config.bot_token)})"
        )

        try:
            if self._http_client is not None:
                response = self._http_client.post(url, data=payload)
            else:
                with httpx.Client() as client:
                    response = client.post(url, data=payload)
        except httpx.HTTPError as e:
            # str(e) can embed the request URL, which contains the bot token
            raise ChannelAPIError(f"request failed ({type(e).__name__})")

        try:
            body = response.json()
        except ValueError:
            raise ChannelAPIError(
                f"unexpected response (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        if not isinstance(body, dict) or not body.get("ok"):
            description = ""
            if isinstance(body, dict):
                description = str(body.get("description") or "")
            raise ChannelAPIError(
                description or f"request rejected (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        lib_logger.info(f"Delivered message to Telegram chat {config.chat_id}")
