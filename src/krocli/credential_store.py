# src/krocli/credential_store.py

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .error_handler import (
    ConfigIOError,
    CredentialsNotFoundError,
    InvalidCredentialsError,
    MissingFieldsError,
    mask_secret,
)
from .utils.paths import CREDENTIALS_FILENAME, ensure_config_dir, get_config_file
from .utils.resilient_io import read_json_document, safe_write_json

lib_logger = logging.getLogger("krocli")

REQUIRED_FIELDS = ("client_id", "client_secret")


@dataclass(frozen=True)
class Credentials:
    """OAuth client identity supplied by the user (local mode)."""

    client_id: str
    client_secret: str = field(repr=False)

    def is_complete(self) -> bool:
        return bool(self.client_id) and bool(self.client_secret)

    def to_dict(self) -> dict:
        return {"client_id": self.client_id, "client_secret": self.client_secret}

    @classmethod
    def from_document(cls, document: Any) -> "Credentials":
        """
        Build Credentials from a parsed JSON document.

        Raises:
            InvalidCredentialsError: If the document is not a JSON object or a
                field has a non-string value
        """
        if not isinstance(document, dict):
            raise InvalidCredentialsError("credentials document must be a JSON object")
        values = {}
        for name in REQUIRED_FIELDS:
            value = document.get(name, "")
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise InvalidCredentialsError(f"{name} must be a string")
            values[name] = value
        return cls(**values)


class CredentialStore:
    """
    Reads, writes and validates the OAuth client identity.

    The identity is a single JSON document, credentials.json, in the per-user
    configuration directory. Saving overwrites the whole document.
    """

    def __init__(self, config_dir: Optional[Union[Path, str]] = None):
        """
        Args:
            config_dir: Configuration directory. If None, uses the default
                        per-user directory.
        """
        self.config_dir = Path(config_dir) if config_dir else None
        self.path = get_config_file(CREDENTIALS_FILENAME, self.config_dir)

    def load(self) -> Credentials:
        """
        Load the persisted credentials.

        Raises:
            CredentialsNotFoundError: No credentials file exists
            InvalidCredentialsError: The file is not valid JSON or a field is empty
            ConfigIOError: The file exists but cannot be read
        """
        try:
            document = read_json_document(self.path)
        except FileNotFoundError:
            raise CredentialsNotFoundError()
        except ValueError as e:
            raise InvalidCredentialsError(f"credentials file '{self.path}' is not valid JSON: {e}")
        except OSError as e:
            raise ConfigIOError(self.path, e)

        creds = Credentials.from_document(document)
        if not creds.is_complete():
            raise InvalidCredentialsError(
                "credentials file missing client_id or client_secret"
            )
        lib_logger.debug(f"Loaded credentials for client {mask_secret(creds.client_id)}")
        return creds

    def save(self, creds: Credentials) -> None:
        """
        Persist credentials, replacing any previous document.

        Raises:
            MissingFieldsError: client_id or client_secret is empty
            ConfigIOError: The directory or file cannot be written
        """
        if not creds.is_complete():
            raise MissingFieldsError(REQUIRED_FIELDS)

        try:
            ensure_config_dir(self.path.parent)
        except OSError as e:
            raise ConfigIOError(self.path.parent, e)

        error = safe_write_json(
            self.path, creds.to_dict(), lib_logger, secure_permissions=True
        )
        if error is not None:
            raise ConfigIOError(self.path, error)
        lib_logger.info(f"Saved credentials to {self.path}")

    def import_from(self, source: Union[Path, str]) -> Credentials:
        """
        Import credentials from an external JSON file and persist them.

        The stored document is only replaced when the source is readable,
        parses, and carries both fields.

        Raises:
            ConfigIOError: The source cannot be read (missing, permission denied)
            InvalidCredentialsError: The source is not valid JSON
            MissingFieldsError: client_id or client_secret is missing or empty
        """
        source = Path(source).expanduser()
        try:
            raw = source.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigIOError(source, e)

        try:
            document = json.loads(raw)
        except ValueError as e:
            raise InvalidCredentialsError(f"'{source}' is not valid JSON: {e}")

        creds = Credentials.from_document(document)
        if not creds.is_complete():
            raise MissingFieldsError(REQUIRED_FIELDS)

        self.save(creds)
        return creds
