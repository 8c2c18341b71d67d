# src/krocli/token_vault.py
"""
Token Vault: opaque token records in a native secret store.

The vault addresses entries by key only. Backends:
- KeyringBackend: the platform keystore through the `keyring` library
  (macOS Keychain, Windows Credential Locker, freedesktop Secret Service).
- EncryptedFileBackend: an explicitly selected, passphrase-encrypted file for
  platforms without a native store. Tokens are never written in plaintext.

TokenVault serializes TokenData to JSON before handing it to a backend; the
backends never look inside the payload.
"""

import base64
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import keyring
import keyring.errors
from keyring.backends import fail as fail_keyring
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .credential_store import Credentials
from .error_handler import (
    InvalidError,
    TokenNotFoundError,
    VaultUnavailableError,
)
from .utils.paths import VAULT_FILENAME, ensure_config_dir
from .utils.resilient_io import read_json_document, safe_write_json

lib_logger = logging.getLogger("krocli")

SERVICE_NAME = "krocli"
PBKDF2_ITERATIONS = 600_000
# Encrypted into each token file so a wrong passphrase is caught before writes
CHECK_PLAINTEXT = b"krocli-token-vault"

CLIENT_TOKEN = "client"
USER_TOKEN = "user"


@dataclass
class TokenData:
    access_token: str
    token_type: str
    expiry: datetime
    refresh_token: Optional[str] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """True when the token is non-empty and not yet expired."""
        now = now or datetime.now(timezone.utc)
        return bool(self.access_token) and self.expiry > now

    def to_json(self) -> str:
        data: Dict[str, Any] = {
            "access_token": self.access_token,
            "expiry": self.expiry.isoformat(),
            "token_type": self.token_type,
        }
        if self.refresh_token:
            data["refresh_token"] = self.refresh_token
        return json.dumps(data)

    @classmethod
    def from_json(cls, payload: str) -> "TokenData":
        """
        Raises:
            ValueError: If the payload is not a well-formed token record
        """
        data = json.loads(payload)
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ValueError("token record has no access_token")
        expiry = datetime.fromisoformat(data["expiry"])
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expiry=expiry,
            refresh_token=data.get("refresh_token") or None,
        )

    @classmethod
    def from_token_response(
        cls, data: Dict[str, Any], now: Optional[datetime] = None
    ) -> "TokenData":
        """
        Build a record from an OAuth token endpoint response.

        Raises:
            ValueError: access_token is empty or expires_in is missing or not
                a positive number of seconds
        """
        now = now or datetime.now(timezone.utc)
        if not data.get("access_token"):
            raise ValueError("token response has no access_token")
        expires_in = data.get("expires_in")
        if expires_in is None:
            raise ValueError("token response has no expires_in")
        lifetime = int(expires_in)
        if lifetime <= 0:
            raise ValueError(f"token response has non-positive expires_in ({expires_in})")
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type") or "Bearer",
            expiry=now + timedelta(seconds=lifetime),
            refresh_token=data.get("refresh_token") or None,
        )


def token_key(purpose: str, credentials: Optional[Credentials] = None) -> str:
    """
    Build the vault key for a token.

    Hosted tokens live under "hosted:<purpose>". Local tokens are scoped to the
    client identity that obtained them, "local:<fingerprint>:<purpose>", so
    re-importing different credentials never picks up a stale token.
    """
    if credentials is None:
        return f"hosted:{purpose}"
    fingerprint = hashlib.sha256(credentials.client_id.encode("utf-8")).hexdigest()[:12]
    return f"local:{fingerprint}:{purpose}"


# =============================================================================
# BACKENDS
# =============================================================================


class SecretBackend(ABC):
    """Keyed storage of opaque string payloads."""

    name: str = "abstract"

    @abstractmethod
    def set_secret(self, key: str, payload: str) -> None:
        """Store payload under key, replacing any previous entry."""

    @abstractmethod
    def get_secret(self, key: str) -> str:
        """
        Raises:
            TokenNotFoundError: No entry exists for key
        """

    @abstractmethod
    def delete_secret(self, key: str) -> None:
        """
        Raises:
            TokenNotFoundError: No entry exists for key
        """


class KeyringBackend(SecretBackend):
    """Platform keystore through the `keyring` library."""

    name = "keyring"

    def __init__(self, service_name: str = SERVICE_NAME, backend: Any = None):
        """
        Args:
            service_name: Service under which entries are filed
            backend: A keyring backend instance. If None, the platform default
                     from keyring.get_keyring() is used.
        """
        self.service_name = service_name
        self._backend = backend

    def _open(self):
        backend = self._backend
        if backend is None:
            try:
                backend = keyring.get_keyring()
            except keyring.errors.KeyringError as e:
                raise VaultUnavailableError(f"cannot open system keyring: {e}")
        if isinstance(backend, fail_keyring.Keyring):
            raise VaultUnavailableError(
                "no system keyring is available; set KROCLI_VAULT_BACKEND=encrypted-file "
                "and KROCLI_VAULT_PASSPHRASE to use the encrypted file store"
            )
        return backend

    def set_secret(self, key: str, payload: str) -> None:
        backend = self._open()
        try:
            backend.set_password(self.service_name, key, payload)
        except keyring.errors.KeyringError as e:
            raise VaultUnavailableError(f"cannot write to system keyring: {e}")

    def get_secret(self, key: str) -> str:
        backend = self._open()
        try:
            payload = backend.get_password(self.service_name, key)
        except keyring.errors.KeyringError as e:
            raise VaultUnavailableError(f"cannot read from system keyring: {e}")
        if payload is None:
            raise TokenNotFoundError(key)
        return payload

    def delete_secret(self, key: str) -> None:
        backend = self._open()
        try:
            backend.delete_password(self.service_name, key)
        except keyring.errors.PasswordDeleteError:
            raise TokenNotFoundError(key)
        except keyring.errors.KeyringError as e:
            raise VaultUnavailableError(f"cannot delete from system keyring: {e}")


class EncryptedFileBackend(SecretBackend):
    """
    Passphrase-encrypted token file for platforms without a native keystore.

    File layout (JSON):
        {"version": 1, "kdf": "PBKDF2-HMAC-SHA256", "iterations": N,
         "salt": <base64>, "check": <Fernet token>,
         "entries": {<key>: <Fernet token>}}

    "check" holds a fixed value encrypted when the file is created; it must
    decrypt before any entry is read, written or removed. Each entry is
    encrypted with Fernet (AES-128-CBC + HMAC-SHA256) under a key derived
    from the passphrase and the file's random salt.
    """

    name = "encrypted-file"

    def __init__(
        self,
        path: Union[Path, str],
        passphrase: Optional[str],
        iterations: int = PBKDF2_ITERATIONS,
    ):
        self.path = Path(path)
        self._passphrase = passphrase
        self._iterations = iterations
        self._fernet_cache: Dict[str, Fernet] = {}

    def _fernet(self, salt_b64: str, iterations: int) -> Fernet:
        if not self._passphrase:
            raise VaultUnavailableError(
                "encrypted token file selected but KROCLI_VAULT_PASSPHRASE is not set"
            )
        cache_key = f"{salt_b64}:{iterations}"
        if cache_key not in self._fernet_cache:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=base64.b64decode(salt_b64),
                iterations=iterations,
            )
            key = base64.urlsafe_b64encode(kdf.derive(self._passphrase.encode("utf-8")))
            self._fernet_cache[cache_key] = Fernet(key)
        return self._fernet_cache[cache_key]

    def _read(self) -> Optional[Dict[str, Any]]:
        try:
            document = read_json_document(self.path)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise VaultUnavailableError(f"cannot read encrypted token file '{self.path}': {e}")
        if not isinstance(document, dict) or "salt" not in document:
            raise VaultUnavailableError(f"encrypted token file '{self.path}' is malformed")
        document.setdefault("entries", {})
        return document

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            ensure_config_dir(self.path.parent)
        except OSError as e:
            raise VaultUnavailableError(f"cannot create {self.path.parent}: {e}")
        error = safe_write_json(self.path, document, lib_logger, secure_permissions=True)
        if error is not None:
            raise VaultUnavailableError(f"cannot write encrypted token file '{self.path}': {error}")

    def _unlock(self, document: Dict[str, Any]) -> Fernet:
        """
        Derive the file key and prove the passphrase against the check value.

        Raises:
            VaultUnavailableError: No passphrase is set or it does not match
        """
        fernet = self._fernet(document["salt"], int(document["iterations"]))
        check = document.get("check")
        if check is None:
            # Files written before the check value existed: try any entry
            check = next(iter(document["entries"].values()), None)
        if check is not None:
            try:
                fernet.decrypt(check.encode("ascii"))
            except InvalidToken:
                raise VaultUnavailableError(
                    "cannot unlock token file: wrong KROCLI_VAULT_PASSPHRASE or corrupted file"
                )
        return fernet

    def set_secret(self, key: str, payload: str) -> None:
        document = self._read()
        if document is None:
            document = {
                "version": 1,
                "kdf": "PBKDF2-HMAC-SHA256",
                "iterations": self._iterations,
                "salt": base64.b64encode(os.urandom(16)).decode("ascii"),
                "entries": {},
            }
            fernet = self._fernet(document["salt"], self._iterations)
            document["check"] = fernet.encrypt(CHECK_PLAINTEXT).decode("ascii")
        else:
            fernet = self._unlock(document)
            document.setdefault("check", fernet.encrypt(CHECK_PLAINTEXT).decode("ascii"))
        document["entries"][key] = fernet.encrypt(payload.encode("utf-8")).decode("ascii")
        self._write(document)

    def get_secret(self, key: str) -> str:
        document = self._read()
        if document is None or key not in document["entries"]:
            raise TokenNotFoundError(key)
        fernet = self._unlock(document)
        try:
            return fernet.decrypt(document["entries"][key].encode("ascii")).decode("utf-8")
        except InvalidToken:
            raise VaultUnavailableError(
                "cannot decrypt token file: wrong KROCLI_VAULT_PASSPHRASE or corrupted entry"
            )

    def delete_secret(self, key: str) -> None:
        document = self._read()
        if document is None or key not in document["entries"]:
            raise TokenNotFoundError(key)
        self._unlock(document)
        del document["entries"][key]
        self._write(document)


# =============================================================================
# VAULT
# =============================================================================


class TokenVault:
    """Stores, loads and deletes TokenData records by key."""

    def __init__(self, backend: SecretBackend):
        self.backend = backend

    def store(self, key: str, token: TokenData) -> None:
        self.backend.set_secret(key, token.to_json())
        lib_logger.debug(f"Stored token '{key}' in {self.backend.name} vault")

    def load(self, key: str) -> TokenData:
        """
        Raises:
            TokenNotFoundError: No token is stored under key
            VaultUnavailableError: The secret store cannot be opened
            InvalidError: The stored payload is not a token record
        """
        payload = self.backend.get_secret(key)
        try:
            return TokenData.from_json(payload)
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidError(f"token entry '{key}' is corrupted: {e}")

    def delete(self, key: str) -> None:
        self.backend.delete_secret(key)
        lib_logger.debug(f"Deleted token '{key}' from {self.backend.name} vault")


def open_vault(settings) -> TokenVault:
    """
    Build the vault selected by settings.vault_backend.

    Raises:
        VaultUnavailableError: The configured backend name is unknown
    """
    if settings.vault_backend == KeyringBackend.name:
        return TokenVault(KeyringBackend())
    if settings.vault_backend == EncryptedFileBackend.name:
        lib_logger.info(
            "Using the encrypted file token store instead of the system keyring"
        )
        return TokenVault(
            EncryptedFileBackend(
                settings.config_dir / VAULT_FILENAME, settings.vault_passphrase
            )
        )
    raise VaultUnavailableError(
        f"unknown vault backend '{settings.vault_backend}' "
        f"(expected '{KeyringBackend.name}' or '{EncryptedFileBackend.name}')"
    )
