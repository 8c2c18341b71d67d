# src/krocli/login.py
"""
Login orchestration and status reporting.

LoginOrchestrator.login() walks three states in order and stops at the first
error:

    RESOLVING_MODE -> OBTAINING_CREDENTIALS -> DELEGATING_EXCHANGE

It never sees token formats: the provider stores the user token in the vault
on success. status() only reads.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from .credential_store import Credentials, CredentialStore
from .error_handler import CredentialsNotFoundError, CredentialsRequiredError, LoginError
from .mode import AuthMode, is_hosted_mode
from .providers.oauth_interface import OAuthProvider, UrlDelivery

lib_logger = logging.getLogger("krocli")


class LoginState(str, Enum):
    IDLE = "idle"
    RESOLVING_MODE = "resolving_mode"
    OBTAINING_CREDENTIALS = "obtaining_credentials"
    DELEGATING_EXCHANGE = "delegating_exchange"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class LoginResult:
    mode: AuthMode


@dataclass(frozen=True)
class AuthStatus:
    mode: AuthMode
    client_token_valid: bool
    user_token_valid: bool


class LoginOrchestrator:
    """Coordinates mode resolution, credential loading and the OAuth exchange."""

    def __init__(
        self,
        credential_store: CredentialStore,
        provider: OAuthProvider,
        deliver_url: Optional[UrlDelivery] = None,
        mode_check: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            credential_store: Source of local-mode client credentials
            provider: Performs the remote authorization exchange
            deliver_url: Presents the authorization URL to the user
                         (normally NotificationChannelSelector.deliver).
                         Required by login(); status() never uses it.
            mode_check: Returns True in hosted mode. Defaults to checking the
                        credential store's directory.
        """
        self.credential_store = credential_store
        self.provider = provider
        self.deliver_url = deliver_url
        if mode_check is None:
            config_dir: Optional[Union[Path, str]] = credential_store.path.parent
            mode_check = lambda: is_hosted_mode(config_dir)
        self._mode_check = mode_check
        self.state = LoginState.IDLE

    def _resolve_mode(self) -> AuthMode:
        return AuthMode.HOSTED if self._mode_check() else AuthMode.LOCAL

    def _obtain_credentials(self, mode: AuthMode) -> Optional[Credentials]:
        # Hosted mode: the proxy holds the client identity
        if mode is AuthMode.HOSTED:
            return None
        try:
            return self.credential_store.load()
        except CredentialsNotFoundError:
            # The file vanished between the mode check and the load
            raise CredentialsRequiredError()

    def login(self) -> LoginResult:
        try:
            self.state = LoginState.RESOLVING_MODE
            mode = self._resolve_mode()
            lib_logger.info(f"Logging in ({mode.value} mode)")

            self.state = LoginState.OBTAINING_CREDENTIALS
            credentials = self._obtain_credentials(mode)

            self.state = LoginState.DELEGATING_EXCHANGE
            if self.deliver_url is None:
                raise LoginError("no way to deliver the authorization URL")
            self.provider.login(credentials, self.deliver_url)
        except BaseException:
            self.state = LoginState.FAILED
            raise

        self.state = LoginState.SUCCEEDED
        return LoginResult(mode=mode)

    def status(self) -> AuthStatus:
        mode = self._resolve_mode()
        credentials = None
        if mode is AuthMode.LOCAL:
            try:
                credentials = self.credential_store.load()
            except CredentialsNotFoundError:
                raise CredentialsRequiredError()
        client_ok, user_ok = self.provider.auth_status(credentials)
        return AuthStatus(mode=mode, client_token_valid=client_ok, user_token_valid=user_ok)
