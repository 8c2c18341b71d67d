"""Credential and session-token lifecycle for the krocli command-line client."""

from .credential_store import Credentials, CredentialStore
from .error_handler import KrocliError
from .login import AuthStatus, LoginOrchestrator, LoginResult, LoginState
from .mode import AuthMode, is_hosted_mode, resolve_mode
from .settings import Settings
from .token_vault import TokenData, TokenVault, open_vault, token_key

__version__ = "0.3.0"

__all__ = [
    "AuthMode",
    "AuthStatus",
    "Credentials",
    "CredentialStore",
    "KrocliError",
    "LoginOrchestrator",
    "LoginResult",
    "LoginState",
    "Settings",
    "TokenData",
    "TokenVault",
    "is_hosted_mode",
    "open_vault",
    "resolve_mode",
    "token_key",
]
