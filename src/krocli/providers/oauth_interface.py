from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple

from ..credential_store import Credentials
from ..token_vault import TokenData

# Called with the authorization URL once the provider has one ready
UrlDelivery = Callable[[str], Any]


class OAuthProvider(ABC):
    """
    The remote authorization exchange, as seen by the login orchestrator.

    credentials is None in hosted mode, where a remote proxy holds the client
    identity. A successful login leaves a user token in the vault.
    """

    @abstractmethod
    def login(
        self, credentials: Optional[Credentials], deliver_url: UrlDelivery
    ) -> TokenData:
        """Run the interactive authorization flow and persist the user token."""

    @abstractmethod
    def auth_status(self, credentials: Optional[Credentials]) -> Tuple[bool, bool]:
        """Return (client_token_valid, user_token_valid) without modifying anything."""
