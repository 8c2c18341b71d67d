from .kroger_auth import KrogerOAuthProvider
from .oauth_interface import OAuthProvider, UrlDelivery

__all__ = ["KrogerOAuthProvider", "OAuthProvider", "UrlDelivery"]
