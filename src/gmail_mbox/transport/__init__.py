"""Transport adapters for the Gmail API and OAuth flow."""

from .gmail_client import GmailApiError, GmailClient
from .oauth import AuthorizationError, LocalRedirectAuthenticator

__all__ = [
    "AuthorizationError",
    "GmailApiError",
    "GmailClient",
    "LocalRedirectAuthenticator",
]
