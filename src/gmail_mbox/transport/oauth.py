"""OAuth 2.0 installed-app flow using a one-shot local redirect listener."""

from __future__ import annotations

import logging
import re
import secrets
import socket
from types import TracebackType
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from ..core.config import GmailSettings

LOGGER = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 4096

_REQUEST_LINE = re.compile(r"GET (\S+) HTTP/[12]\.[01]")

_RESPONSE_BODY = (
    "  __      _\n"
    "o'')}____//\n"
    " `_/      )\n"
    " (_(_/-(_/\n"
    "Authorization received, you can close this window.\n"
)


class AuthorizationError(RuntimeError):
    """Raised when the authorization redirect or token exchange fails."""


def extract_code(request: str, state: str) -> str:
    """Return the authorization code from a captured redirect request."""
    match = _REQUEST_LINE.search(request)
    if match is None:
        raise AuthorizationError("Invalid authorization response")
    query = parse_qs(urlsplit(match.group(1)).query)
    if "error" in query:
        raise AuthorizationError(f"Authorization failed: {query['error'][0]}")
    if "code" not in query or "state" not in query:
        raise AuthorizationError("Invalid authorization response")
    if query["state"][0] != state:
        raise AuthorizationError("Authorization state mismatch")
    return query["code"][0]


class LocalRedirectAuthenticator:
    """Obtain a bearer token by capturing the OAuth redirect on localhost."""

    def __init__(
        self,
        settings: GmailSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Bind the redirect listener on an ephemeral loopback port."""
        if not settings.client_id or not settings.client_secret:
            raise AuthorizationError("OAuth client credentials are not configured")
        self._settings = settings
        self._transport = transport
        self._state = secrets.token_urlsafe(16)
        self._listener = socket.create_server(("127.0.0.1", 0))

    def __enter__(self) -> LocalRedirectAuthenticator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def port(self) -> int:
        """Port the redirect listener is bound to."""
        return self._listener.getsockname()[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}"

    def authorization_url(self) -> str:
        """Return the URL the user must open to grant access."""
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self._settings.scope,
            "access_type": "offline",
            "state": self._state,
        }
        return f"{self._settings.auth_url}?{urlencode(params)}"

    def authenticate(self) -> str:
        """Wait for the browser redirect and exchange its code for a token."""
        LOGGER.debug("Waiting for authorization redirect on port %s", self.port)
        connection, _ = self._listener.accept()
        with connection:
            request = self._read_request(connection)
            code = extract_code(request, self._state)
            connection.sendall(_http_response(_RESPONSE_BODY))
        return self.exchange_code(code)

    def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an access token."""
        data = {
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        try:
            with httpx.Client(
                timeout=self._settings.timeout_seconds, transport=self._transport
            ) as client:
                response = client.post(self._settings.token_url, data=data)
                response.raise_for_status()
                tokens = response.json()
        except httpx.HTTPError as exc:
            raise AuthorizationError(f"Token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise AuthorizationError("Token endpoint returned invalid JSON") from exc
        access_token = tokens.get("access_token")
        if not access_token:
            raise AuthorizationError("Token response missing 'access_token'")
        LOGGER.info("Obtained access token")
        return str(access_token)

    def close(self) -> None:
        """Stop listening for redirects."""
        self._listener.close()

    @staticmethod
    def _read_request(connection: socket.socket) -> str:
        buffer = b""
        while len(buffer) < MAX_REQUEST_BYTES:
            chunk = connection.recv(MAX_REQUEST_BYTES - len(buffer))
            if not chunk:
                break
            buffer += chunk
            if buffer.endswith(b"\r\n\r\n"):
                return buffer.decode("latin-1")
        raise AuthorizationError("Invalid authorization response")


def _http_response(body: str) -> bytes:
    payload = body.encode("utf-8")
    head = (
        "HTTP/1.1 200 OK\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "Connection: close\r\n\r\n"
    )
    return head.encode("ascii") + payload


__all__ = ["AuthorizationError", "LocalRedirectAuthenticator", "extract_code"]
