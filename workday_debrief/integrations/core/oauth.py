"""
OAuth session management for Google Calendar.

Owns the PKCE authorization flow and the refresh-token lifecycle:

    disconnected -> authorization_pending -> connected -> (connected | disconnected)

The refresh token is the only long-lived credential and lives in the vault.
Access tokens are cached in memory and refreshed shortly before expiry.
"""

import os
import time
import errno
import asyncio
import base64
import hashlib
import logging
import secrets
import webbrowser
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Callable
from urllib.parse import urlencode, urlsplit, parse_qs

import httpx

from .errors import (
    DebriefError,
    OAuthError,
    OAuthNotConfigured,
    OAuthNotConnected,
    OAuthUnauthorized,
    OAuthRefreshError,
)
from .tokens import SecretVault, VaultKeys

logger = logging.getLogger(__name__)

CALLBACK_HOST = "127.0.0.1"
CALLBACK_PORT = 8765
CALLBACK_PATH = "/callback"

# How long we wait for the browser redirect before abandoning the flow
AUTHORIZATION_TIMEOUT_SECONDS = 300

# Refresh access tokens this long before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 60

_OAUTH_HTTP_TIMEOUT = httpx.Timeout(10.0)


# =============================================================================
# OAuth Configuration
# =============================================================================

class OAuthConfig:
    """OAuth configuration for a provider."""

    def __init__(
        self,
        provider: str,
        client_id_env: str,
        client_secret_env: str,
        authorize_url: str,
        token_url: str,
        scopes: list[str],
        redirect_port: int = CALLBACK_PORT,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        self.provider = provider
        self.client_id = client_id if client_id is not None else os.getenv(client_id_env, "")
        self.client_secret = client_secret if client_secret is not None else os.getenv(client_secret_env, "")
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.scopes = scopes
        self.redirect_port = redirect_port

    @property
    def redirect_uri(self) -> str:
        """Loopback redirect URI registered with the provider."""
        return f"http://localhost:{self.redirect_port}{CALLBACK_PATH}"

    @property
    def is_configured(self) -> bool:
        """Check if OAuth credentials are configured (and not left as placeholders)."""
        if not (self.client_id and self.client_secret):
            return False
        return "your_client_id" not in self.client_id and "your_client_secret" not in self.client_secret


def google_oauth_config(**overrides) -> OAuthConfig:
    """Google Calendar read-only OAuth config, credentials from the environment."""
    params = dict(
        provider="google",
        client_id_env="GOOGLE_CLIENT_ID",
        client_secret_env="GOOGLE_CLIENT_SECRET",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=[
            "https://www.googleapis.com/auth/calendar.readonly",
            "https://www.googleapis.com/auth/calendar.events.readonly",
        ],
    )
    params.update(overrides)
    return OAuthConfig(**params)


# =============================================================================
# PKCE
# =============================================================================

def generate_pkce_pair() -> tuple[str, str]:
    """
    Generate a PKCE verifier and its S256 challenge.

    Returns:
        (verifier, challenge), both base64url without padding
    """
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode()
    digest = hashlib.sha256(verifier.encode()).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode()
    return verifier, challenge


def get_authorization_url(config: OAuthConfig, state: str, code_challenge: str) -> str:
    """Build the provider authorization URL for a PKCE flow."""
    params = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "access_type": "offline",  # Get refresh token
        "prompt": "consent",  # Always show consent to get refresh token
    }
    return f"{config.authorize_url}?{urlencode(params)}"


# =============================================================================
# Callback handling
# =============================================================================

_SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head><title>Authorization Successful</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 4em;">
<h1>Authorization Successful!</h1>
<p>Google Calendar is connected. You can close this window and return to Workday Debrief.</p>
</body>
</html>"""

_ERROR_PAGE = """<!DOCTYPE html>
<html>
<head><title>Authorization Failed</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 4em;">
<h1>Authorization Failed</h1>
<p>{message}</p>
</body>
</html>"""


@dataclass
class CallbackOutcome:
    """What the browser redirect carried: an authorization code or an error."""
    code: Optional[str] = None
    error: Optional[str] = None


def parse_callback_request(request_line: str, expected_state: str) -> Optional[CallbackOutcome]:
    """
    Interpret the request line of a redirect hitting the loopback listener.

    Args:
        request_line: e.g. "GET /callback?code=...&state=... HTTP/1.1"
        expected_state: CSRF token issued with the authorization URL

    Returns:
        CallbackOutcome, or None for requests that are not the callback
        (browsers also ask for /favicon.ico)
    """
    parts = request_line.split()
    if len(parts) < 2 or parts[0].upper() != "GET":
        return None

    url = urlsplit(parts[1])
    if url.path != CALLBACK_PATH:
        return None

    query = parse_qs(url.query)
    if "error" in query:
        return CallbackOutcome(error=f"Authorization denied: {query['error'][0]}")

    state = query.get("state", [""])[0]
    if not state or not secrets.compare_digest(state, expected_state):
        return CallbackOutcome(error="Invalid state parameter - possible CSRF attack")

    code = query.get("code", [""])[0]
    if not code:
        return CallbackOutcome(error="No authorization code in callback")
    return CallbackOutcome(code=code)


def _http_response(status: str, html: str) -> bytes:
    body = html.encode()
    head = (
        f"HTTP/1.1 {status}\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n\r\n"
    )
    return head.encode() + body


# =============================================================================
# Session manager
# =============================================================================

class OAuthState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHORIZATION_PENDING = "authorization_pending"
    CONNECTED = "connected"


@dataclass
class OAuthEvent:
    """Outcome of one authorization attempt, delivered to the UI once."""
    kind: str  # "completed" | "error"
    message: str

    @property
    def succeeded(self) -> bool:
        return self.kind == "completed"


class AuthorizationFlow:
    """
    Handle for one pending authorization attempt.

    The listener runs as a background task; `wait()` resolves with the single
    OAuthEvent for this attempt.
    """

    def __init__(self, authorization_url: str, state: str):
        self.authorization_url = authorization_url
        self.state = state
        self._event: asyncio.Future = asyncio.get_running_loop().create_future()
        self._task: Optional[asyncio.Task] = None

    def _resolve(self, event: OAuthEvent) -> bool:
        if self._event.done():
            return False
        self._event.set_result(event)
        return True

    @property
    def done(self) -> bool:
        return self._event.done()

    async def wait(self) -> OAuthEvent:
        return await asyncio.shield(self._event)


class OAuthSessionManager:
    """
    Google OAuth session.

    Usage:
        manager = OAuthSessionManager(vault)
        flow = await manager.begin_authorization()
        event = await flow.wait()

        token = await manager.ensure_fresh_access_token()
    """

    def __init__(
        self,
        vault: SecretVault,
        config: Optional[OAuthConfig] = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        callback_host: str = CALLBACK_HOST,
        authorization_timeout: float = AUTHORIZATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._vault = vault
        self._config = config or google_oauth_config()
        self._open_browser = open_browser
        self._callback_host = callback_host
        self._authorization_timeout = authorization_timeout
        self._transport = transport

        # Access token cache: (access_token, expires_at_monotonic)
        self._access_token: Optional[tuple[str, float]] = None
        self._refresh_lock = asyncio.Lock()
        self._flow: Optional[AuthorizationFlow] = None
        self._state = (
            OAuthState.CONNECTED
            if vault.has(VaultKeys.GOOGLE_REFRESH_TOKEN)
            else OAuthState.DISCONNECTED
        )

    @property
    def state(self) -> OAuthState:
        return self._state

    @property
    def config(self) -> OAuthConfig:
        return self._config

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=_OAUTH_HTTP_TIMEOUT, transport=self._transport)

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    async def begin_authorization(self) -> AuthorizationFlow:
        """
        Start a PKCE authorization flow.

        Stores the verifier and CSRF token in the vault, opens the browser and
        starts the one-shot callback listener in the background. Returns
        immediately; await `flow.wait()` for the outcome.

        Raises:
            OAuthNotConfigured: If client credentials are missing
        """
        if not self._config.is_configured:
            raise OAuthNotConfigured()

        if self._flow and not self._flow.done:
            logger.info("[OAUTH] Replacing pending authorization flow")
            await self.cancel_authorization()

        verifier, challenge = generate_pkce_pair()
        csrf_state = secrets.token_urlsafe(32)
        await asyncio.to_thread(self._vault.set_many, {
            VaultKeys.OAUTH_PKCE_VERIFIER: verifier,
            VaultKeys.OAUTH_CSRF_TOKEN: csrf_state,
        })

        url = get_authorization_url(self._config, csrf_state, challenge)
        flow = AuthorizationFlow(url, csrf_state)
        self._flow = flow
        self._state = OAuthState.AUTHORIZATION_PENDING
        flow._task = asyncio.create_task(self._run_flow(flow, verifier))

        try:
            opened = self._open_browser(url)
        except webbrowser.Error as e:
            logger.warning(f"[OAUTH] Could not open browser: {e}")
            opened = False
        if not opened:
            logger.info(f"[OAUTH] Open this URL to authorize: {url}")

        logger.info("[OAUTH] Authorization started")
        return flow

    async def cancel_authorization(self) -> None:
        """Abandon the pending flow. The listener is closed and the port released."""
        flow = self._flow
        if not flow or flow.done:
            return
        if flow._task and not flow._task.done():
            flow._task.cancel()
            try:
                await flow._task
            except asyncio.CancelledError:
                pass
        flow._resolve(OAuthEvent("error", "Authorization cancelled"))

    async def _run_flow(self, flow: AuthorizationFlow, verifier: str) -> None:
        try:
            outcome = await asyncio.wait_for(
                self._wait_for_callback(flow.state),
                timeout=self._authorization_timeout,
            )
            if outcome.error:
                raise OAuthError(outcome.error)
            logger.info("[OAUTH] Authorization code received")

            tokens = await self.exchange_code(outcome.code, verifier)
            refresh_token = tokens.get("refresh_token")
            if not refresh_token:
                raise OAuthError("No refresh token received. Revoke access in your Google account and try again.")

            await asyncio.to_thread(self._vault.set, VaultKeys.GOOGLE_REFRESH_TOKEN, refresh_token)
            self._cache_access_token(tokens)
            self._state = OAuthState.CONNECTED
            event = OAuthEvent("completed", "Google Calendar connected successfully!")
            logger.info("[OAUTH] Google Calendar connected")

        except asyncio.CancelledError:
            self._state = await self._resting_state()
            logger.info("[OAUTH] Authorization cancelled")
            await self._discard_flow_secrets()
            raise
        except asyncio.TimeoutError:
            self._state = await self._resting_state()
            event = OAuthEvent(
                "error",
                "Authorization timed out. Click 'Connect Google Account' to try again.",
            )
            logger.warning("[OAUTH] Authorization timed out")
        except OAuthError as e:
            self._state = await self._resting_state()
            event = OAuthEvent("error", e.message)
            logger.warning(f"[OAUTH] Authorization failed: {e.message}")
        except httpx.HTTPError as e:
            self._state = await self._resting_state()
            event = OAuthEvent("error", f"Token exchange failed: {e}. Check your internet connection and try again.")
            logger.warning(f"[OAUTH] Token exchange failed: {e}")
        except Exception as e:
            self._state = await self._resting_state()
            message = e.message if isinstance(e, DebriefError) else str(e)
            event = OAuthEvent("error", f"Authorization failed: {message}")
            logger.error(f"[OAUTH] Authorization failed: {e}", exc_info=True)

        await self._discard_flow_secrets()
        flow._resolve(event)

    def _delete_flow_secrets(self) -> None:
        self._vault.delete(VaultKeys.OAUTH_PKCE_VERIFIER)
        self._vault.delete(VaultKeys.OAUTH_CSRF_TOKEN)

    async def _discard_flow_secrets(self) -> None:
        try:
            await asyncio.to_thread(self._delete_flow_secrets)
        except DebriefError as e:
            logger.error(f"[OAUTH] Could not discard PKCE verifier: {e.message}")

    async def _resting_state(self) -> OAuthState:
        try:
            connected = await asyncio.to_thread(self._vault.has, VaultKeys.GOOGLE_REFRESH_TOKEN)
        except DebriefError:
            connected = False
        return OAuthState.CONNECTED if connected else OAuthState.DISCONNECTED

    async def _wait_for_callback(self, expected_state: str) -> CallbackOutcome:
        """
        Bind the callback port, wait for one redirect, release the port.

        Raises:
            OAuthError: If the port cannot be bound
        """
        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            try:
                request_line = (await asyncio.wait_for(reader.readline(), timeout=10)).decode("latin-1")
                while True:
                    line = await asyncio.wait_for(reader.readline(), timeout=10)
                    if line in (b"\r\n", b"\n", b""):
                        break

                outcome = None if result.done() else parse_callback_request(request_line, expected_state)
                if outcome is None:
                    writer.write(_http_response("404 Not Found", "Not found"))
                elif outcome.error:
                    writer.write(_http_response("400 Bad Request", _ERROR_PAGE.format(message=outcome.error)))
                else:
                    writer.write(_http_response("200 OK", _SUCCESS_PAGE))
                await writer.drain()
            except (asyncio.TimeoutError, ConnectionError) as e:
                logger.debug(f"[OAUTH] Dropped callback connection: {e}")
                return
            except ValueError:
                # Request line or header over the stream limit
                writer.write(_http_response("400 Bad Request", "Request too large"))
                return
            finally:
                writer.close()

            if outcome is not None and not result.done():
                result.set_result(outcome)

        try:
            server = await asyncio.start_server(handle, self._callback_host, self._config.redirect_port)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise OAuthError(
                    f"OAuth callback port {self._config.redirect_port} is already in use. "
                    "Close other applications using this port and try again."
                ) from e
            raise OAuthError(f"Failed to start OAuth callback listener: {e}") from e

        logger.debug(f"[OAUTH] Listening on {self._callback_host}:{self._config.redirect_port}")
        try:
            return await result
        finally:
            server.close()
            await server.wait_closed()

    async def exchange_code(self, code: str, verifier: str) -> dict:
        """
        Exchange authorization code + PKCE verifier for tokens.

        Raises:
            OAuthError: If the provider rejects the exchange
        """
        async with self._client() as client:
            response = await client.post(
                self._config.token_url,
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "code": code,
                    "code_verifier": verifier,
                    "grant_type": "authorization_code",
                    "redirect_uri": self._config.redirect_uri,
                },
            )

        if response.status_code != 200:
            logger.error(f"[OAUTH] Token exchange failed: {response.status_code} {response.text}")
            raise OAuthError(f"Token exchange failed ({response.status_code})")

        try:
            tokens = response.json()
        except ValueError:
            tokens = None
        if not isinstance(tokens, dict):
            logger.error(f"[OAUTH] Token exchange returned a non-JSON body: {response.text[:200]}")
            raise OAuthError(
                "Token exchange returned an invalid response. Check your internet connection and try again."
            )
        return tokens

    # -------------------------------------------------------------------------
    # Refresh lifecycle
    # -------------------------------------------------------------------------

    def _cache_access_token(self, tokens: dict) -> None:
        access_token = tokens.get("access_token")
        if not access_token:
            return
        # Google tokens last 3600s by default
        expires_in = tokens.get("expires_in", 3600)
        self._access_token = (access_token, time.monotonic() + expires_in)

    def _cached_token(self) -> Optional[str]:
        if not self._access_token:
            return None
        token, expires_at = self._access_token
        if time.monotonic() < expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return token
        return None

    async def ensure_fresh_access_token(self) -> str:
        """
        Return a usable access token, refreshing it when missing or near expiry.

        Raises:
            OAuthNotConnected: No refresh token is stored
            OAuthUnauthorized: The refresh token was rejected (it is deleted)
            OAuthRefreshError: The refresh could not be completed (network)
        """
        cached = self._cached_token()
        if cached:
            return cached

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            cached = self._cached_token()
            if cached:
                return cached

            refresh_token = await asyncio.to_thread(self._vault.get, VaultKeys.GOOGLE_REFRESH_TOKEN)
            if not refresh_token:
                self._state = OAuthState.DISCONNECTED
                raise OAuthNotConnected()

            try:
                async with self._client() as client:
                    response = await client.post(
                        self._config.token_url,
                        data={
                            "client_id": self._config.client_id,
                            "client_secret": self._config.client_secret,
                            "refresh_token": refresh_token,
                            "grant_type": "refresh_token",
                        },
                    )
            except httpx.HTTPError as e:
                raise OAuthRefreshError(
                    f"Could not refresh Google token: {e}. Check your internet connection and try again."
                ) from e

            if response.status_code in (400, 401):
                logger.warning(f"[OAUTH] Refresh token rejected ({response.status_code}), disconnecting")
                await asyncio.to_thread(self._vault.delete, VaultKeys.GOOGLE_REFRESH_TOKEN)
                self._access_token = None
                self._state = OAuthState.DISCONNECTED
                raise OAuthUnauthorized()

            if response.status_code != 200:
                raise OAuthRefreshError(f"Token refresh failed ({response.status_code})")

            try:
                tokens = response.json()
            except ValueError as e:
                raise OAuthRefreshError(
                    "Token refresh returned an invalid response. Check your internet connection and try again."
                ) from e
            if not isinstance(tokens, dict) or not tokens.get("access_token"):
                raise OAuthRefreshError("Token refresh returned no access token")

            # Google may rotate the refresh token
            if tokens.get("refresh_token"):
                await asyncio.to_thread(self._vault.set, VaultKeys.GOOGLE_REFRESH_TOKEN, tokens["refresh_token"])

            self._cache_access_token(tokens)
            self._state = OAuthState.CONNECTED
            logger.debug("[OAUTH] Access token refreshed")
            return tokens["access_token"]

    async def disconnect(self) -> None:
        """Forget the stored refresh token. Safe to call when already disconnected."""
        await self.cancel_authorization()
        await asyncio.to_thread(self._vault.delete, VaultKeys.GOOGLE_REFRESH_TOKEN)
        self._access_token = None
        self._state = OAuthState.DISCONNECTED
        logger.info("[OAUTH] Google Calendar disconnected")
