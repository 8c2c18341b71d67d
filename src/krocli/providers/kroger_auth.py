# src/krocli/providers/kroger_auth.py

import asyncio
import logging
import secrets
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
from rich.console import Console

from ..credential_store import Credentials
from ..error_handler import InvalidError, LoginError, TokenNotFoundError
from ..settings import DEFAULT_API_BASE, DEFAULT_OAUTH_PORT, DEFAULT_PROXY_URL
from ..token_vault import CLIENT_TOKEN, USER_TOKEN, TokenData, TokenVault, token_key
from .oauth_interface import OAuthProvider, UrlDelivery

lib_logger = logging.getLogger("krocli")

USER_SCOPES = "cart.basic:write profile.compact"
CLIENT_SCOPE = "product.compact"
CALLBACK_PATH = "/callback"
# The hosted proxy discards login sessions after five minutes
LOGIN_TIMEOUT_SECONDS = 5 * 60
POLL_INTERVAL_SECONDS = 2.0

SUCCESS_PAGE = (
    b"<html><body><h1>Login successful</h1>"
    b"<p>Return to your terminal. You can close this window.</p></body></html>"
)


class KrogerOAuthProvider(OAuthProvider):
    """
    Kroger OAuth flows for both modes.

    Hosted mode: the login proxy owns the client identity. The user opens
    {proxy}/authorize?session_id=..., the proxy completes the code exchange,
    and the CLI polls {proxy}/tokenUser until the session yields tokens
    (HTTP 202 while pending).

    Local mode: a one-shot listener on 127.0.0.1 receives the authorization
    redirect, and the code is exchanged with the user's own client
    credentials (HTTP Basic authentication).

    The public methods are synchronous; the flows run on a private event loop.
    """

    def __init__(
        self,
        vault: TokenVault,
        proxy_url: str = DEFAULT_PROXY_URL,
        api_base: str = DEFAULT_API_BASE,
        callback_port: int = DEFAULT_OAUTH_PORT,
        source: str = "cli",
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        console: Optional[Console] = None,
        login_timeout: float = LOGIN_TIMEOUT_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            vault: Where tokens are persisted
            proxy_url: Hosted-mode login proxy
            api_base: Kroger API base (local mode)
            callback_port: Local callback port; 0 picks a free one
            source: Reported to the proxy to tailor its success page ("cli" or "agent")
            transport: httpx transport override, used by tests
        """
        self.vault = vault
        self.proxy_url = proxy_url.rstrip("/")
        self.api_base = api_base.rstrip("/")
        self.callback_port = callback_port
        self.source = source
        self._timeout = timeout or httpx.Timeout(30.0, connect=10.0)
        self._transport = transport
        self.console = console or Console(stderr=True)
        self.login_timeout = login_timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    @property
    def token_url(self) -> str:
        return f"{self.api_base}/connect/oauth2/token"

    @property
    def authorize_url(self) -> str:
        return f"{self.api_base}/connect/oauth2/authorize"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def login(
        self, credentials: Optional[Credentials], deliver_url: UrlDelivery
    ) -> TokenData:
        return asyncio.run(self._login(credentials, deliver_url))

    def auth_status(self, credentials: Optional[Credentials]) -> Tuple[bool, bool]:
        return (
            self._token_is_valid(token_key(CLIENT_TOKEN, credentials)),
            self._token_is_valid(token_key(USER_TOKEN, credentials)),
        )

    def _token_is_valid(self, key: str) -> bool:
        try:
            return self.vault.load(key).is_valid()
        except TokenNotFoundError:
            return False
        except InvalidError as e:
            lib_logger.warning(f"Treating unreadable token as missing: {e}")
            return False

    # =========================================================================
    # FLOWS
    # =========================================================================

    async def _login(
        self, credentials: Optional[Credentials], deliver_url: UrlDelivery
    ) -> TokenData:
        if credentials is None:
            token = await self._login_hosted(deliver_url)
        else:
            token = await self._login_local(credentials, deliver_url)

        self.vault.store(token_key(USER_TOKEN, credentials), token)
        lib_logger.info("User token stored.")

        try:
            client_token = await self._fetch_client_token(credentials)
            self.vault.store(token_key(CLIENT_TOKEN, credentials), client_token)
        except LoginError as e:
            lib_logger.warning(f"User login succeeded but the client token could not be fetched: {e}")
        return token

    async def _login_hosted(self, deliver_url: UrlDelivery) -> TokenData:
        session_id = secrets.token_hex(16)
        url = f"{self.proxy_url}/authorize?" + urlencode(
            {"session_id": session_id, "scope": USER_SCOPES, "source": self.source}
        )
        deliver_url(url)

        deadline = self._clock() + self.login_timeout
        async with self._client() as client:
            with self.console.status(
                "[bold green]Waiting for you to complete login in the browser...[/bold green]",
                spinner="dots",
            ):
                while self._clock() < deadline:
                    try:
                        response = await client.get(
                            f"{self.proxy_url}/tokenUser", params={"session_id": session_id}
                        )
                    except httpx.HTTPError as e:
                        raise LoginError(f"cannot reach login proxy: {e}")

                    if response.status_code == 202:
                        lib_logger.debug(f"Login session pending, waiting {self.poll_interval}s")
                        await self._sleep(self.poll_interval)
                        continue
                    if response.status_code == 200:
                        return self._parse_token_response(response)
                    raise LoginError(
                        f"login proxy returned HTTP {response.status_code}: {_error_text(response)}"
                    )

        raise LoginError("login timed out; run 'krocli auth login' again")

    async def _login_local(
        self, credentials: Credentials, deliver_url: UrlDelivery
    ) -> TokenData:
        loop = asyncio.get_running_loop()
        auth_code_future = loop.create_future()
        state = secrets.token_urlsafe(16)

        async def handle_callback(reader, writer):
            try:
                request_line = await reader.readline()
                if not request_line:
                    return
                target = request_line.decode("utf-8").strip().split(" ")[1]
                while await reader.readline() not in (b"\r\n", b"\n", b""):
                    pass

                parsed = urlparse(target)
                if parsed.path != CALLBACK_PATH:
                    writer.write(b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n")
                    await writer.drain()
                    return

                params = parse_qs(parsed.query)
                writer.write(b"HTTP/1.1 200 OK\r\nContent-Type: text/html\r\nConnection: close\r\n\r\n")
                if params.get("state", [""])[0] != state:
                    if not auth_code_future.done():
                        auth_code_future.set_exception(
                            LoginError("authorization response had an unexpected state")
                        )
                    writer.write(b"<html><body><h1>Login failed</h1><p>State mismatch.</p></body></html>")
                elif "code" in params:
                    if not auth_code_future.done():
                        auth_code_future.set_result(params["code"][0])
                    writer.write(SUCCESS_PAGE)
                else:
                    error = params.get("error", ["unknown error"])[0]
                    if not auth_code_future.done():
                        auth_code_future.set_exception(
                            LoginError(f"authorization was not granted: {error}")
                        )
                    writer.write(
                        f"<html><body><h1>Login failed</h1><p>Error: {error}</p></body></html>".encode()
                    )
                await writer.drain()
            except Exception as e:
                lib_logger.error(f"Error in OAuth callback handler: {e}")
            finally:
                writer.close()

        try:
            server = await asyncio.start_server(handle_callback, "127.0.0.1", self.callback_port)
        except OSError as e:
            raise LoginError(f"cannot listen on port {self.callback_port} for the OAuth callback: {e}")

        try:
            port = server.sockets[0].getsockname()[1]
            redirect_uri = f"http://localhost:{port}{CALLBACK_PATH}"
            url = f"{self.authorize_url}?" + urlencode(
                {
                    "client_id": credentials.client_id,
                    "redirect_uri": redirect_uri,
                    "response_type": "code",
                    "scope": USER_SCOPES,
                    "state": state,
                }
            )
            deliver_url(url)

            with self.console.status(
                "[bold green]Waiting for you to complete login in the browser...[/bold green]",
                spinner="dots",
            ):
                auth_code = await asyncio.wait_for(auth_code_future, timeout=self.login_timeout)
        except asyncio.TimeoutError:
            raise LoginError("login timed out; run 'krocli auth login' again")
        finally:
            server.close()
            await server.wait_closed()

        lib_logger.info("Exchanging authorization code for tokens...")
        return await self._post_token_request(
            credentials,
            {
                "grant_type": "authorization_code",
                "code": auth_code.strip(),
                "redirect_uri": redirect_uri,
            },
        )

    async def _fetch_client_token(self, credentials: Optional[Credentials]) -> TokenData:
        if credentials is None:
            async with self._client() as client:
                try:
                    response = await client.post(f"{self.proxy_url}/tokenClient")
                except httpx.HTTPError as e:
                    raise LoginError(f"cannot reach login proxy: {e}")
            if response.status_code != 200:
                raise LoginError(
                    f"client token request failed (HTTP {response.status_code}): {_error_text(response)}"
                )
            return self._parse_token_response(response)

        return await self._post_token_request(
            credentials, {"grant_type": "client_credentials", "scope": CLIENT_SCOPE}
        )

    async def _post_token_request(
        self, credentials: Credentials, data: Dict[str, str]
    ) -> TokenData:
        async with self._client() as client:
            try:
                response = await client.post(
                    self.token_url,
                    data=data,
                    auth=(credentials.client_id, credentials.client_secret),
                    headers={"Accept": "application/json"},
                )
            except httpx.HTTPError as e:
                raise LoginError(f"cannot reach {self.token_url}: {e}")
        if response.status_code != 200:
            raise LoginError(
                f"token request failed (HTTP {response.status_code}): {_error_text(response)}"
            )
        return self._parse_token_response(response)

    @staticmethod
    def _parse_token_response(response: httpx.Response) -> TokenData:
        try:
            return TokenData.from_token_response(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise LoginError(f"unexpected token response: {e}")


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("error") or body)
    return str(body)
