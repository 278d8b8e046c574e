"""Local HTTP server that completes the OAuth authorization-code flow.

Routes:
    /               Instructions and configuration status.
    /health         JSON liveness probe.
    /auth/start     Redirects the browser to the Microsoft sign-in page.
    /auth/callback  Receives the authorization code and exchanges it for tokens
                    (the path of the configured redirect URI).
"""

import asyncio
import html
import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

import httpx

from sharepoint_mcp.auth.oauth_client import OAuthClient
from sharepoint_mcp.config import SharePointConfig
from sharepoint_mcp.errors import AuthProviderError

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_PATH = "/auth/callback"

_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; padding: 40px;
           max-width: 700px; margin: 0 auto; line-height: 1.6; }}
    .ok {{ color: #155724; background: #d4edda; padding: 20px; border-radius: 8px; }}
    .error {{ color: #721c24; background: #f8d7da; padding: 20px; border-radius: 8px; }}
    code {{ background: #f4f4f4; padding: 2px 6px; border-radius: 4px; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  {body}
</body>
</html>
"""


def render_page(title: str, body: str) -> bytes:
    return _PAGE.format(title=html.escape(title), body=body).encode("utf-8")


class AuthCallbackServer(HTTPServer):
    """HTTPServer carrying the OAuth client the request handler needs.

    Attributes:
        oauth: OAuth client used for the code exchange.
        config: Application settings.
        authenticated: Set once a code exchange has succeeded.
        callback_path: Request path of the configured redirect URI.
    """

    def __init__(
        self,
        server_address: tuple[str, int],
        oauth: OAuthClient,
        config: SharePointConfig,
    ) -> None:
        super().__init__(server_address, AuthCallbackHandler)
        self.oauth = oauth
        self.config = config
        self.authenticated = False
        self.callback_path = urlparse(config.redirect_uri).path or DEFAULT_CALLBACK_PATH

    def exchange_code(self, code: str) -> None:
        """Run the async code exchange from the (synchronous) handler thread."""

        async def _exchange() -> None:
            try:
                await self.oauth.exchange_code(code)
            finally:
                await self.oauth.close()

        asyncio.run(_exchange())
        self.authenticated = True


class AuthCallbackHandler(BaseHTTPRequestHandler):
    """HTTP handler for the OAuth callback server."""

    server: AuthCallbackServer

    def log_message(self, format: str, *args) -> None:
        """Route access logs through logging instead of stderr."""
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send(self, status: int, body: bytes, content_type: str = "text/html") -> None:
        self.send_response(status)
        self.send_header("Content-Type", f"{content_type}; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        """Dispatch GET requests by path."""
        parsed = urlparse(self.path)

        if parsed.path == "/health":
            body = json.dumps({"status": "ok", "service": "sharepoint-mcp-auth"}).encode()
            self._send(200, body, "application/json")
        elif parsed.path == "/auth/start":
            self.send_response(302)
            self.send_header("Location", self.server.oauth.authorization_url())
            self.end_headers()
        elif parsed.path == self.server.callback_path:
            self._handle_callback(parse_qs(parsed.query))
        elif parsed.path == "/":
            self._handle_index()
        else:
            self._send(404, b"Not Found", "text/plain")

    def _handle_callback(self, query: dict[str, list[str]]) -> None:
        if "error" in query:
            error = query["error"][0]
            description = query.get("error_description", ["No description provided"])[0]
            logger.error(f"OAuth error: {error} - {description}")
            self._send(
                200,
                render_page(
                    "Authentication Failed",
                    f'<div class="error"><strong>Error:</strong> {html.escape(error)}<br>'
                    f"<strong>Description:</strong> {html.escape(description)}</div>"
                    "<p>Please try again or check your Azure AD configuration.</p>",
                ),
            )
            return

        code = query.get("code", [None])[0]
        if not code:
            self._send(
                400,
                render_page(
                    "Missing Authorization Code",
                    '<div class="error">No authorization code was provided in the callback.</div>',
                ),
            )
            return

        try:
            logger.info("Exchanging authorization code for tokens...")
            self.server.exchange_code(code)
        except (AuthProviderError, httpx.HTTPError) as e:
            logger.error(f"Token exchange failed: {e}")
            self._send(
                500,
                render_page(
                    "Token Exchange Failed",
                    f'<div class="error"><strong>Error:</strong> {html.escape(str(e))}</div>'
                    "<p>Please check your client secret and try again.</p>",
                ),
            )
            return

        logger.info("Successfully obtained tokens")
        self._send(
            200,
            render_page(
                "Authentication Successful!",
                '<div class="ok"><p>You have successfully authenticated with SharePoint.</p>'
                "<p>You can now close this window and return to your assistant.</p></div>",
            ),
        )

    def _handle_index(self) -> None:
        if self.server.config.is_configured:
            status = (
                '<div class="ok"><strong>Ready!</strong> '
                '<a href="/auth/start">Start authentication</a></div>'
            )
        else:
            status = (
                '<div class="error"><strong>Not configured.</strong> Set '
                "<code>SHAREPOINT_CLIENT_ID</code>, <code>SHAREPOINT_CLIENT_SECRET</code> and "
                "<code>SHAREPOINT_TENANT_ID</code>.</div>"
            )
        body = (
            f"{status}"
            f"<p>Redirect URI: <code>{html.escape(self.server.config.redirect_uri)}</code></p>"
        )
        self._send(200, render_page("SharePoint MCP Auth Server", body))


def create_callback_server(oauth: OAuthClient, config: SharePointConfig) -> AuthCallbackServer:
    """Bind a callback server on the host and port of the configured redirect URI."""
    parsed = urlparse(config.redirect_uri)
    host = parsed.hostname or "localhost"
    port = parsed.port if parsed.port is not None else 3334
    return AuthCallbackServer((host, port), oauth, config)
