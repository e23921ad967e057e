"""Sage OAuth Token Generator.

Prerequisites:
1. Create an app at https://developerselfservice.sageone.com
2. Set its callback URL to: http://localhost:8080/callback
3. Create .env.secrets in project root with:
   SAGE_CLIENT_ID=xxx
   SAGE_CLIENT_SECRET=xxx

Usage:
    sage auth
"""

import asyncio
import http.server
import logging
import threading
import urllib.parse
import webbrowser
from typing import Any

from sage_api.src.client import SageClient
from sage_api.src.errors import AuthorizationError

logger = logging.getLogger(__name__)

# Global event for thread synchronization
AUTH_EVENT = threading.Event()


class CallbackHandler(http.server.BaseHTTPRequestHandler):
    """Handler for OAuth callback requests."""

    callback_path: str = "/callback"
    request_url: str | None = None

    def do_GET(self) -> None:
        """Handle GET request for OAuth callback."""
        logger.debug(f"Received request: {self.path}")
        parsed = urllib.parse.urlparse(self.path)

        if parsed.path != CallbackHandler.callback_path:
            logger.debug(f"Ignored request for path: {parsed.path}")
            self.send_response(404)
            self.end_headers()
            self.wfile.write(b"Not Found")
            return

        # Code is checked by SageClient.process_callback, keep the raw path
        CallbackHandler.request_url = self.path
        AUTH_EVENT.set()
        logger.info("Callback received. Signal sent.")
        self.send_response(200)
        self.send_header("Content-type", "text/html")
        self.end_headers()
        self.wfile.write(b"""
            <html><body style="font-family: sans-serif; text-align: center; padding-top: 50px;">
            <h1>Authorization received</h1>
            <p>You can close this window and return to the terminal.</p>
            </body></html>
        """)

    def log_message(self, fmt: str, *args: Any) -> None:
        """Log arbitrary message to debug logger."""
        logger.debug("%s - - [%s] %s", self.client_address[0], self.log_date_time_string(), fmt % args)


def wait_for_callback(consent_url: str, redirect_uri: str) -> str | None:
    """Open browser for consent and capture the callback request path.

    Returns:
        The callback path including its query string, or None if cancelled.
    """
    redirect = urllib.parse.urlparse(redirect_uri)
    CallbackHandler.callback_path = redirect.path or "/"
    CallbackHandler.request_url = None
    AUTH_EVENT.clear()

    class ReusableTCPServer(http.server.HTTPServer):
        allow_reuse_address = True

    port = redirect.port or 80
    logger.info(f"Starting local server on port {port}...")
    server = ReusableTCPServer(("0.0.0.0", port), CallbackHandler)
    server_thread = threading.Thread(target=server.serve_forever)
    server_thread.daemon = True
    server_thread.start()

    logger.info("Opening browser for Sage authentication...")
    logger.info(f"If the browser does not open, visit this URL:\n  {consent_url}\n")

    browser_thread = threading.Thread(target=lambda: webbrowser.open(consent_url))
    browser_thread.daemon = True
    browser_thread.start()

    logger.info(f"Waiting for callback on {redirect_uri} ...")
    try:
        # Timeout loop keeps Ctrl+C responsive
        while not AUTH_EVENT.is_set():
            AUTH_EVENT.wait(0.5)
    except KeyboardInterrupt:
        logger.info("\nOperation cancelled.")
        return None
    finally:
        server.shutdown()
        server.server_close()

    return CallbackHandler.request_url


async def token_oauth(client: SageClient) -> bool:
    """Run the OAuth token flow.

    Refreshes an existing token when possible, otherwise runs the
    browser consent flow.

    Returns:
        True if a token was obtained, False if the user cancelled.
    """
    try:
        await client.init_client()
    except AuthorizationError as e:
        logger.warning(f"{e}")
        logger.warning("Refresh failed, need new auth...")
    else:
        if client.token:
            logger.info("Existing token refreshed!")
            logger.info(f"Access token: {client.token['access_token'][:20]}...")
            return True

    request_url = await asyncio.to_thread(
        wait_for_callback, client.get_consent_url(), client.redirect_uri
    )
    if not request_url:
        return False

    logger.info("Exchanging code for access token...")
    await client.process_callback(request_url)

    logger.info(f"Access token: {client.token['access_token'][:20]}...")
    if client.token.get("expires_in"):
        logger.info(f"Expires in: {client.token['expires_in']} seconds")
    return True
