"""Sage Business Cloud Accounting API client.

Handles the OAuth2 authorization-code and refresh-token flows, keeps the
token in a JSON file, and wraps the few accounting endpoints we use.
Ledger accounts are fetched page 1 first, then the remaining pages
concurrently.
"""

import asyncio
import json
import logging
import math
import urllib.parse
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from sage_api.src.config import (
    ACCOUNTING_API_URL,
    CONSENT_URL,
    REQUEST_TIMEOUT,
    RESULTS_PER_PAGE,
    TOKEN_ENDPOINT,
)
from sage_api.src.errors import (
    ApiRequestError,
    ApiResponseError,
    AuthorizationError,
    ConfigurationError,
    TokenStorageError,
)
from sage_api.src.models import Account, JournalData

logger = logging.getLogger(__name__)


def page_count(total: int, per_page: int = RESULTS_PER_PAGE) -> int:
    """Number of pages needed for ``total`` items (always at least one)."""
    return max(1, math.ceil(total / per_page))


def build_journal_payload(data: JournalData) -> dict:
    """Build the POST /journals body from journal data."""
    return {
        "journal": {
            "date": data.date,
            "reference": data.narration,
            "journal_lines": [line.to_api() for line in data.journal_lines],
        }
    }


def _parse_json(resp: httpx.Response) -> Any:
    """Decode a response body, rejecting non-JSON and null documents."""
    try:
        body = resp.json()
    except ValueError as e:
        msg = f"Invalid JSON response from {resp.request.url}"
        raise ApiResponseError(msg) from e
    if body is None:
        msg = f"Null JSON response from {resp.request.url}"
        raise ApiResponseError(msg)
    return body


def _parse_token(resp: httpx.Response) -> dict:
    """Decode a token response; it must be an object holding an access_token."""
    body = _parse_json(resp)
    if not isinstance(body, dict) or not body.get("access_token"):
        msg = f"Token response from {resp.request.url} has no access_token"
        raise ApiResponseError(msg)
    return body


def _ledger_page(body: Any, page: int) -> tuple[int, list[Account]]:
    """Return ($total, accounts) from one ledger_accounts page."""
    if not isinstance(body, dict):
        msg = f"ledger_accounts page {page}: expected a JSON object"
        raise ApiResponseError(msg)
    total = body.get("$total")
    items = body.get("$items")
    if not isinstance(total, int) or isinstance(total, bool) or not isinstance(items, list):
        msg = f"ledger_accounts page {page}: missing or invalid $total/$items"
        raise ApiResponseError(msg)
    try:
        accounts = [Account.model_validate(item) for item in items]
    except ValidationError as e:
        msg = f"ledger_accounts page {page}: invalid account: {e}"
        raise ApiResponseError(msg) from e
    return total, accounts


class SageClient:
    """Async client for the Sage Accounting v3.1 API.

    Args:
        client_id: OAuth client id.
        client_secret: OAuth client secret.
        redirect_uri: Redirect URI registered with Sage.
        token_file: Where the token JSON is kept.
        transport: Optional httpx transport (tests use MockTransport).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_file: str | Path,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_file = Path(token_file)
        self.token: dict | None = None
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "SageClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    # -- Authorization -----------------------------------------------------

    async def init_client(self) -> None:
        """Validate credentials and refresh the stored token, if any.

        Raises:
            ConfigurationError: If client id, secret or redirect URI is unset.
        """
        if not self.client_id or not self.client_secret or not self.redirect_uri:
            msg = (
                "Missing Sage credentials. "
                "Set SAGE_CLIENT_ID, SAGE_CLIENT_SECRET and SAGE_REDIRECT_URI."
            )
            raise ConfigurationError(msg)
        await self.refresh_token()

    def get_consent_url(self) -> str:
        """Return the URL the user must visit to grant access."""
        return (
            f"{CONSENT_URL}?filter=apiv3.1&response_type=code&scope=full_access"
            f"&redirect_uri={self.redirect_uri}&client_id={self.client_id}"
        )

    async def process_callback(self, request_url: str) -> None:
        """Exchange the code from an OAuth callback URL for a token.

        Args:
            request_url: Callback path (``/callback?code=...``) or full URL.

        Raises:
            AuthorizationError: If there is no code or Sage rejects it.
            ApiResponseError: If the token response is not JSON.
        """
        query = urllib.parse.urlparse(request_url).query
        code = urllib.parse.parse_qs(query).get("code", [None])[0]
        if not code:
            msg = "Invalid code: callback URL has no 'code' parameter"
            raise AuthorizationError(msg)

        resp = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            }
        )
        if not resp.is_success:
            logger.error(f"Token exchange failed {resp.status_code}: {resp.text}")
            msg = f"Token exchange failed with HTTP {resp.status_code}"
            raise AuthorizationError(msg)

        self.token = _parse_token(resp)
        self.save_token()

    # -- Token persistence -------------------------------------------------

    def get_token(self) -> bool:
        """Load the token file into memory.

        Returns:
            False if there is no token file yet, True once loaded.

        Raises:
            TokenStorageError: If the file is empty, not JSON, or has no access_token.
        """
        if not self.token_file.exists():
            return False

        try:
            raw = self.token_file.read_text()
        except OSError as e:
            msg = f"Failed to read token file {self.token_file}: {e}"
            raise TokenStorageError(msg) from e
        if not raw.strip():
            msg = f"Failed to retrieve token: {self.token_file} is empty"
            raise TokenStorageError(msg)

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            msg = f"Token file {self.token_file} is not valid JSON"
            raise TokenStorageError(msg) from e
        if not isinstance(data, dict) or not data.get("access_token"):
            msg = f"Invalid access_token in {self.token_file}"
            raise TokenStorageError(msg)

        self.token = data
        return True

    def save_token(self) -> None:
        """Write the in-memory token to the token file, replacing its contents."""
        if not self.token:
            msg = "Invalid token: nothing to save"
            raise TokenStorageError(msg)
        try:
            self.token_file.write_text(json.dumps(self.token, indent=2))
        except OSError as e:
            msg = f"Failed to write token file {self.token_file}: {e}"
            raise TokenStorageError(msg) from e
        logger.info(f"Token saved to {self.token_file}")

    async def refresh_token(self) -> None:
        """Swap the stored refresh token for a new token.

        Does nothing when no token file exists.
        """
        if not self.get_token():
            logger.debug(f"No token file at {self.token_file}, skipping refresh")
            return

        resp = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": self.token.get("refresh_token", ""),
            }
        )
        if not resp.is_success:
            logger.error(f"Token refresh failed {resp.status_code}: {resp.text}")
            msg = f"Token refresh failed with HTTP {resp.status_code}. Run: sage auth --force"
            raise AuthorizationError(msg)

        # New response replaces the old token wholesale, refresh_token included
        self.token = _parse_token(resp)
        self.save_token()

    # -- API calls ---------------------------------------------------------

    async def get_accounts(self) -> list[Account]:
        """Fetch all ledger accounts, in page order."""
        total, accounts = await self._fetch_accounts_page(1)
        pages = page_count(total)
        logger.debug(f"ledger_accounts: $total={total}, {pages} page(s)")

        # First failure cancels the pages still in flight
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(self._fetch_accounts_page(page)) for page in range(2, pages + 1)
                ]
        except ExceptionGroup as eg:
            raise eg.exceptions[0] from None

        for task in tasks:
            accounts.extend(task.result()[1])
        return accounts

    async def create_journal(self, data: JournalData) -> dict:
        """Create a journal and return the API's representation of it."""
        return await self._request_json("POST", "/journals", json=build_journal_payload(data))

    async def _fetch_accounts_page(self, page: int) -> tuple[int, list[Account]]:
        body = await self._request_json(
            "GET",
            "/ledger_accounts",
            params={"items_per_page": RESULTS_PER_PAGE, "attributes": "all", "page": page},
        )
        return _ledger_page(body, page)

    def _access_token(self) -> str:
        """Return the access token, loading it from disk on first use."""
        if self.token is None and not self.get_token():
            msg = f"No token found at {self.token_file}. Run: sage auth"
            raise AuthorizationError(msg)
        return self.token["access_token"]

    async def _post_token(self, form: dict[str, str]) -> httpx.Response:
        logger.debug(f"POST {TOKEN_ENDPOINT} grant_type={form['grant_type']}")
        try:
            return await self._http.post(
                TOKEN_ENDPOINT,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded;charset=UTF-8"},
            )
        except httpx.RequestError as e:
            msg = f"Token request failed: {e}"
            raise ApiRequestError(msg) from e

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make an authenticated API request and decode the JSON body."""
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Accept": "application/json",
        }
        url = f"{ACCOUNTING_API_URL}{path}"
        logger.debug(f"{method} {url} {kwargs.get('params') or ''}")
        try:
            resp = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            msg = f"{method} {path} failed: {e}"
            raise ApiRequestError(msg) from e

        if not resp.is_success:
            msg = f"{method} {path} returned HTTP {resp.status_code}: {resp.text}"
            raise ApiRequestError(msg, status_code=resp.status_code)
        return _parse_json(resp)
