"""Pytest fixtures for Sage API tests."""

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from sage_api.src.client import SageClient

CLIENT_ID = "cid"
CLIENT_SECRET = "secret"
REDIRECT_URI = "http://localhost:8080/callback"


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture
def token_file(tmp_path: Path) -> Path:
    """Path for a token file (not created)."""
    return tmp_path / "token.json"


@pytest.fixture
def saved_token(token_file: Path) -> dict:
    """Write a valid token to the token file and return it."""
    token = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "expires_in": 300,
        "token_type": "bearer",
    }
    token_file.write_text(json.dumps(token))
    return token


@pytest.fixture
def requests_seen() -> list[httpx.Request]:
    """Requests recorded by the mock transport."""
    return []


@pytest.fixture
def make_client(
    token_file: Path, requests_seen: list[httpx.Request]
) -> Callable[..., SageClient]:
    """Factory for a SageClient whose HTTP calls go to ``handler``."""

    def _make_client(
        handler: Callable[[httpx.Request], httpx.Response] | None = None, **kwargs: object
    ) -> SageClient:
        def _record(request: httpx.Request) -> httpx.Response:
            requests_seen.append(request)
            if handler is None:
                pytest.fail(f"Unexpected HTTP request: {request.method} {request.url}")
            return handler(request)

        params = {
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "redirect_uri": REDIRECT_URI,
            "token_file": token_file,
        }
        params.update(kwargs)
        return SageClient(**params, transport=httpx.MockTransport(_record))

    return _make_client
