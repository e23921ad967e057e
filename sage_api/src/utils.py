"""Shared utilities for Sage API scripts."""

import logging
import os

from rich.console import Console

from sage_api.src.client import SageClient
from sage_api.src.config import DEFAULT_REDIRECT_URI, ENV_SECRETS_FILE, TOKEN_FILE

console = Console()


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def load_env_secrets() -> None:
    """Load variables from .env.secrets file into environment."""
    if ENV_SECRETS_FILE.exists():
        for raw_line in ENV_SECRETS_FILE.read_text().splitlines():
            line = raw_line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                os.environ.setdefault(key.strip(), value.strip())


def client_from_env() -> SageClient:
    """Create a client from SAGE_* environment variables.

    Credentials are passed through as found; the client itself reports
    missing ones from init_client().
    """
    load_env_secrets()
    return SageClient(
        client_id=os.environ.get("SAGE_CLIENT_ID", ""),
        client_secret=os.environ.get("SAGE_CLIENT_SECRET", ""),
        redirect_uri=os.environ.get("SAGE_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        token_file=os.environ.get("SAGE_TOKEN_FILE") or TOKEN_FILE,
    )
