"""Configuration and paths for Sage Accounting API tools."""

from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.parent

# Data files
TOKEN_FILE = PROJECT_ROOT / ".sage_token.json"
ENV_SECRETS_FILE = PROJECT_ROOT / ".env.secrets"

# API URLs
TOKEN_ENDPOINT = "https://oauth.accounting.sage.com/token"
ACCOUNTING_API_URL = "https://api.accounting.sage.com/v3.1"
CONSENT_URL = "https://www.sageone.com/oauth2/auth/central"

DEFAULT_REDIRECT_URI = "http://localhost:8080/callback"

RESULTS_PER_PAGE = 200  # ledger_accounts items_per_page
REQUEST_TIMEOUT = 30.0
