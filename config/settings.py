# config/settings.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "control panel" for the whole daemon. Every setting that
# might change (credentials, model names, schedules, the timezone, where
# the record vault lives) is read here, once, from environment variables.
#
# main.py loads the .env file BEFORE this module is imported, so values
# from .env show up in os.environ by the time we read them.
# ============================================================================

import os

from pathlib import Path


# ── FILE PATHS ─────────────────────────────────────────────────────────

# settings.py → config/ → project root
PROJECT_ROOT = Path(__file__).parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"

# The record vault: commitments/, templates/ and logs/ folders full of
# markdown files with YAML frontmatter.
VAULT_ROOT = Path(os.environ.get("VAULT_ROOT", str(PROJECT_ROOT / "vault")))

# Tag → goal lines, used to fill {{goalsContext}} and to give the
# summarizer some background.
GOALS_PATH = Path(os.environ.get("GOALS_PATH", str(CONFIG_DIR / "goals.yaml")))


# ── GMAIL SETTINGS ─────────────────────────────────────────────────────

# Reminders are sent to (and replies come from) this one address.
GMAIL_USER_EMAIL = os.environ.get("GMAIL_USER_EMAIL", "")

# OAuth client downloaded from Google Cloud Console. Used by "main.py auth"
# for the interactive login.
CREDENTIALS_PATH = Path(os.environ.get("GMAIL_CREDENTIALS_PATH", str(CONFIG_DIR / "credentials.json")))

# Saved login token written by "main.py auth".
TOKEN_PATH = Path(os.environ.get("GMAIL_TOKEN_PATH", str(CONFIG_DIR / "token.pickle")))

# Headless alternative to the token file: a refresh token plus the OAuth
# client id/secret, all from the environment.
GMAIL_CLIENT_ID = os.environ.get("GMAIL_CLIENT_ID", "")
GMAIL_CLIENT_SECRET = os.environ.get("GMAIL_CLIENT_SECRET", "")
GMAIL_REFRESH_TOKEN = os.environ.get("GMAIL_REFRESH_TOKEN", "")
GMAIL_TOKEN_URI = "https://oauth2.googleapis.com/token"

# We send reminders and remove the UNREAD label from replies, so
# read-only access is not enough.
GMAIL_SCOPES = [
    'https://www.googleapis.com/auth/gmail.send',
    'https://www.googleapis.com/auth/gmail.modify',
]

# Fixed marker embedded in every reminder subject: [IMPACT-<id>-<YYYYMMDD>]
TOKEN_PREFIX = "IMPACT"


# ── LLM SETTINGS ───────────────────────────────────────────────────────

# OpenRouter (OpenAI-compatible API) is the primary provider.
OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_MODEL = os.environ.get("OPENROUTER_MODEL", "moonshotai/kimi-k2.5")

# Anthropic is the fallback provider.
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

# Summaries are a few sentences; this is plenty.
MAX_TOKENS = 1024


# ── SCHEDULER SETTINGS ─────────────────────────────────────────────────

# Every time-of-day comparison happens in this zone.
TIMEZONE = os.environ.get("TIMEZONE", "America/New_York")

# Crontab expressions for the two cycles.
CHECK_INTERVAL = os.environ.get("CHECK_INTERVAL", "* * * * *")
POLL_INTERVAL = os.environ.get("POLL_INTERVAL", "*/5 * * * *")

# A firing that starts this late is dropped rather than run.
MISFIRE_GRACE_SECONDS = 30


# ── HEALTH SERVER ──────────────────────────────────────────────────────

HEALTH_HOST = os.environ.get("HEALTH_HOST", "127.0.0.1")
HEALTH_PORT = int(os.environ.get("HEALTH_PORT", "3001"))


# ── LOGGING ────────────────────────────────────────────────────────────

DEBUG = os.environ.get("DEBUG", "").lower() in ("1", "true", "yes")


# ── STARTUP VALIDATION ─────────────────────────────────────────────────

def missing_settings() -> list[str]:
    """
    List the required settings that are not configured.

    The daemon refuses to start while this list is non-empty. Gmail access
    can come from either a saved token file or a refresh token in the
    environment; the summarizer needs at least one LLM key.
    """
    missing = []

    if not GMAIL_USER_EMAIL:
        missing.append("GMAIL_USER_EMAIL")

    has_refresh_token = GMAIL_REFRESH_TOKEN and GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET
    if not has_refresh_token and not TOKEN_PATH.exists():
        missing.append(
            "GMAIL_REFRESH_TOKEN + GMAIL_CLIENT_ID + GMAIL_CLIENT_SECRET "
            f"(or a saved token at {TOKEN_PATH}, see 'python main.py auth')"
        )

    if not OPENROUTER_API_KEY and not ANTHROPIC_API_KEY:
        missing.append("OPENROUTER_API_KEY or ANTHROPIC_API_KEY")

    return missing
