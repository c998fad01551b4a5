# config/settings.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "control panel" for the assistant. Every setting that might
# change (file paths, API keys, model names, the mail gateway address)
# lives here in one place.
#
# Values that are secret or machine-specific are read from environment
# variables (main.py loads them from a .env file first).
# ============================================================================

import os
from pathlib import Path


# ── FILE PATHS ─────────────────────────────────────────────────────────

# settings.py → config/ → project root
PROJECT_ROOT = Path(__file__).parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"

# The OAuth client file you download from Google Cloud Console.
CREDENTIALS_PATH = Path(os.environ.get("GMAIL_CREDENTIALS_PATH", CONFIG_DIR / "credentials.json"))

# Where the authorized-user token is saved after the first consent.
# Stored as JSON so google.oauth2 can load it back with from_authorized_user_file().
TOKEN_PATH = Path(os.environ.get("GMAIL_TOKEN_PATH", CONFIG_DIR / "token.json"))


# ── GMAIL SETTINGS ─────────────────────────────────────────────────────

# The gateway reads the inbox and sends mail, so it needs both scopes.
GMAIL_SCOPES = [
    'https://www.googleapis.com/auth/gmail.send',
    'https://www.googleapis.com/auth/gmail.readonly',
]

# How many messages GET /getemails returns.
RECENT_EMAILS_LIMIT = 5


# ── MAIL GATEWAY SETTINGS ──────────────────────────────────────────────

GATEWAY_HOST = os.environ.get("GATEWAY_HOST", "127.0.0.1")
GATEWAY_PORT = int(os.environ.get("GATEWAY_PORT", "3001"))

# The address the getEmails tool calls. Defaults to the local gateway.
GATEWAY_URL = os.environ.get("GATEWAY_URL", f"http://localhost:{GATEWAY_PORT}")


# ── LLM (Large Language Model) SETTINGS ────────────────────────────────

# OpenRouter is the primary provider. It speaks the OpenAI API format and
# routes to Gemini by default.
OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_MODEL = os.environ.get("OPENROUTER_MODEL", "google/gemini-2.0-flash-001")

# Anthropic is the fallback provider.
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

# Maximum length of each model response.
MAX_TOKENS = 4096

# The standing instruction sent with every request.
SYSTEM_INSTRUCTION = os.environ.get(
    "SYSTEM_INSTRUCTION",
    "You are a helpful home assistant. You can control the room light, set the "
    "room temperature and look up the user's emails. Use a tool whenever the "
    "user asks for one of those actions, then answer briefly in plain language."
)


# ── RETRY SETTINGS ──────────────────────────────────────────────────
# Opening a model stream is retried when the provider is overloaded or
# rate-limited. Exponential backoff: 2s, 4s, 8s, 16s...

API_MAX_RETRIES = 5

# Base delay in seconds for the first retry. Doubles each attempt.
API_RETRY_BASE_DELAY = 2.0
