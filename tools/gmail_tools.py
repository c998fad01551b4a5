# tools/gmail_tools.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the Gmail "plumbing" behind the mail gateway (web/app.py).
#
# It does FOUR things:
#   1. Logs into Gmail using OAuth, caching the token in config/token.json
#   2. Lists labels and recent inbox messages
#   3. Runs a search and yields each matching message as it is fetched
#   4. Sends a plain-text email
#
# There is no AI in here. The assistant never imports this file — it goes
# through the gateway's HTTP endpoints instead.
# ============================================================================

import base64
import threading

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from config.settings import CREDENTIALS_PATH, GMAIL_SCOPES, RECENT_EMAILS_LIMIT, TOKEN_PATH

SCOPES = GMAIL_SCOPES

SEND_SUCCESS_MESSAGE = 'Email sent successfully!'

# Credentials are loaded once and then shared by every request thread.
_cached_creds = None
_creds_lock = threading.Lock()


# ── CREDENTIAL STORE ───────────────────────────────────────────────────
# The token file is a tiny key-value store: load it, or save a fresh one.

def load_saved_credentials():
    """
    Read previously authorized credentials from the token file.

    Returns:
        Credentials, or None if the file is missing or unreadable. A bad
        file means "log in again", not "crash".
    """
    if not TOKEN_PATH.exists():
        return None
    try:
        return Credentials.from_authorized_user_file(str(TOKEN_PATH), SCOPES)
    except (ValueError, OSError) as e:
        print(f"   [WARN] Could not load saved Gmail token ({e}). Re-authorizing.")
        return None


def save_credentials(creds) -> None:
    """Write credentials to the token file in authorized-user JSON format."""
    TOKEN_PATH.parent.mkdir(parents=True, exist_ok=True)
    TOKEN_PATH.write_text(creds.to_json())


def is_authenticated() -> bool:
    """True if a usable (valid or refreshable) token is on disk."""
    creds = load_saved_credentials()
    return bool(creds and (creds.valid or (creds.expired and creds.refresh_token)))


# ── AUTHENTICATION ─────────────────────────────────────────────────────

def authorize():
    """
    Return Gmail credentials, logging in only if we have to.

    FIRST TIME (no usable token):
        Opens the browser for Google's consent screen, then saves the token.
    LATER:
        Loads the saved token, refreshing it silently if it expired.

    The result is cached in memory, so concurrent requests don't each
    repeat the file read (or the consent flow).
    """
    global _cached_creds

    with _creds_lock:
        if _cached_creds and _cached_creds.valid:
            return _cached_creds

        creds = _cached_creds or load_saved_credentials()

        if creds and creds.expired and creds.refresh_token:
            print("[*] Refreshing expired Gmail token...")
            creds.refresh(Request())
            save_credentials(creds)

        if not creds or not creds.valid:
            creds = _run_consent_flow()
            save_credentials(creds)
            print("[OK] Gmail authentication successful!")

        _cached_creds = creds
        return creds


def _run_consent_flow():
    if not CREDENTIALS_PATH.exists():
        raise FileNotFoundError(
            f"Gmail credentials not found at {CREDENTIALS_PATH}\n"
            "   Download from Google Cloud Console → APIs & Services → Credentials"
        )

    print("[*] Opening browser for Gmail authentication...")
    flow = InstalledAppFlow.from_client_secrets_file(str(CREDENTIALS_PATH), SCOPES)
    return flow.run_local_server(port=0)


def reset_credentials_cache() -> None:
    global _cached_creds
    with _creds_lock:
        _cached_creds = None


def get_gmail_service():
    """Build a Gmail API service object for the authorized user."""
    return build('gmail', 'v1', credentials=authorize())


# ── READING MAIL ───────────────────────────────────────────────────────

def list_labels(service) -> list[dict]:
    results = service.users().labels().list(userId='me').execute()
    return results.get('labels', [])


def list_message_ids(service, query: str = '', max_results: int | None = None) -> list[str]:
    """Ask Gmail for the ids of messages matching a query (no content yet)."""
    kwargs = {'userId': 'me'}
    if query:
        kwargs['q'] = query
    if max_results:
        kwargs['maxResults'] = max_results

    results = service.users().messages().list(**kwargs).execute()
    return [m['id'] for m in results.get('messages', [])]


def get_message(service, message_id: str) -> dict:
    return service.users().messages().get(userId='me', id=message_id, format='full').execute()


def list_recent_emails(service, query: str = '', max_results: int = RECENT_EMAILS_LIMIT) -> list[dict]:
    """
    Return the most recent inbox messages as
    {from, subject, date, content, snippet} dictionaries.
    """
    emails = []
    for message_id in list_message_ids(service, query, max_results):
        msg = get_message(service, message_id)
        headers = _header_dict(msg)
        emails.append({
            'from': headers.get('from', ''),
            'subject': headers.get('subject', ''),
            'date': headers.get('date', ''),
            'content': _extract_body(msg.get('payload', {})),
            'snippet': msg.get('snippet', ''),
        })
    return emails


def iter_search_results(service, message_ids):
    """
    Fetch each message and yield {from, subject, date, snippet}.

    A message that fails to load or parse is logged and skipped; the
    rest still come through.
    """
    for message_id in message_ids:
        try:
            msg = get_message(service, message_id)
            headers = _header_dict(msg)
            email = {
                'from': headers.get('from', ''),
                'subject': headers.get('subject', ''),
                'date': headers.get('date', ''),
                'snippet': msg.get('snippet', ''),
            }
        except Exception as e:
            print(f"   [WARN] Failed to fetch email with id {message_id}: {e}")
            continue

        yield email


# ── SENDING MAIL ───────────────────────────────────────────────────────

def build_raw_message(to: str, subject: str, body: str) -> str:
    """
    Build the base64url "raw" string Gmail's send API expects.

    The message is just:
        To: <to>
        Subject: <subject>
        <blank line>
        <body>
    """
    raw = '\n'.join([f'To: {to}', f'Subject: {subject}', '', body])
    return base64.urlsafe_b64encode(raw.encode('utf-8')).decode('ascii')


def send_email(service, to: str, subject: str, body: str) -> str:
    try:
        service.users().messages().send(
            userId='me',
            body={'raw': build_raw_message(to, subject, body)},
        ).execute()
    except Exception as e:
        raise RuntimeError(f"Error sending email: {e}") from e
    return SEND_SUCCESS_MESSAGE


# ── MESSAGE PARSING ────────────────────────────────────────────────────

def _header_dict(msg: dict) -> dict:
    """Flatten Gmail's [{name, value}, ...] headers into a lowercase dict."""
    headers = msg.get('payload', {}).get('headers', [])
    return {h['name'].lower(): h['value'] for h in headers}


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data).decode('utf-8', errors='replace')


def _extract_body(payload: dict) -> str:
    """
    Find the message body, preferring text/plain over text/html, and
    descending into nested multipart sections.
    """
    if payload.get('body', {}).get('data'):
        return _decode(payload['body']['data'])

    text_body = ''
    html_body = ''

    for part in payload.get('parts', []):
        mime_type = part.get('mimeType', '')

        if mime_type == 'text/plain' and part.get('body', {}).get('data'):
            text_body = _decode(part['body']['data'])
        elif mime_type == 'text/html' and part.get('body', {}).get('data'):
            html_body = _decode(part['body']['data'])
        elif mime_type.startswith('multipart/'):
            text_body = text_body or _extract_body(part)

    return text_body or html_body or ''
