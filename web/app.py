# web/app.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the mail gateway — a small web server that sits in front of
# Gmail. The assistant's getEmails tool (and any other HTTP client) calls
# these endpoints instead of talking to Gmail directly.
#
# ENDPOINTS:
#   GET  /labels          → All Gmail labels (JSON array)
#   GET  /getemails       → The 5 most recent inbox messages (JSON array)
#   GET  /emails?query=   → Search results, streamed one JSON object per line
#   POST /send-email      → Send a plain-text email
#   GET  /auth/status     → Is Gmail connected?
#
# Any failure comes back as HTTP 500 with the error text as a plain-text body.
#
# Run it with: python main.py serve
# ============================================================================

import json

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel

from config.settings import CREDENTIALS_PATH
from tools.gmail_tools import (
    get_gmail_service, is_authenticated, iter_search_results,
    list_labels, list_message_ids, list_recent_emails, send_email,
)
from tools.mail_gateway import NO_EMAILS_FOUND


app = FastAPI(
    title="Mail Gateway",
    description="Local HTTP proxy in front of the Gmail API",
)


# ── REQUEST BODY MODELS ───────────────────────────────────────────────

class SendEmailRequest(BaseModel):
    """Data for sending an email."""
    to: str
    subject: str
    body: str


# ============================================================================
# READ ENDPOINTS
# ============================================================================
# These are plain "def" functions, not "async def". FastAPI runs them in a
# worker thread, so the blocking Gmail calls don't freeze the server.

@app.get("/labels")
def get_labels():
    """List every label in the user's Gmail account."""
    try:
        service = get_gmail_service()
        return list_labels(service)
    except Exception as e:
        return PlainTextResponse(str(e), status_code=500)


@app.get("/getemails")
def get_recent_emails(query: str = ""):
    """
    Return the most recent inbox messages.

    Each item: {"from", "subject", "date", "content", "snippet"}.
    The optional "query" narrows the list using Gmail search syntax.
    """
    try:
        service = get_gmail_service()
        return list_recent_emails(service, query=query)
    except Exception as e:
        return PlainTextResponse(str(e), status_code=500)


@app.get("/emails")
def search_emails(query: str = ""):
    """
    Search the mailbox and stream each match as soon as it is fetched.

    Response body: one JSON object per line,
        {"from": ..., "subject": ..., "date": ..., "snippet": ...}
    or the plain text "No emails found" when nothing matches.

    A message that fails to load is skipped; the stream carries on.
    """
    try:
        service = get_gmail_service()
        message_ids = list_message_ids(service, query=query)
    except Exception as e:
        return PlainTextResponse(str(e), status_code=500)

    if not message_ids:
        return PlainTextResponse(NO_EMAILS_FOUND)

    def line_stream():
        for email in iter_search_results(service, message_ids):
            yield json.dumps(email) + "\n"

    return StreamingResponse(line_stream(), media_type="application/json")


# ============================================================================
# SEND ENDPOINT
# ============================================================================

@app.post("/send-email")
def post_send_email(req: SendEmailRequest):
    """Send a plain-text email. Returns {"message": "Email sent successfully!"}."""
    try:
        service = get_gmail_service()
        result = send_email(service, req.to, req.subject, req.body)
        return {"message": result}
    except Exception as e:
        return PlainTextResponse(str(e), status_code=500)


# ============================================================================
# AUTH STATUS
# ============================================================================

@app.get("/auth/status")
def auth_status():
    """Report whether a Gmail token and the OAuth client file are present."""
    return {
        "authenticated": is_authenticated(),
        "credentials_exist": CREDENTIALS_PATH.exists(),
    }
