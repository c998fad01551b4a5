# tools/mail_gateway.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the HTTP client for our own mail gateway (web/app.py). The
# getEmails tool never talks to Gmail directly — it asks the gateway,
# which holds the Gmail login.
#
# It turns the gateway's JSON into EmailRecord objects and turns network
# problems into two clear errors:
#   GatewayUnavailableError — we couldn't reach the gateway at all
#   GatewayResponseError    — the gateway answered with an error status
#
# There are NO retries here. One request, one answer (or one error).
# ============================================================================

import json
from dataclasses import dataclass

import httpx

from agents.errors import GatewayResponseError, GatewayUnavailableError
from config.settings import GATEWAY_URL

# The literal body GET /emails sends when a search matches nothing.
NO_EMAILS_FOUND = "No emails found"


@dataclass(frozen=True)
class EmailRecord:
    """One email as the gateway reports it. "from" is a keyword, so: sender."""
    sender: str
    subject: str
    date: str
    snippet: str

    @classmethod
    def from_json(cls, data: dict) -> "EmailRecord":
        # /emails sends "snippet", /getemails sends "content" (and "snippet").
        snippet = data.get("snippet") or data.get("content") or ""
        return cls(
            sender=data.get("from") or "",
            subject=data.get("subject") or "",
            date=data.get("date") or "",
            snippet=snippet,
        )

    def to_json(self) -> dict:
        return {
            "from": self.sender,
            "subject": self.subject,
            "date": self.date,
            "snippet": self.snippet,
        }


class MailGatewayClient:
    """Small synchronous client for the mail gateway endpoints."""

    def __init__(self, base_url: str = GATEWAY_URL, timeout=None, transport=None):
        # timeout=None: a slow Gmail search should not be cut off halfway.
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    # ── Public API ─────────────────────────────────────────────────

    def fetch_emails(self, query: str | None = None) -> list[EmailRecord]:
        """
        Fetch recent inbox emails from GET /getemails.

        Args:
            query: Optional Gmail search string. Only sent when non-empty.

        Returns:
            A list of EmailRecord, newest first (the gateway's order).
        """
        params = {"query": query} if query else None
        response = self._request("GET", "/getemails", params=params)
        payload = _json_body(response)

        if not isinstance(payload, list):
            raise GatewayResponseError(response.status_code, f"Expected a JSON list, got {type(payload).__name__}")

        return [EmailRecord.from_json(item) for item in payload if isinstance(item, dict)]

    def search_emails(self, query: str):
        """
        Stream search results from GET /emails, one EmailRecord per line.

        The gateway sends newline-delimited JSON as each message is fetched,
        so records are yielded as soon as their line arrives.
        """
        try:
            with self._client.stream("GET", "/emails", params={"query": query}) as response:
                if not response.is_success:
                    response.read()
                    raise GatewayResponseError(response.status_code, response.text)

                for line in response.iter_lines():
                    line = line.strip()
                    if not line or line == NO_EMAILS_FOUND:
                        continue
                    try:
                        item = json.loads(line)
                    except ValueError:
                        raise GatewayResponseError(response.status_code, f"Bad result line: {line!r}") from None
                    if not isinstance(item, dict):
                        raise GatewayResponseError(response.status_code, f"Bad result line: {line!r}")
                    yield EmailRecord.from_json(item)
        except httpx.TransportError as e:
            raise GatewayUnavailableError(f"Mail gateway unreachable: {e}") from e

    def list_labels(self) -> list[dict]:
        response = self._request("GET", "/labels")
        labels = _json_body(response)
        if not isinstance(labels, list):
            raise GatewayResponseError(response.status_code, f"Expected a JSON list, got {type(labels).__name__}")
        return labels

    def send_email(self, to: str, subject: str, body: str) -> str:
        response = self._request(
            "POST", "/send-email",
            json={"to": to, "subject": subject, "body": body},
        )
        payload = _json_body(response)
        if not isinstance(payload, dict):
            raise GatewayResponseError(response.status_code, f"Expected a JSON object, got {type(payload).__name__}")
        return payload.get("message", "")

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ── Internal helpers ───────────────────────────────────────────

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise GatewayUnavailableError(f"Mail gateway unreachable: {e}") from e

        if not response.is_success:
            raise GatewayResponseError(response.status_code, response.text)
        return response


def _json_body(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        raise GatewayResponseError(response.status_code, "Response body is not JSON") from None
