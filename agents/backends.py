# agents/backends.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Talks to the actual language models. Two providers are supported:
#
#   1. OpenRouter (primary) — OpenAI-compatible API, routes to Gemini by
#      default. Uses the "openai" SDK pointed at OpenRouter's URL.
#   2. Anthropic (fallback) — direct access to Claude models.
#
# Both backends do the same job: take the conversation transcript plus the
# tool declarations, open a STREAMING request, and hand back events one at
# a time:
#
#   ModelText(fragment)     — a piece of text, as soon as it arrives
#   FunctionCallRequest     — after the text, any tool the model wants run
#
# The tricky part is that each provider wants the conversation in its own
# shape. The transcript_to_* helpers below do that conversion, so the
# session only ever deals with our own message types.
# ============================================================================

import json
import random
import re
import time

from anthropic import Anthropic, APIStatusError
from openai import OpenAI

from agents.messages import (
    FunctionCallRequest, FunctionCallResult, ModelText, UserPrompt, new_call_id,
)
from config.settings import (
    ANTHROPIC_API_KEY, ANTHROPIC_MODEL, MAX_TOKENS,
    OPENROUTER_API_KEY, OPENROUTER_BASE_URL, OPENROUTER_MODEL,
)

# HTTP statuses worth waiting out: rate limits and overloaded upstreams.
RETRYABLE_STATUS_CODES = (429, 502, 503, 529)


# ── FORMAT CONVERSION HELPERS ───────────────────────────────────────────

def _sanitize_tool_id(tool_id: str) -> str:
    """
    Anthropic requires tool ids to match ^[a-zA-Z0-9_-]+$, but some
    OpenRouter models produce ids like "controlLight:0".
    """
    return re.sub(r'[^a-zA-Z0-9_-]', '_', tool_id)


def _answered_call_ids(transcript) -> set:
    return {entry.call_id for entry in transcript if isinstance(entry, FunctionCallResult)}


def _result_to_text(result) -> str:
    return json.dumps(result, default=str)


def tools_to_openai(declarations) -> list[dict]:
    """ToolDeclaration → {"type": "function", "function": {...}}"""
    return [
        {
            "type": "function",
            "function": {
                "name": decl.name,
                "description": decl.description,
                "parameters": decl.to_json_schema(),
            },
        }
        for decl in declarations
    ]


def tools_to_anthropic(declarations) -> list[dict]:
    """ToolDeclaration → {"name": ..., "description": ..., "input_schema": {...}}"""
    return [
        {
            "name": decl.name,
            "description": decl.description,
            "input_schema": decl.to_json_schema(),
        }
        for decl in declarations
    ]


def transcript_to_openai(transcript, system_instruction: str) -> list[dict]:
    """
    Convert our transcript into OpenAI chat messages.

    - UserPrompt           → {"role": "user"}
    - ModelText            → {"role": "assistant", "content": ...}
    - FunctionCallRequest  → "tool_calls" on the assistant message it came with
    - FunctionCallResult   → {"role": "tool", "tool_call_id": ...}

    A call that never got a result (unknown tool, or a call in a follow-up
    response) is left out. The API rejects a tool call with no answer.
    """
    answered = _answered_call_ids(transcript)
    messages = [{"role": "system", "content": system_instruction}]

    for entry in transcript:
        if isinstance(entry, UserPrompt):
            messages.append({"role": "user", "content": entry.text})

        elif isinstance(entry, ModelText):
            messages.append({"role": "assistant", "content": entry.text})

        elif isinstance(entry, FunctionCallRequest):
            if entry.call_id not in answered:
                continue
            tool_call = {
                "id": entry.call_id,
                "type": "function",
                "function": {"name": entry.name, "arguments": json.dumps(entry.args)},
            }
            # Text and calls from the same response share one assistant message
            if messages[-1]["role"] == "assistant":
                messages[-1].setdefault("tool_calls", []).append(tool_call)
            else:
                messages.append({"role": "assistant", "content": None, "tool_calls": [tool_call]})

        elif isinstance(entry, FunctionCallResult):
            messages.append({
                "role": "tool",
                "tool_call_id": entry.call_id,
                "content": _result_to_text(entry.result),
            })

    return messages


def transcript_to_anthropic(transcript) -> list[dict]:
    """
    Convert our transcript into Anthropic messages (content blocks).

    Same rules as transcript_to_openai: calls without results are dropped.
    """
    answered = _answered_call_ids(transcript)
    messages = []

    for entry in transcript:
        if isinstance(entry, UserPrompt):
            messages.append({"role": "user", "content": entry.text})

        elif isinstance(entry, ModelText):
            messages.append({"role": "assistant", "content": [{"type": "text", "text": entry.text}]})

        elif isinstance(entry, FunctionCallRequest):
            if entry.call_id not in answered:
                continue
            block = {"type": "tool_use", "id": entry.call_id, "name": entry.name, "input": entry.args}
            if messages and messages[-1]["role"] == "assistant":
                messages[-1]["content"].append(block)
            else:
                messages.append({"role": "assistant", "content": [block]})

        elif isinstance(entry, FunctionCallResult):
            messages.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": entry.call_id,
                    "content": _result_to_text(entry.result),
                }],
            })

    return messages


# ── RETRY HELPER ────────────────────────────────────────────────────────

def _open_with_retries(label: str, open_stream, status_of):
    """
    Call open_stream() and retry on retryable HTTP errors.

    Backoff doubles each attempt with ±25% jitter. Only OPENING the stream
    is retried; once fragments flow, a failure is final.
    """
    from config.settings import API_MAX_RETRIES, API_RETRY_BASE_DELAY

    for attempt in range(API_MAX_RETRIES):
        try:
            return open_stream()
        except Exception as e:
            status_code = status_of(e)
            is_retryable = status_code in RETRYABLE_STATUS_CODES
            has_retries_left = attempt < API_MAX_RETRIES - 1

            if not (is_retryable and has_retries_left):
                raise

            base_delay = API_RETRY_BASE_DELAY * (2 ** attempt)
            jitter = base_delay * 0.25 * (2 * random.random() - 1)
            delay = base_delay + jitter

            print(f"   [RETRY] {label} {status_code} error, waiting {delay:.1f}s "
                  f"(attempt {attempt + 1}/{API_MAX_RETRIES})")
            time.sleep(delay)

    raise RuntimeError(f"{label} retry loop exited unexpectedly")


# ── OPENROUTER (OpenAI-compatible) ──────────────────────────────────────

class OpenRouterBackend:
    """Streams chat completions through the OpenAI SDK."""

    name = "OpenRouter"

    def __init__(self, client, model: str = OPENROUTER_MODEL):
        self.client = client
        self.model = model

    def stream(self, system_instruction: str, declarations, transcript):
        kwargs = {
            "model": self.model,
            "messages": transcript_to_openai(transcript, system_instruction),
            "max_tokens": MAX_TOKENS,
            "stream": True,
        }
        tools = tools_to_openai(declarations)
        if tools:
            kwargs["tools"] = tools

        chunks = _open_with_retries(
            self.name,
            lambda: self.client.chat.completions.create(**kwargs),
            lambda e: getattr(e, 'status_code', None),
        )

        # Tool calls arrive in pieces: the id and name first, then the JSON
        # arguments a few characters at a time. Collect them by index.
        partial_calls = {}

        for chunk in chunks:
            if not chunk.choices:
                continue  # usage-only chunk at the end of some streams
            delta = chunk.choices[0].delta

            if delta.content:
                yield ModelText(delta.content)

            for tc in delta.tool_calls or []:
                index = tc.index if tc.index is not None else 0
                slot = partial_calls.setdefault(index, {"id": None, "name": "", "arguments": ""})
                if tc.id:
                    slot["id"] = tc.id
                if tc.function is not None:
                    if tc.function.name:
                        slot["name"] = tc.function.name
                    if tc.function.arguments:
                        slot["arguments"] += tc.function.arguments

        for index in sorted(partial_calls):
            slot = partial_calls[index]
            try:
                args = json.loads(slot["arguments"] or "{}")
            except (json.JSONDecodeError, TypeError):
                args = {}
            if not isinstance(args, dict):
                args = {}

            call_id = _sanitize_tool_id(slot["id"]) if slot["id"] else new_call_id()
            yield FunctionCallRequest(name=slot["name"], args=args, call_id=call_id)


# ── ANTHROPIC ───────────────────────────────────────────────────────────

class AnthropicBackend:
    """Streams messages through the Anthropic SDK."""

    name = "Anthropic"

    def __init__(self, client, model: str = ANTHROPIC_MODEL):
        self.client = client
        self.model = model

    def stream(self, system_instruction: str, declarations, transcript):
        kwargs = {
            "model": self.model,
            "max_tokens": MAX_TOKENS,
            "system": system_instruction,
            "messages": transcript_to_anthropic(transcript),
        }
        tools = tools_to_anthropic(declarations)
        if tools:
            kwargs["tools"] = tools

        # messages.stream() returns a context manager; the HTTP request is
        # made when it is entered.
        stream = _open_with_retries(
            self.name,
            lambda: self.client.messages.stream(**kwargs).__enter__(),
            lambda e: e.status_code if isinstance(e, APIStatusError) else None,
        )

        try:
            for text in stream.text_stream:
                if text:
                    yield ModelText(text)
            final_message = stream.get_final_message()
        finally:
            stream.close()

        for block in final_message.content:
            if block.type == "tool_use":
                yield FunctionCallRequest(name=block.name, args=dict(block.input or {}), call_id=block.id)


# ── SET UP FROM SETTINGS ────────────────────────────────────────────────

def build_backends() -> list:
    """
    Create the configured backends, primary first.

    OpenRouter is used when OPENROUTER_API_KEY is set; Anthropic is added
    after it when ANTHROPIC_API_KEY is set.
    """
    backends = []

    if OPENROUTER_API_KEY:
        client = OpenAI(base_url=OPENROUTER_BASE_URL, api_key=OPENROUTER_API_KEY)
        backends.append(OpenRouterBackend(client))
        print(f"[LLM] Primary provider: OpenRouter ({OPENROUTER_MODEL})")

    if ANTHROPIC_API_KEY:
        backends.append(AnthropicBackend(Anthropic(api_key=ANTHROPIC_API_KEY)))
        label = "Fallback" if backends[:-1] else "Primary"
        print(f"[LLM] {label} provider: Anthropic ({ANTHROPIC_MODEL})")

    if not backends:
        print("[LLM] WARNING: No LLM API key configured! Set OPENROUTER_API_KEY or ANTHROPIC_API_KEY in .env")

    return backends
