# agents/messages.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Defines the four kinds of entries a conversation transcript can hold:
#
#   UserPrompt           — what the user typed
#   ModelText            — text the model produced (a streamed fragment,
#                          or the complete message once the stream ends)
#   FunctionCallRequest  — the model asking us to run a tool
#   FunctionCallResult   — what the tool returned, sent back to the model
#
# These are provider-neutral. agents/backends.py converts a transcript into
# whatever format OpenRouter or Anthropic expects.
# ============================================================================

import uuid
from dataclasses import dataclass, field
from typing import Any, Union


def new_call_id() -> str:
    """Make an id for a function call when the backend didn't give us one."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class UserPrompt:
    text: str


@dataclass(frozen=True)
class ModelText:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class FunctionCallRequest:
    name: str
    args: dict = field(default_factory=dict)
    call_id: str = field(default_factory=new_call_id)


@dataclass(frozen=True)
class FunctionCallResult:
    """
    A tool's result, tagged with the same name (and call id) as the request
    it answers.
    """
    name: str
    result: Any
    call_id: str = field(default_factory=new_call_id)


ConversationMessage = Union[UserPrompt, ModelText, FunctionCallRequest, FunctionCallResult]
