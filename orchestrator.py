# orchestrator.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "traffic controller" for one user turn. It drives the
# conversation through a small state machine:
#
#   IDLE ──submit──▶ STREAMING ──▶ INSPECTING ──(no call)──▶ IDLE
#                                      │
#                                  (call found)
#                                      ▼
#                                 DISPATCHING ──▶ REINJECTING ──▶ STREAMING_FOLLOW_UP ──▶ IDLE
#
#   1. Send the prompt and forward every text fragment to the screen
#   2. When the reply is complete, look for a tool call
#   3. Run the FIRST tool call only (any others are ignored). If the
#      tool is unknown or fails, the turn ends with that error
#   4. Send the tool's result back into the same conversation
#   5. Forward the model's follow-up reply — no further tool calls are
#      run for this turn (one hop per turn)
#
# Whatever happens, the orchestrator is back in IDLE when the turn ends.
# ============================================================================

from dataclasses import dataclass
from enum import Enum
from typing import Any

from rich.console import Console

from agents.errors import ConversationError, ToolExecutionError, UnknownToolError
from agents.messages import FunctionCallRequest, FunctionCallResult

# Pretty terminal output for the server logs / chat window.
console = Console()

# Python types accepted for each declaration type tag.
# bool is a subclass of int, so it's rejected separately for numbers.
_TYPE_CHECKS = {
    "STRING": (str,),
    "NUMBER": (int, float),
    "INTEGER": (int,),
    "BOOLEAN": (bool,),
}


class TurnState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    INSPECTING = "inspecting"
    DISPATCHING = "dispatching"
    REINJECTING = "reinjecting"
    STREAMING_FOLLOW_UP = "streaming_follow_up"


@dataclass
class TurnResult:
    """What happened during one turn."""
    text: str = ""
    call: FunctionCallRequest | None = None
    result: Any = None


def console_sink(fragment: str) -> None:
    """Print a streamed fragment as-is (no rich markup, no newline)."""
    console.print(fragment, end="", markup=False, highlight=False, soft_wrap=True)


def validate_arguments(declaration, args: dict) -> None:
    """
    Check tool arguments against the declaration before the handler runs.

    Raises ValueError naming the first problem found.
    """
    if not isinstance(args, dict):
        raise ValueError(f"Arguments must be an object, got {type(args).__name__}")

    for param in declaration.parameters:
        if param.name not in args or args[param.name] is None:
            if param.required:
                raise ValueError(f"Missing required argument {param.name!r}")
            continue

        value = args[param.name]
        allowed = _TYPE_CHECKS[param.type_tag]
        wrong_bool = isinstance(value, bool) and param.type_tag != "BOOLEAN"
        if wrong_bool or not isinstance(value, allowed):
            raise ValueError(
                f"Argument {param.name!r} must be {param.type_tag}, got {type(value).__name__}"
            )


class TurnOrchestrator:
    """
    Drives one user turn at a time through stream → inspect → dispatch →
    re-inject → stream follow-up.

    Args:
        session:  The ConversationSession (created once at startup).
        registry: The ToolRegistry whose tools the session advertised.
        sink:     Called with each text fragment, in order, as it arrives.
    """

    def __init__(self, session, registry, sink=console_sink):
        self.session = session
        self.registry = registry
        self.sink = sink
        self.state = TurnState.IDLE

    def submit(self, prompt: str) -> TurnResult:
        """
        Run a full turn, forwarding every fragment to the sink.

        Raises ConversationError (backend failure), UnknownToolError
        (model asked for a tool we don't have) or ToolExecutionError (the
        tool itself failed). In every case the state is back to IDLE.
        """
        turn = TurnResult()
        chunks = self.stream_turn(prompt, turn)
        for fragment in chunks:
            self.sink(fragment)
        return turn

    def stream_turn(self, prompt: str, turn: TurnResult | None = None):
        """
        The same turn as submit(), but as a generator of fragments so the
        caller decides how and when to deliver them.
        """
        if self.state is not TurnState.IDLE:
            raise ConversationError(f"A turn is already in progress (state: {self.state.value})")

        turn = turn if turn is not None else TurnResult()
        self.state = TurnState.STREAMING
        try:
            yield from self._run_turn(prompt, turn)
        finally:
            self.state = TurnState.IDLE

    # ── The state machine ──────────────────────────────────────────

    def _run_turn(self, prompt: str, turn: TurnResult):
        # Step 1: stream the model's reply to the prompt
        text = []
        for fragment in self.session.send_and_stream(prompt):
            text.append(fragment)
            yield fragment

        # Step 2: did the model ask for a tool?
        self.state = TurnState.INSPECTING
        calls = self.session.final_function_calls()
        if not calls:
            turn.text = "".join(text)
            return

        # Step 3: first call wins
        self.state = TurnState.DISPATCHING
        call = calls[0]
        turn.call = call
        if len(calls) > 1:
            ignored = ", ".join(c.name for c in calls[1:])
            console.print(f"   [TOOL] Ignoring {len(calls) - 1} extra call(s): {ignored}", markup=False)

        if call.name not in self.registry:
            console.print(f"   [TOOL] Unknown function call: {call.name}", markup=False)
            turn.text = "".join(text)
            raise UnknownToolError(call.name)

        console.print(f"   [TOOL] Calling tool: {call.name}", markup=False)
        try:
            result = self._dispatch(call)
        except ToolExecutionError as e:
            # The turn ends here; nothing is sent back to the model.
            console.print(f"   [WARN] {e}", markup=False)
            turn.text = "".join(text)
            raise
        turn.result = result

        # Step 4: send the result back into the conversation
        self.state = TurnState.REINJECTING
        follow_up = self.session.send_and_stream(
            FunctionCallResult(name=call.name, result=result, call_id=call.call_id)
        )

        # Step 5: stream the follow-up. No tool calls are run from here.
        self.state = TurnState.STREAMING_FOLLOW_UP
        for fragment in follow_up:
            text.append(fragment)
            yield fragment

        turn.text = "".join(text)

    def _dispatch(self, call: FunctionCallRequest):
        handler = self.registry.lookup(call.name)
        declaration = self.registry.declaration(call.name)
        try:
            validate_arguments(declaration, call.args)
            return handler(call.args)
        except Exception as e:
            raise ToolExecutionError(call.name, e) from e
