# agents/session.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# A ConversationSession is one ongoing chat with the model. It owns the
# transcript (the ordered list of everything said so far) and has one
# way to change it: send_and_stream().
#
#   1. send_and_stream(content) appends your content to the transcript
#   2. opens a stream to the model and yields text fragments as they arrive
#   3. when the stream ends, the complete model text (and any tool calls
#      the model asked for) is committed to the transcript
#   4. final_function_calls() then tells you which tools the model wants
#
# The session is created once at startup and passed to whoever needs it.
# Nothing else edits the transcript.
# ============================================================================

from agents.errors import ConversationError
from agents.messages import FunctionCallRequest, FunctionCallResult, ModelText, UserPrompt
from config.settings import SYSTEM_INSTRUCTION
from tools.registry import ToolRegistry


class ConversationSession:
    """
    Holds the transcript and the backend connection(s) for one conversation.

    Args:
        declarations: The tool declarations to advertise, or a ToolRegistry
                      (which gets frozen; the tool set can't change once
                      the model has seen it).
        backends:     Backends to try in order. A backend that fails
                      before producing anything is skipped for the next.
        system_instruction: The standing instruction sent on every request.
    """

    def __init__(self, declarations, backends, system_instruction: str = SYSTEM_INSTRUCTION):
        if isinstance(declarations, ToolRegistry):
            declarations.freeze()
            declarations = declarations.declarations()

        self.declarations = tuple(declarations)
        self.backends = list(backends)
        self.system_instruction = system_instruction

        self._transcript = []
        self._last_calls = ()
        self._streaming = False

    @property
    def transcript(self) -> tuple:
        """A snapshot of the transcript. Editing it does not touch the session."""
        return tuple(self._transcript)

    def final_function_calls(self) -> tuple:
        """Tool calls from the most recently completed model response."""
        return self._last_calls

    def send_and_stream(self, content):
        """
        Send a user prompt (str) or a FunctionCallResult and stream the reply.

        Returns a generator of text fragments. It can only be consumed once.
        Nothing happens until the first fragment is requested: that is when
        the content is appended and the backend is contacted. A generator
        that is dropped before then leaves the session untouched.

        Raises ConversationError if the backend fails; whatever was already
        appended to the transcript stays there.
        """
        if self._streaming:
            raise ConversationError("A response is already being streamed for this session")

        if isinstance(content, str):
            entry = UserPrompt(content)
        elif isinstance(content, FunctionCallResult):
            entry = content
        else:
            raise TypeError(f"Cannot send {type(content).__name__}; expected str or FunctionCallResult")

        return self._stream_response(entry)

    # ── Internal helpers ───────────────────────────────────────────

    def _stream_response(self, entry):
        # Checked again here: two generators can be created before either starts.
        if self._streaming:
            raise ConversationError("A response is already being streamed for this session")

        self._streaming = True
        fragments = []
        calls = []

        try:
            self._last_calls = ()
            self._transcript.append(entry)

            for event in self._events_from_backends():
                if isinstance(event, ModelText):
                    fragments.append(event.text)
                    yield event.text
                elif isinstance(event, FunctionCallRequest):
                    calls.append(event)
        except ConversationError:
            raise
        except Exception as e:
            raise ConversationError(f"Model backend failed: {e}") from e
        finally:
            self._streaming = False

        # The stream is exhausted, commit the complete response.
        full_text = "".join(fragments)
        if full_text:
            self._transcript.append(ModelText(full_text, is_final=True))
        self._transcript.extend(calls)
        self._last_calls = tuple(calls)

    def _events_from_backends(self):
        """
        Yield events from the first backend that manages to start.

        If a backend fails before its first event, fall back to the next
        one. A failure after events have been forwarded can't be undone,
        so it propagates.
        """
        if not self.backends:
            raise ConversationError(
                "No LLM provider available. Set OPENROUTER_API_KEY or ANTHROPIC_API_KEY in .env"
            )

        transcript = self.transcript
        last_error = None

        for backend in self.backends:
            started = False
            try:
                for event in backend.stream(self.system_instruction, self.declarations, transcript):
                    started = True
                    yield event
                return
            except Exception as e:
                if started:
                    raise
                last_error = e
                print(f"   [FALLBACK] {getattr(backend, 'name', backend)} failed ({e}).")

        raise ConversationError(f"All model backends failed: {last_error}") from last_error
