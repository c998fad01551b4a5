# tests/test_session.py
#
# Tests for ConversationSession. A scripted backend replays canned
# events instead of calling a real model.

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agents.errors import ConversationError
from agents.messages import FunctionCallRequest, FunctionCallResult, ModelText, UserPrompt
from agents.session import ConversationSession
from tools.handlers import CONTROL_LIGHT
from tools.registry import ToolRegistry


class ScriptedBackend:
    """Replays one scripted response per stream() call."""

    name = "Scripted"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.seen_transcripts = []

    def stream(self, system_instruction, declarations, transcript):
        self.seen_transcripts.append(transcript)
        for event in self.responses.pop(0):
            if isinstance(event, Exception):
                raise event
            yield event


def _text(*fragments):
    return [ModelText(f) for f in fragments]


class TestSendAndStream:

    def test_yields_fragments_in_order(self):
        backend = ScriptedBackend(_text("Turning ", "on the ", "light."))
        session = ConversationSession([CONTROL_LIGHT], [backend])

        assert list(session.send_and_stream("lights on")) == ["Turning ", "on the ", "light."]

    def test_commits_full_text_after_exhaustion(self):
        backend = ScriptedBackend(_text("Hello ", "there"))
        session = ConversationSession([], [backend])

        list(session.send_and_stream("hi"))

        assert session.transcript == (UserPrompt("hi"), ModelText("Hello there", is_final=True))

    def test_prompt_appended_before_backend_contacted(self):
        backend = ScriptedBackend(_text("ok"))
        session = ConversationSession([], [backend])

        list(session.send_and_stream("hi"))

        assert backend.seen_transcripts[0] == (UserPrompt("hi"),)

    def test_nothing_committed_until_stream_ends(self):
        backend = ScriptedBackend(_text("a", "b"))
        session = ConversationSession([], [backend])

        stream = session.send_and_stream("hi")
        next(stream)

        assert session.transcript == (UserPrompt("hi"),)
        list(stream)
        assert session.transcript[-1] == ModelText("ab", is_final=True)

    def test_function_calls_reported_after_stream(self):
        call = FunctionCallRequest("controlLight", {"brightness": 50, "colorTemperature": "warm"}, "c1")
        backend = ScriptedBackend(_text("Sure.") + [call])
        session = ConversationSession([CONTROL_LIGHT], [backend])

        list(session.send_and_stream("dim the light"))

        assert session.final_function_calls() == (call,)
        assert session.transcript[-1] == call

    def test_no_calls_gives_empty_sequence(self):
        session = ConversationSession([], [ScriptedBackend(_text("hi"))])

        assert session.final_function_calls() == ()
        list(session.send_and_stream("hello"))
        assert session.final_function_calls() == ()

    def test_empty_response_commits_no_model_text(self):
        call = FunctionCallRequest("controlLight", {}, "c1")
        session = ConversationSession([CONTROL_LIGHT], [ScriptedBackend([call])])

        list(session.send_and_stream("go"))

        assert session.transcript == (UserPrompt("go"), call)

    def test_send_function_result(self):
        call = FunctionCallRequest("controlLight", {"brightness": 1, "colorTemperature": "cool"}, "c1")
        backend = ScriptedBackend([call], _text("Done."))
        session = ConversationSession([CONTROL_LIGHT], [backend])
        list(session.send_and_stream("go"))

        result = FunctionCallResult("controlLight", {"brightness": 1, "colorTemperature": "cool"}, "c1")
        assert list(session.send_and_stream(result)) == ["Done."]
        assert session.transcript[-2] == result

    def test_rejects_unknown_content(self):
        session = ConversationSession([], [ScriptedBackend()])
        with pytest.raises(TypeError):
            session.send_and_stream(42)

    def test_transcript_is_a_snapshot(self):
        session = ConversationSession([], [ScriptedBackend(_text("x"))])
        list(session.send_and_stream("hi"))

        snapshot = session.transcript
        list_copy = list(snapshot)
        list_copy.clear()

        assert len(session.transcript) == 2

    def test_second_send_while_streaming_rejected(self):
        session = ConversationSession([], [ScriptedBackend(_text("a", "b"), _text("c"))])
        stream = session.send_and_stream("first")
        next(stream)

        with pytest.raises(ConversationError):
            session.send_and_stream("second")

        list(stream)
        assert list(session.send_and_stream("second")) == ["c"]

    def test_unstarted_stream_dropped_leaves_session_free(self):
        backend = ScriptedBackend(_text("ok"))
        session = ConversationSession([], [backend])

        stream = session.send_and_stream("first")
        stream.close()
        del stream

        assert list(session.send_and_stream("second")) == ["ok"]
        assert session.transcript == (UserPrompt("second"), ModelText("ok", is_final=True))

    def test_stream_closed_midway_releases_session(self):
        session = ConversationSession([], [ScriptedBackend(_text("a", "b"), _text("c"))])

        stream = session.send_and_stream("first")
        next(stream)
        stream.close()

        assert list(session.send_and_stream("second")) == ["c"]

    def test_two_unstarted_streams_cannot_both_run(self):
        session = ConversationSession([], [ScriptedBackend(_text("a", "b"), _text("c"))])

        first = session.send_and_stream("one")
        second = session.send_and_stream("two")
        next(first)

        with pytest.raises(ConversationError):
            next(second)
        # The losing generator must not release the winner's claim
        with pytest.raises(ConversationError):
            session.send_and_stream("three")
        assert list(first) == ["b"]


class TestRegistryDeclarations:

    def test_registry_frozen_and_declarations_copied(self):
        registry = ToolRegistry()
        registry.register(CONTROL_LIGHT, lambda args: args)

        session = ConversationSession(registry, [ScriptedBackend()])

        assert registry.frozen
        assert session.declarations == (CONTROL_LIGHT,)


class TestFailures:

    def test_backend_error_becomes_conversation_error(self):
        backend = ScriptedBackend([RuntimeError("connection reset")])
        session = ConversationSession([], [backend])

        with pytest.raises(ConversationError, match="connection reset"):
            list(session.send_and_stream("hi"))

    def test_prompt_kept_after_failure(self):
        backend = ScriptedBackend(_text("partial") + [RuntimeError("boom")])
        session = ConversationSession([], [backend])

        with pytest.raises(ConversationError):
            list(session.send_and_stream("hi"))

        # No rollback of the prompt; the partial reply is not committed
        assert session.transcript == (UserPrompt("hi"),)

    def test_session_usable_after_failure(self):
        backend = ScriptedBackend([RuntimeError("boom")], _text("ok"))
        session = ConversationSession([], [backend])

        with pytest.raises(ConversationError):
            list(session.send_and_stream("first"))

        assert list(session.send_and_stream("second")) == ["ok"]

    def test_no_backends_configured(self):
        session = ConversationSession([], [])
        with pytest.raises(ConversationError, match="No LLM provider"):
            list(session.send_and_stream("hi"))


class TestFallback:

    def test_falls_back_when_primary_fails_to_start(self):
        primary = ScriptedBackend([RuntimeError("OpenRouter down")])
        fallback = ScriptedBackend(_text("from fallback"))
        session = ConversationSession([], [primary, fallback])

        assert list(session.send_and_stream("hi")) == ["from fallback"]

    def test_no_fallback_after_first_fragment(self):
        primary = ScriptedBackend(_text("half") + [RuntimeError("dropped")])
        fallback = ScriptedBackend(_text("should not be used"))
        session = ConversationSession([], [primary, fallback])

        with pytest.raises(ConversationError):
            list(session.send_and_stream("hi"))
        assert fallback.seen_transcripts == []

    def test_all_backends_fail(self):
        session = ConversationSession([], [
            ScriptedBackend([RuntimeError("a")]),
            ScriptedBackend([RuntimeError("b")]),
        ])
        with pytest.raises(ConversationError, match="b"):
            list(session.send_and_stream("hi"))
