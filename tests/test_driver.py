# tests/test_driver.py
#
# Tests for the interactive chat loop in main.py. Prompts come from a
# scripted reader instead of the keyboard.

import io
import pytest
from unittest.mock import patch, MagicMock

from rich.console import Console

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from agents.errors import ConversationError, GatewayUnavailableError, UnknownToolError
from agents.messages import FunctionCallRequest, ModelText
from main import DIVIDER, build_assistant, run_chat


def _reader(*prompts):
    """Return prompts in order, then behave like end of input."""
    remaining = list(prompts)

    def read():
        if not remaining:
            raise EOFError
        return remaining.pop(0)
    return read


class ScriptedBackend:
    name = "Scripted"

    def __init__(self, *responses):
        self.responses = list(responses)

    def stream(self, system_instruction, declarations, transcript):
        yield from self.responses.pop(0)


class TestRunChat:

    def setup_method(self):
        self.output = io.StringIO()
        self.console_patch = patch.object(main, 'console', Console(file=self.output, width=200))
        self.console_patch.start()

    def teardown_method(self):
        self.console_patch.stop()

    def test_each_prompt_submitted_in_order(self):
        orchestrator = MagicMock()

        turns = run_chat(orchestrator, read_prompt=_reader("lights on", "how warm is it?"))

        assert turns == 2
        assert [c.args[0] for c in orchestrator.submit.call_args_list] == ["lights on", "how warm is it?"]

    def test_blank_prompts_skipped(self):
        orchestrator = MagicMock()

        turns = run_chat(orchestrator, read_prompt=_reader("", "   ", "hello"))

        assert turns == 1
        orchestrator.submit.assert_called_once_with("hello")

    def test_stops_on_keyboard_interrupt(self):
        def read():
            raise KeyboardInterrupt

        assert run_chat(MagicMock(), read_prompt=read) == 0

    def test_max_turns(self):
        orchestrator = MagicMock()
        turns = run_chat(orchestrator, read_prompt=lambda: "again", max_turns=3)
        assert turns == 3

    def test_divider_after_each_turn(self):
        run_chat(MagicMock(), read_prompt=_reader("a", "b"))
        assert self.output.getvalue().count(DIVIDER) == 2

    def test_turn_error_printed_and_loop_continues(self):
        orchestrator = MagicMock()
        orchestrator.submit.side_effect = [UnknownToolError("unknownTool"), None]

        turns = run_chat(orchestrator, read_prompt=_reader("first", "second"))

        assert turns == 2
        printed = self.output.getvalue()
        assert "Error during AI interaction:" in printed
        assert "Unknown function call: unknownTool" in printed

    def test_tool_failure_printed_and_loop_continues(self):
        gateway = MagicMock()
        gateway.fetch_emails.side_effect = GatewayUnavailableError("Mail gateway unreachable")
        backend = ScriptedBackend(
            [FunctionCallRequest("getEmails", {"searchQuery": "invoices"}, "call_1")],
            [ModelText("Hi!")],
        )
        output = []
        orchestrator = build_assistant(backends=[backend], gateway=gateway, sink=output.append)

        turns = run_chat(orchestrator, read_prompt=_reader("any invoices?", "hello"))

        assert turns == 2
        assert output == ["Hi!"]
        printed = self.output.getvalue()
        assert "Error during AI interaction:" in printed
        assert "Mail gateway unreachable" in printed

    def test_error_text_not_treated_as_markup(self):
        orchestrator = MagicMock()
        orchestrator.submit.side_effect = ConversationError("bad [bold]value[/bold]")

        run_chat(orchestrator, read_prompt=_reader("x"))

        assert "bad [bold]value[/bold]" in self.output.getvalue()

    def test_unexpected_errors_propagate(self):
        orchestrator = MagicMock()
        orchestrator.submit.side_effect = KeyError("bug")

        with pytest.raises(KeyError):
            run_chat(orchestrator, read_prompt=_reader("x"))


class TestBuildAssistant:

    def test_end_to_end_turn(self):
        gateway = MagicMock()
        backend = ScriptedBackend(
            [ModelText("Setting "), ModelText("it."),
             FunctionCallRequest("setRoomTemperature", {"temperature": 21}, "call_1")],
            [ModelText("It is 21 degrees.")],
        )
        output = []

        orchestrator = build_assistant(backends=[backend], gateway=gateway, sink=output.append)
        turn = orchestrator.submit("make it 21 degrees")

        assert output == ["Setting ", "it.", "It is 21 degrees."]
        assert turn.result == {"temperature": 21}


class TestMainEntry:

    @patch.dict('os.environ', {}, clear=True)
    def test_chat_without_key_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main.main(["chat"])
        assert exc_info.value.code == 1

    @patch('uvicorn.run')
    def test_serve_runs_gateway(self, mock_run):
        with patch.object(main, 'console', Console(file=io.StringIO())):
            main.main(["serve", "--port", "4000"])

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == "web.app:app"
        assert mock_run.call_args.kwargs["port"] == 4000
