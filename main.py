# main.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "start button". It has two modes:
#
#   python main.py               → chat with the assistant in the terminal
#   python main.py chat          → same thing
#   python main.py serve         → run the mail gateway (web/app.py)
#
# In chat mode it builds everything once (the mail gateway client, the tool
# registry, the conversation session and the turn orchestrator) and then
# loops: read a prompt, run the turn, repeat. There is no "quit"
# command; stop it with Ctrl+C (or end of input).
#
# USAGE:
#   python main.py serve --port 3001
#   python main.py serve --host 0.0.0.0
# ============================================================================

import argparse
import os
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

# Load .env before anything reads config.settings.
load_dotenv()

from agents.backends import build_backends
from agents.errors import AssistantError
from agents.session import ConversationSession
from config.settings import GATEWAY_HOST, GATEWAY_PORT, GATEWAY_URL
from orchestrator import TurnOrchestrator, console_sink
from tools.handlers import build_default_registry
from tools.mail_gateway import MailGatewayClient

console = Console()

PROMPT_TEXT = "Please enter your prompt: "
DIVIDER = "--------------------------------"


# ── BUILD THE ASSISTANT ────────────────────────────────────────────────

def build_assistant(backends=None, gateway=None, sink=None) -> TurnOrchestrator:
    """
    Wire up one assistant: gateway client → tools → session → orchestrator.

    Arguments default to the real thing built from config/settings.py.
    """
    gateway = gateway or MailGatewayClient(GATEWAY_URL)
    registry = build_default_registry(gateway)
    session = ConversationSession(registry, backends if backends is not None else build_backends())
    return TurnOrchestrator(session, registry, sink=sink or console_sink)


# ── THE CHAT LOOP ──────────────────────────────────────────────────────

def run_chat(orchestrator, read_prompt=None, max_turns=None) -> int:
    """
    Read one prompt at a time and run it as a turn, forever.

    Turn errors (backend failure, unknown tool, ...) are printed and the
    loop keeps going. It only stops at end of input, Ctrl+C, or after
    max_turns prompts (handy for tests).

    Returns:
        The number of turns that were run.
    """
    read_prompt = read_prompt or (lambda: console.input(PROMPT_TEXT))
    turns = 0

    while max_turns is None or turns < max_turns:
        try:
            prompt = read_prompt()
        except (EOFError, KeyboardInterrupt):
            console.print()
            break

        if not prompt.strip():
            continue

        turns += 1
        try:
            orchestrator.submit(prompt)
        except AssistantError as e:
            console.print()
            console.print(f"[red]Error during AI interaction:[/red] {escape(str(e))}", highlight=False)
        console.print()
        console.print(DIVIDER, markup=False)

    return turns


# ── MAIN FUNCTION ──────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Home & mail assistant: chat with a model that can control the light, "
                    "the thermostat and read your email"
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("chat", help="Chat with the assistant (default)")

    serve = subparsers.add_parser("serve", help="Run the mail gateway")
    serve.add_argument('--port', type=int, default=GATEWAY_PORT,
                       help=f"Port to run the gateway on (default: {GATEWAY_PORT})")
    serve.add_argument('--host', type=str, default=GATEWAY_HOST,
                       help=f"Host to bind to (default: {GATEWAY_HOST})")

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        console.print(f"Mail gateway running on http://{args.host}:{args.port}")
        uvicorn.run("web.app:app", host=args.host, port=args.port, reload=False, log_level="info")
        return

    if not (os.environ.get('OPENROUTER_API_KEY') or os.environ.get('ANTHROPIC_API_KEY')):
        print("Error: no model API key set.")
        print("   Create a .env file with: OPENROUTER_API_KEY=sk-or-your-key")
        print("   (or ANTHROPIC_API_KEY=sk-ant-your-key)")
        sys.exit(1)

    run_chat(build_assistant())


if __name__ == "__main__":
    main()
