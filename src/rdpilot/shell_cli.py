"""rdpilot shell - chat with the assistant from the terminal.

Runs an in-process runtime: sessions opened here live as long as the
process does. With a prompt the request runs once and the process exits;
without one an interactive loop starts (``exit`` or Ctrl+D to leave).

Usage:
    rdpilot-shell "connect to server1.example.com as admin"
    rdpilot-shell --interactive
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import NoReturn

from .assistant import AssistantReply
from .config import SERVER_INFO
from .logging_setup import configure_logging
from .runtime import Runtime, build_runtime

EXIT_WORDS = {"exit", "quit", "bye"}


def colorize(text: str, color: str) -> str:
    """Apply ANSI color codes if stdout is a TTY."""
    if not sys.stdout.isatty():
        return text

    colors = {
        "cyan": "\033[36m",
        "green": "\033[32m",
        "red": "\033[31m",
        "dim": "\033[2m",
        "reset": "\033[0m",
    }
    return f"{colors.get(color, '')}{text}{colors['reset']}"


def print_header(runtime: Runtime) -> None:
    header = colorize("rdpilot", "cyan") + colorize(f" ({runtime.parser.mode} mode)", "dim")
    print(header, file=sys.stderr)


def print_reply(reply: AssistantReply) -> None:
    color = "red" if reply.results and not reply.success else "green"
    print(colorize(reply.text, color if reply.results else "reset"))


async def _chat(prompt: str, *, interactive: bool, quiet: bool) -> int:
    runtime = build_runtime()
    conversation_id: str | None = None
    failed = False
    try:
        if not quiet:
            print_header(runtime)

        if prompt:
            reply = await runtime.assistant.respond(prompt, conversation_id)
            conversation_id = reply.conversation_id
            print_reply(reply)
            failed = bool(reply.results) and not reply.success

        while interactive:
            try:
                line = await asyncio.to_thread(input, colorize("> ", "cyan"))
            except EOFError:
                print(file=sys.stderr)
                break
            line = line.strip()
            if not line:
                continue
            if line.lower() in EXIT_WORDS:
                break
            reply = await runtime.assistant.respond(line, conversation_id)
            conversation_id = reply.conversation_id
            print_reply(reply)
    finally:
        await runtime.shutdown()
    return 1 if failed and not interactive else 0


def main() -> NoReturn:
    """Main entry point for the shell CLI."""
    parser = argparse.ArgumentParser(
        prog="rdpilot-shell",
        description="Chat with the rdpilot remote desktop assistant",
        epilog="""
Examples:
  rdpilot-shell "list sessions"
  rdpilot-shell "connect to a.example.com as admin and take a screenshot"
  rdpilot-shell -i                 # interactive session
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("prompt", nargs="*", help="Request in plain language")
    parser.add_argument(
        "--interactive", "-i",
        action="store_true",
        help="Keep prompting after the first request",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress the header",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {SERVER_INFO.VERSION}",
    )

    args = parser.parse_args()
    configure_logging(args.log_level)

    prompt = " ".join(args.prompt).strip()
    if not prompt and not args.interactive and not sys.stdin.isatty():
        prompt = sys.stdin.read().strip()
    interactive = args.interactive or (not prompt and sys.stdin.isatty())

    if not prompt and not interactive:
        print("Usage: rdpilot-shell 'your request'", file=sys.stderr)
        sys.exit(1)

    try:
        sys.exit(asyncio.run(_chat(prompt, interactive=interactive, quiet=args.quiet)))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
