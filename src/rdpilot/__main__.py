"""rdpilot - remote desktop assistant service.

Usage:
    rdpilot                Start the HTTP server (default)
    rdpilot --help         Show this help message
    rdpilot-shell          Chat with the assistant from the terminal

Environment Variables:
    RDPILOT_HOST            Server host (default: 127.0.0.1)
    RDPILOT_PORT            Server port (default: 8020)
    RDPILOT_LOG_LEVEL       Logging level (default: INFO)
    RDPILOT_DATA_DIR        Profiles, screenshots and log file (default: ~/.rdpilot)
    OPENAI_API_KEY          Enables model-backed parsing (OpenAI)
    AZURE_OPENAI_API_KEY    Enables model-backed parsing (Azure OpenAI, with
    AZURE_OPENAI_ENDPOINT   the endpoint)
"""

from __future__ import annotations

import argparse

import uvicorn

from .config import SERVER_INFO
from .logging_setup import configure_logging
from .settings import settings


def main() -> None:
    """Main entry point for the rdpilot server."""
    parser = argparse.ArgumentParser(
        prog="rdpilot",
        description="rdpilot - remote desktop assistant and MCP gateway",
        epilog="""
Examples:
  rdpilot                     Start the server on the default port
  rdpilot --port 8030         Start on a custom port
  rdpilot --reload            Auto-reload on code changes (development)

To chat from the terminal, use rdpilot-shell:
  rdpilot-shell "connect to server1.example.com as admin"
  rdpilot-shell --help
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Server host (default: {settings.host})",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.port,
        help=f"Server port (default: {settings.port})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (for development)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level.upper(),
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {SERVER_INFO.VERSION}",
    )

    args = parser.parse_args()

    configure_logging(args.log_level)

    print(f"Starting rdpilot on {args.host}:{args.port}")
    print("Press Ctrl+C to stop\n")

    uvicorn.run(
        "rdpilot.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
