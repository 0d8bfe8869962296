"""Console entry points.

``mcp-codereview-reviewboard`` / ``mcp-codereview-jira``
    Run one of the MCP servers (stdio by default).
``mcp-codereview-oauth-setup``
    Run the interactive Review Board authorization and write the
    credential file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from typing import Sequence

from fastmcp import FastMCP

from mcp_codereview.oauth.errors import AuthorizationCancelled, OAuthError
from mcp_codereview.oauth.flow import (
    DEFAULT_TIMEOUT_SECONDS,
    OAuthSetupSettings,
    run_authorization_flow,
)
from mcp_codereview.oauth.store import CredentialFile
from mcp_codereview.utils.environment import env_flag, get_available_services, is_read_only_mode
from mcp_codereview.utils.logging import setup_logging

logger = logging.getLogger("mcp-codereview.cli")

TRANSPORTS = ("stdio", "sse", "streamable-http")


def _log_level(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1 or env_flag("MCP_VERBOSE"):
        return logging.INFO
    return logging.WARNING


# --------------------------------------------------------------------------- #
# MCP servers                                                                 #
# --------------------------------------------------------------------------- #
def _server_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--transport",
        choices=TRANSPORTS,
        default=os.getenv("TRANSPORT", "stdio"),
        help="MCP transport (default: stdio)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=os.getenv("PORT", "8000"),
        help="Port for the sse / streamable-http transports (default: 8000)",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase log verbosity"
    )
    return parser


def _run_server(server: FastMCP, args: argparse.Namespace) -> None:
    setup_logging(_log_level(args.verbose))
    get_available_services()
    if is_read_only_mode():
        from mcp_codereview.servers.dependencies import hide_write_tools

        asyncio.run(hide_write_tools(server))

    logger.info("Starting %s over %s", server.name, args.transport)
    if args.transport == "stdio":
        server.run(transport="stdio")
    else:
        server.run(transport=args.transport, host=args.host, port=args.port)


def reviewboard_main(argv: Sequence[str] | None = None) -> None:
    from mcp_codereview.servers.reviewboard import reviewboard_mcp

    args = _server_parser("Review Board MCP server").parse_args(argv)
    _run_server(reviewboard_mcp, args)


def jira_main(argv: Sequence[str] | None = None) -> None:
    from mcp_codereview.servers.jira import jira_mcp

    args = _server_parser("Jira MCP server").parse_args(argv)
    _run_server(jira_mcp, args)


# --------------------------------------------------------------------------- #
# OAuth setup                                                                 #
# --------------------------------------------------------------------------- #
def _setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Authorize this machine against Review Board and store the OAuth "
            "credential file. Reads REVIEWBOARD_URL, REVIEWBOARD_CLIENT_ID, "
            "REVIEWBOARD_CLIENT_SECRET and OAUTH_CALLBACK_PORT."
        )
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="Seconds to wait for the browser callback (default: 300)",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Only print the authorization URL; do not open a browser",
    )
    parser.add_argument(
        "--config",
        help="Credential file path (default: $REVIEWBOARD_OAUTH_CONFIG or "
        "~/.mcp-codereview/oauth-config.json)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Callback port, overriding OAUTH_CALLBACK_PORT",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


def oauth_setup_main(argv: Sequence[str] | None = None) -> int:
    """Run the setup flow; returns the process exit code."""
    args = _setup_parser().parse_args(argv)
    setup_logging(_log_level(args.verbose))

    try:
        settings = OAuthSetupSettings.from_env()
        if args.port is not None:
            if not 1 <= args.port <= 65535:
                print("Error: --port must be between 1 and 65535", file=sys.stderr)
                return 1
            settings = replace(settings, callback_port=args.port)
        store = CredentialFile(args.config)
        record = asyncio.run(
            run_authorization_flow(
                settings,
                store=store,
                timeout=args.timeout,
                open_browser=not args.no_browser,
            )
        )
    except (KeyboardInterrupt, AuthorizationCancelled):
        print("\nAuthorization cancelled.", file=sys.stderr)
        return 130
    except OAuthError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: could not write the credential file: {exc}", file=sys.stderr)
        return 1

    print("\nAuthorization successful!")
    print(f"OAuth configuration saved to {store.path}")
    print(f"Access token expires at {record.expires_at} (epoch ms)")
    return 0


def oauth_setup_entry() -> None:
    sys.exit(oauth_setup_main())
