"""Startup configuration for the ContextEngine gateway."""

import argparse
import os
import re
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

DEFAULT_SERVER_URL = "https://contextengine.in"
SERVER_URL_ENV_VAR = "CONTEXT_ENGINE_SERVER_URL"
ENCRYPTION_KEY_ENV_VAR = "CLIENT_IP_ENCRYPTION_KEY"
DEFAULT_HTTP_PORT = 3000
DEFAULT_HTTP_HOST = "0.0.0.0"
ALLOWED_TRANSPORTS = ("stdio", "http")

# Checked in order; the first variable that is set wins.
PROXY_ENV_VARS = ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy")

_PROXY_URL_PATTERN = re.compile(r"^(http|https)://", re.IGNORECASE)


def looks_like_unexpanded_variable(value: str) -> bool:
    """True for values such as ``$HTTPS_PROXY`` left over from a config file."""
    return value.startswith("$")


def is_valid_proxy_url(value: str | None) -> bool:
    if not value:
        return False
    if looks_like_unexpanded_variable(value):
        return False
    return bool(_PROXY_URL_PATTERN.match(value))


def resolve_proxy_url(env: Mapping[str, str] | None = None) -> str | None:
    """Return the proxy URL for outbound API calls, or None when unset/invalid."""
    environ = os.environ if env is None else env
    for name in PROXY_ENV_VARS:
        value = environ.get(name)
        if value is not None:
            return value if is_valid_proxy_url(value) else None
    return None


@dataclass(frozen=True)
class ApiClientConfig:
    """Process-level settings for outbound ContextEngine API calls."""

    proxy_url: str | None = None
    timeout: float | None = None
    encryption_key: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ApiClientConfig":
        environ = os.environ if env is None else env
        return cls(
            proxy_url=resolve_proxy_url(environ),
            encryption_key=environ.get(ENCRYPTION_KEY_ENV_VAR) or None,
        )


@dataclass(frozen=True)
class GatewayConfig:
    transport: str = "stdio"
    port: int = DEFAULT_HTTP_PORT
    host: str = DEFAULT_HTTP_HOST
    api_key: str | None = None
    server_url: str | None = None


class CliUsageError(Exception):
    """Invalid command-line flag or flag combination."""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ContextEngine Documentation MCP Server")
    parser.add_argument(
        "--transport",
        default="stdio",
        help="Transport type: stdio (default) or http",
    )
    parser.add_argument(
        "--port",
        default=None,
        help=f"Port for HTTP transport (default {DEFAULT_HTTP_PORT}, http only)",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="API key for authentication (stdio only; use headers with http)",
    )
    parser.add_argument(
        "--server-url",
        default=None,
        help=f"Custom server URL (defaults to {DEFAULT_SERVER_URL})",
    )
    return parser


def build_gateway_config(args: argparse.Namespace) -> GatewayConfig:
    """Validate parsed flags and turn them into a GatewayConfig.

    Raises:
        CliUsageError: on an unknown transport or a disallowed flag combination.
    """
    transport = args.transport
    if transport not in ALLOWED_TRANSPORTS:
        raise CliUsageError(
            f"Invalid --transport value: '{transport}'. Must be one of: stdio, http."
        )

    if transport == "http" and args.api_key is not None:
        raise CliUsageError(
            "The --api-key flag is not allowed when using --transport http. "
            "Use header-based auth at the HTTP layer instead."
        )

    if transport == "stdio" and args.port is not None:
        raise CliUsageError("The --port flag is not allowed when using --transport stdio.")

    port = DEFAULT_HTTP_PORT
    if args.port is not None:
        try:
            port = int(args.port)
        except ValueError as e:
            raise CliUsageError(f"Invalid --port value: '{args.port}'. Must be a number.") from e

    return GatewayConfig(
        transport=transport,
        port=port,
        api_key=args.api_key,
        server_url=args.server_url,
    )


def parse_cli_args(argv: Sequence[str] | None = None) -> GatewayConfig:
    """Parse CLI flags; prints the problem to stderr and exits 1 when invalid."""
    parser = _build_parser()
    args, _unknown = parser.parse_known_args(argv)
    try:
        return build_gateway_config(args)
    except CliUsageError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
