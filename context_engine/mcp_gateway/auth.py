"""Caller identity helpers for the ContextEngine MCP gateway.

Identity is only extracted and forwarded; credentials are never validated here.
"""

from __future__ import annotations

import ipaddress
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from context_engine.core.config import DEFAULT_SERVER_URL, SERVER_URL_ENV_VAR

HeaderValue = Union[str, Sequence[str], None]

FORWARDED_FOR_HEADER = "x-forwarded-for"
IPV4_MAPPED_PREFIX = "::ffff:"
BEARER_PREFIX = "Bearer "

# Precedence order for the API credential.
API_KEY_HEADERS = (
    "ContextEngine-API-Key",
    "context-engine-api-key",
    "X-API-Key",
    "x-api-key",
)

_PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)


@dataclass(frozen=True)
class ClientIdentity:
    """Who is calling and where their requests should be forwarded."""

    client_ip: str | None = None
    api_key: str | None = None
    server_url: str = DEFAULT_SERVER_URL


def header_value(value: HeaderValue) -> str | None:
    """Return a header as one string; repeated headers yield their first value."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    return value[0]


def lookup_header(headers: Mapping[str, HeaderValue], name: str) -> str | None:
    """Exact name match first, then a case-insensitive one."""
    if name in headers:
        return header_value(headers[name])
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return header_value(value)
    return None


def extract_bearer_token(value: HeaderValue) -> str | None:
    header = header_value(value)
    if not header:
        return None
    if header.startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX) :].strip()
    return header


def strip_ipv4_mapping(address: str) -> str:
    return address[len(IPV4_MAPPED_PREFIX) :] if address.startswith(IPV4_MAPPED_PREFIX) else address


def is_private_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    if ip.version != 4:
        return False
    return any(ip in network for network in _PRIVATE_NETWORKS)


def resolve_client_address(
    headers: Mapping[str, HeaderValue],
    remote_address: str | None = None,
) -> str | None:
    """Best public address of the caller; never raises."""
    forwarded_for = lookup_header(headers, FORWARDED_FOR_HEADER)
    if forwarded_for:
        candidates = [strip_ipv4_mapping(part.strip()) for part in forwarded_for.split(",")]
        for candidate in candidates:
            if candidate and not is_private_address(candidate):
                return candidate
        return candidates[0] or None

    if remote_address:
        return strip_ipv4_mapping(remote_address)
    return None


def resolve_api_key(headers: Mapping[str, HeaderValue]) -> str | None:
    token = extract_bearer_token(lookup_header(headers, "Authorization"))
    if token:
        return token
    for name in API_KEY_HEADERS:
        value = lookup_header(headers, name)
        if value:
            return value
    return None


def resolve_server_url(explicit: str | None = None, env: Mapping[str, str] | None = None) -> str:
    """CLI/explicit value > CONTEXT_ENGINE_SERVER_URL > built-in default."""
    if explicit:
        return explicit
    environ = os.environ if env is None else env
    return environ.get(SERVER_URL_ENV_VAR) or DEFAULT_SERVER_URL


def scope_headers(scope: Mapping[str, Any]) -> dict[str, list[str]]:
    """Decode ASGI raw headers, keeping repeated headers in order."""
    headers: dict[str, list[str]] = {}
    for raw_name, raw_value in scope.get("headers") or []:
        name = raw_name.decode("latin-1")
        headers.setdefault(name, []).append(raw_value.decode("latin-1"))
    return headers


def identity_from_scope(scope: Mapping[str, Any], server_url: str) -> ClientIdentity:
    headers = scope_headers(scope)
    client = scope.get("client")
    remote_address = client[0] if client else None
    return ClientIdentity(
        client_ip=resolve_client_address(headers, remote_address),
        api_key=resolve_api_key(headers),
        server_url=server_url,
    )
