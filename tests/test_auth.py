"""Tests for caller identity extraction."""

from context_engine.core.config import DEFAULT_SERVER_URL, SERVER_URL_ENV_VAR
from context_engine.mcp_gateway.auth import (
    ClientIdentity,
    extract_bearer_token,
    identity_from_scope,
    is_private_address,
    lookup_header,
    resolve_api_key,
    resolve_client_address,
    resolve_server_url,
    scope_headers,
)


class TestClientAddress:
    def test_first_public_forwarded_address_wins(self) -> None:
        headers = {"x-forwarded-for": "10.0.0.1, 203.0.113.5, 198.51.100.7"}
        assert resolve_client_address(headers, "127.0.0.1") == "203.0.113.5"

    def test_all_private_falls_back_to_first_entry(self) -> None:
        headers = {"x-forwarded-for": "192.168.1.4, 10.0.0.2"}
        assert resolve_client_address(headers) == "192.168.1.4"

    def test_ipv4_mapping_is_stripped(self) -> None:
        headers = {"X-Forwarded-For": "::ffff:10.1.1.1, ::ffff:8.8.8.8"}
        assert resolve_client_address(headers) == "8.8.8.8"

    def test_repeated_header_uses_first_value(self) -> None:
        headers = {"x-forwarded-for": ["8.8.4.4", "1.1.1.1"]}
        assert resolve_client_address(headers) == "8.8.4.4"

    def test_remote_address_used_without_forwarded_header(self) -> None:
        assert resolve_client_address({}, "::ffff:172.16.0.9") == "172.16.0.9"

    def test_nothing_known_returns_none(self) -> None:
        assert resolve_client_address({}) is None
        assert resolve_client_address({"x-forwarded-for": ""}, None) is None

    def test_private_ranges(self) -> None:
        assert is_private_address("10.255.0.1") is True
        assert is_private_address("172.31.255.255") is True
        assert is_private_address("172.32.0.1") is False
        assert is_private_address("192.168.0.1") is True
        assert is_private_address("8.8.8.8") is False
        assert is_private_address("fd00::1") is False
        assert is_private_address("not-an-ip") is False


class TestApiKey:
    def test_bearer_prefix_is_stripped(self) -> None:
        assert extract_bearer_token("Bearer abc123") == "abc123"
        assert extract_bearer_token("raw-token") == "raw-token"
        assert extract_bearer_token(None) is None

    def test_authorization_takes_precedence(self) -> None:
        headers = {"authorization": "Bearer from-auth", "x-api-key": "from-x"}
        assert resolve_api_key(headers) == "from-auth"

    def test_named_headers_in_order(self) -> None:
        headers = {"x-api-key": "from-x", "contextengine-api-key": "from-ce"}
        assert resolve_api_key(headers) == "from-ce"

    def test_dashed_variant(self) -> None:
        assert resolve_api_key({"context-engine-api-key": "dashed"}) == "dashed"

    def test_no_credential(self) -> None:
        assert resolve_api_key({"content-type": "application/json"}) is None

    def test_lookup_header_exact_then_case_insensitive(self) -> None:
        headers = {"X-API-Key": "upper", "x-api-key": "lower"}
        assert lookup_header(headers, "x-api-key") == "lower"
        assert lookup_header({"X-Api-KEY": "mixed"}, "x-api-key") == "mixed"


class TestServerUrl:
    def test_explicit_wins(self) -> None:
        env = {SERVER_URL_ENV_VAR: "https://env.example.com"}
        assert resolve_server_url("https://cli.example.com", env) == "https://cli.example.com"

    def test_environment_then_default(self) -> None:
        assert resolve_server_url(None, {SERVER_URL_ENV_VAR: "https://env.example.com"}) == (
            "https://env.example.com"
        )
        assert resolve_server_url(None, {}) == DEFAULT_SERVER_URL


class TestScopeIdentity:
    def test_identity_from_asgi_scope(self) -> None:
        scope = {
            "type": "http",
            "headers": [
                (b"x-forwarded-for", b"10.0.0.3, 93.184.216.34"),
                (b"authorization", b"Bearer secret"),
            ],
            "client": ("127.0.0.1", 50000),
        }
        identity = identity_from_scope(scope, "https://example.com")
        assert identity == ClientIdentity(
            client_ip="93.184.216.34",
            api_key="secret",
            server_url="https://example.com",
        )

    def test_identity_uses_peer_address(self) -> None:
        scope = {"type": "http", "headers": [], "client": ("198.51.100.2", 1234)}
        identity = identity_from_scope(scope, DEFAULT_SERVER_URL)
        assert identity.client_ip == "198.51.100.2"
        assert identity.api_key is None

    def test_repeated_raw_headers_keep_order(self) -> None:
        scope = {"headers": [(b"x-api-key", b"one"), (b"x-api-key", b"two")]}
        assert scope_headers(scope) == {"x-api-key": ["one", "two"]}


def test_bearer_token_is_trimmed() -> None:
    assert resolve_api_key({"Authorization": "Bearer   abc123  "}) == "abc123"
    assert resolve_api_key({"Authorization": "abc123"}) == "abc123"


def test_private_only_chain_returns_first_hop() -> None:
    assert resolve_client_address({"x-forwarded-for": "10.0.0.1, 192.168.1.1"}) == "10.0.0.1"
