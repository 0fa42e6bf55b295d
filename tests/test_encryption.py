"""Tests for client address encryption in outbound headers."""

import asyncio

import httpx
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from context_engine.core.api import ContextEngineClient, generate_headers
from context_engine.core.config import ENCRYPTION_KEY_ENV_VAR, ApiClientConfig
from context_engine.core.encryption import encrypt_client_ip, is_valid_encryption_key
from context_engine.mcp_gateway.auth import ClientIdentity

KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


def _decrypt(value: str, key: str = KEY) -> str:
    iv_hex, ciphertext_hex = value.split(":")
    decryptor = Cipher(
        algorithms.AES(bytes.fromhex(key)), modes.CBC(bytes.fromhex(iv_hex))
    ).decryptor()
    padded = decryptor.update(bytes.fromhex(ciphertext_hex)) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")


class TestEncryptClientIp:
    def test_ciphertext_format_and_decryption(self) -> None:
        value = encrypt_client_ip("192.168.1.1", KEY)

        iv_hex, ciphertext_hex = value.split(":")
        assert len(iv_hex) == 32
        assert len(ciphertext_hex) == 32
        assert "192.168.1.1" not in value
        assert _decrypt(value) == "192.168.1.1"

    def test_fresh_iv_per_call(self) -> None:
        assert encrypt_client_ip("203.0.113.5", KEY) != encrypt_client_ip("203.0.113.5", KEY)

    def test_invalid_key_falls_back_to_plain_text(self) -> None:
        assert encrypt_client_ip("203.0.113.5", "not-hex") == "203.0.113.5"
        assert encrypt_client_ip("203.0.113.5", KEY[:-2]) == "203.0.113.5"
        assert encrypt_client_ip("203.0.113.5", None) == "203.0.113.5"

    def test_key_validation(self) -> None:
        assert is_valid_encryption_key(KEY) is True
        assert is_valid_encryption_key(KEY.upper()) is True
        assert is_valid_encryption_key(KEY + "\n") is False
        assert is_valid_encryption_key("") is False


class TestGenerateHeadersEncryption:
    def test_client_ip_header_is_encrypted(self) -> None:
        headers = generate_headers("192.168.1.1", encryption_key=KEY)

        assert set(headers) == {"mcp-client-ip"}
        assert headers["mcp-client-ip"] != "192.168.1.1"
        assert _decrypt(headers["mcp-client-ip"]) == "192.168.1.1"

    def test_built_in_headers_override_extras(self) -> None:
        headers = generate_headers(
            "192.168.1.1",
            "test-api-key",
            {"Authorization": "Custom-Auth custom-value", "mcp-client-ip": "custom-ip"},
            encryption_key=KEY,
        )

        assert headers["Authorization"] == "Bearer test-api-key"
        assert headers["mcp-client-ip"] != "custom-ip"
        assert _decrypt(headers["mcp-client-ip"]) == "192.168.1.1"

    def test_empty_values_produce_no_headers(self) -> None:
        assert generate_headers("", encryption_key=KEY) == {}
        assert generate_headers(None, "", encryption_key=KEY) == {}
        assert generate_headers(None, None) == {}


class TestClientUsesConfiguredKey:
    def test_key_read_from_environment(self) -> None:
        config = ApiClientConfig.from_env({ENCRYPTION_KEY_ENV_VAR: KEY})
        assert config.encryption_key == KEY
        assert ApiClientConfig.from_env({ENCRYPTION_KEY_ENV_VAR: ""}).encryption_key is None

    def test_outbound_request_carries_ciphertext(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="started")

        client = ContextEngineClient(
            ClientIdentity(client_ip="198.51.100.4", server_url="https://example.com"),
            ApiClientConfig(encryption_key=KEY),
            transport=httpx.MockTransport(handler),
        )

        asyncio.run(client.start_context_engine())

        header = seen[0].headers["mcp-client-ip"]
        assert header != "198.51.100.4"
        assert _decrypt(header) == "198.51.100.4"
