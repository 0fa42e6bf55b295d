"""Client for the remote ContextEngine HTTP API.

Each operation declares an ErrorPolicy: RAISE operations propagate a
RemoteCallError to the caller, RETURN operations degrade to an ApiResult
carrying a readable error message.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar
from urllib.parse import quote, urlencode

import httpx

from context_engine.core.config import DEFAULT_SERVER_URL, ApiClientConfig
from context_engine.core.encryption import encrypt_client_ip
from context_engine.core.errors import RemoteCallError
from context_engine.mcp_gateway.auth import ClientIdentity

_log = logging.getLogger("context_engine.api")

T = TypeVar("T")

CLIENT_IP_HEADER = "mcp-client-ip"
SOURCE_HEADER = "X-ContextEngine-Source"
SOURCE_VALUE = "mcp-server"

NO_CONTENT = "No content available"
START_FALLBACK = "Context engine start request sent but no confirmation available."
GREETING_FALLBACK = "Hello! API is working but no greeting content available."


class ErrorPolicy(Enum):
    RAISE = "raise"
    RETURN = "return"


@dataclass(frozen=True)
class ApiOperation:
    name: str
    endpoint: str
    versioned: bool
    policy: ErrorPolicy
    failure_prefix: str = ""


START_CONTEXT_ENGINE = ApiOperation(
    name="start context engine",
    endpoint="start-context-engine",
    versioned=False,
    policy=ErrorPolicy.RAISE,
)
CHECK_HEALTH = ApiOperation(
    name="check health",
    endpoint="health",
    versioned=True,
    policy=ErrorPolicy.RETURN,
    failure_prefix="Health check failed",
)
GREET = ApiOperation(
    name="greet",
    endpoint="greet",
    versioned=True,
    policy=ErrorPolicy.RETURN,
    failure_prefix="Greeting failed",
)
SEARCH_LIBRARIES = ApiOperation(
    name="search libraries",
    endpoint="search",
    versioned=True,
    policy=ErrorPolicy.RETURN,
    failure_prefix="Error searching libraries",
)
FETCH_LIBRARY_DOCUMENTATION = ApiOperation(
    name="fetch library documentation",
    endpoint="docs",
    versioned=True,
    policy=ErrorPolicy.RETURN,
    failure_prefix="Error fetching library documentation",
)


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Outcome of a RETURN-policy operation."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T | None) -> "ApiResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "ApiResult[T]":
        return cls(ok=False, error=error)


def build_api_url(
    endpoint: str,
    params: Mapping[str, Any] | None = None,
    server_url: str | None = None,
    versioned: bool = False,
) -> str:
    """Build ``{base}/api[/v1]/{endpoint}``; falsy params are left out."""
    base = (server_url or DEFAULT_SERVER_URL).rstrip("/")
    prefix = "api/v1" if versioned else "api"
    url = f"{base}/{prefix}/{endpoint}"
    query = {key: str(value) for key, value in (params or {}).items() if value}
    if query:
        url = f"{url}?{urlencode(query)}"
    return url


def generate_headers(
    client_ip: str | None = None,
    api_key: str | None = None,
    extra_headers: Mapping[str, str] | None = None,
    encryption_key: str | None = None,
) -> dict[str, str]:
    """Merge request headers; identity headers always win over ``extra_headers``.

    The client address is encrypted when ``encryption_key`` is a valid key.
    """
    built_in: dict[str, str] = {}
    if client_ip:
        built_in[CLIENT_IP_HEADER] = encrypt_client_ip(client_ip, encryption_key)
    if api_key:
        built_in["Authorization"] = f"Bearer {api_key}"

    overridden = {name.lower() for name in built_in}
    headers = {
        name: value
        for name, value in (extra_headers or {}).items()
        if name.lower() not in overridden
    }
    headers.update(built_in)
    return headers


def describe_status_error(status_code: int, operation: str, lookup: bool = False) -> str:
    """Human-readable message for a non-success API status."""
    if status_code == 429:
        return "Rate limited due to too many requests. Please try again later."
    if status_code == 401:
        return "Unauthorized. Please check your API key."
    if status_code == 404:
        if lookup:
            return (
                "The library you are trying to access does not exist. "
                "Please try with a different library ID."
            )
        return "API endpoint not found. Please check the server URL and endpoint path."
    return f"Failed to {operation}. Please try again later. Error code: {status_code}"


def _response_text(response: httpx.Response) -> str:
    return response.text


def _response_json(response: httpx.Response) -> Any:
    return response.json()


class ContextEngineClient:
    """Outbound calls on behalf of one caller identity."""

    def __init__(
        self,
        identity: ClientIdentity,
        config: ApiClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.identity = identity
        self.config = config or ApiClientConfig()
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        # Proxy settings come from ApiClientConfig only, never from httpx's own env lookup.
        return httpx.AsyncClient(
            proxy=self.config.proxy_url,
            timeout=httpx.Timeout(self.config.timeout),
            transport=self._transport,
            trust_env=False,
        )

    def _headers(self) -> dict[str, str]:
        return generate_headers(
            self.identity.client_ip,
            self.identity.api_key,
            {SOURCE_HEADER: SOURCE_VALUE},
            encryption_key=self.config.encryption_key,
        )

    async def _request(
        self,
        operation: ApiOperation,
        endpoint: str,
        params: Mapping[str, Any] | None,
    ) -> httpx.Response:
        url = build_api_url(endpoint, params, self.identity.server_url, operation.versioned)
        try:
            async with self._http_client() as client:
                response = await client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            _log.error(
                "API request failed",
                extra={"operation": operation.name, "error_message": str(e)},
            )
            raise RemoteCallError(str(e)) from e

        if not response.is_success:
            error_message = describe_status_error(
                response.status_code, operation.name, lookup=operation.versioned
            )
            _log.error(
                "API request failed",
                extra={"operation": operation.name, "error_message": error_message},
            )
            raise RemoteCallError(error_message, status_code=response.status_code)
        return response

    async def call(
        self,
        operation: ApiOperation,
        parse: Callable[[httpx.Response], T],
        *,
        endpoint: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> ApiResult[T]:
        """Run one operation, applying its error policy.

        Raises:
            RemoteCallError: only for RAISE-policy operations.
        """
        try:
            response = await self._request(operation, endpoint or operation.endpoint, params)
            try:
                value = parse(response)
            except ValueError as e:
                raise RemoteCallError(f"Invalid response from API: {e}") from e
        except RemoteCallError as e:
            if operation.policy is ErrorPolicy.RAISE:
                raise
            return ApiResult.failure(f"{operation.failure_prefix}: {e}")
        return ApiResult.success(value)

    async def start_context_engine(self) -> str:
        """Ask the API to start the context engine; raises RemoteCallError on failure."""
        result = await self.call(START_CONTEXT_ENGINE, _response_text)
        text = result.value
        if not text or text == NO_CONTENT:
            return START_FALLBACK
        return text

    async def check_health(self) -> ApiResult[Any]:
        return await self.call(CHECK_HEALTH, _response_json)

    async def greet(self, name: str | None = None) -> ApiResult[str]:
        result = await self.call(GREET, _response_text, params={"name": name})
        if result.ok and result.value == NO_CONTENT:
            return ApiResult.success(GREETING_FALLBACK)
        return result

    async def search_libraries(self, query: str) -> ApiResult[Any]:
        return await self.call(SEARCH_LIBRARIES, _response_json, params={"query": query})

    async def fetch_library_documentation(
        self,
        library_id: str,
        tokens: int | None = None,
        topic: str | None = None,
    ) -> ApiResult[str]:
        """Fetch docs text for a library; an empty document yields ``value=None``."""
        endpoint = f"{FETCH_LIBRARY_DOCUMENTATION.endpoint}/{quote(library_id.lstrip('/'), safe='/')}"
        result = await self.call(
            FETCH_LIBRARY_DOCUMENTATION,
            _response_text,
            endpoint=endpoint,
            params={"tokens": tokens, "topic": topic},
        )
        if result.ok and (not result.value or result.value == NO_CONTENT):
            return ApiResult.success(None)
        return result
