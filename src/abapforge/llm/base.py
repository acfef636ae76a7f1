"""
Provider-neutral LLM interface.

This package is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
context handling) works with :class:`~abapforge.core.schema.Message` lists and normalised
:class:`~abapforge.core.schema.LLMResponse` objects.

Concrete providers register themselves with :func:`register_provider`; the factory in
:mod:`abapforge.llm.factory` selects one by name.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
)

import httpx

from abapforge.core.errors import (
    AuthenticationError,
    LLMError,
    RateLimitError,
    TransportError,
)
from abapforge.core.resilience import ResilientExecutor
from abapforge.core.schema import (
    LLMResponse,
    Message,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_RETRY_AFTER = 60


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
PROVIDER_REGISTRY: dict[str, Type["LLMProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["LLMProvider"]) -> Type["LLMProvider"]:
        PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def parse_retry_after(headers: Optional[Mapping[str, str]]) -> int:
    """Seconds from a ``Retry-After`` header; falls back to 60 when absent or not an integer."""
    if not headers:
        return DEFAULT_RETRY_AFTER
    raw = httpx.Headers(headers).get("retry-after")
    try:
        return int(raw) if raw is not None else DEFAULT_RETRY_AFTER
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class LLMProvider(ABC):
    """
    Abstract provider: ``complete(messages, tools) -> LLMResponse``.

    Every request goes through :attr:`executor` so transport faults are retried with backoff and
    a failing endpoint trips the circuit breaker.  SDK-level retries are disabled.
    """

    provider_name: ClassVar[str] = "base"
    default_model: ClassVar[str] = ""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = 120.0,
        executor: Optional[ResilientExecutor] = None,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or self.default_model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.executor = executor or ResilientExecutor.for_remote_api()
        self._client = client

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Optional[Sequence[ToolDescriptor]] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        """Send one completion request and return the normalised response."""
        params = self.build_request(list(messages), list(tools or []))
        params["max_tokens"] = max_tokens or self.max_tokens
        if temperature is not None:
            params["temperature"] = temperature
        logger.debug(
            "%s request: model=%s, messages=%d, tools=%d",
            self.provider_name,
            self.model,
            len(params.get("messages", [])),
            len(params.get("tools", [])),
        )
        return await self.executor.execute(lambda: self._send(params))

    @abstractmethod
    def build_request(
        self, messages: List[Message], tools: List[ToolDescriptor]
    ) -> Dict[str, Any]:
        """Shape the provider-specific request body (without ``max_tokens``)."""

    @abstractmethod
    async def _send(self, params: Dict[str, Any]) -> LLMResponse:
        """Perform one HTTP round trip, translate errors and normalise the response."""

    # -- error mapping -------------------------------------------------------
    def _details(self, status: Optional[int] = None) -> Dict[str, Any]:
        return {"provider": self.provider_name, "model": self.model, "status": status}

    def _status_error(
        self, status: Optional[int], message: str, headers: Optional[Mapping[str, str]]
    ) -> Exception:
        if status == 429:
            return RateLimitError(parse_retry_after(headers), details=self._details(status))
        if status == 401:
            return AuthenticationError(
                f"{self.provider_name} rejected the API key: {message}", details=self._details(status)
            )
        return LLMError(f"{self.provider_name} API error: {message}", details=self._details(status))

    def _connection_error(self, exc: Exception, timed_out: bool) -> TransportError:
        return TransportError(
            f"{self.provider_name} connection error: {exc}",
            code="ETIMEDOUT" if timed_out else "ECONNRESET",
            details=self._details(),
        )
