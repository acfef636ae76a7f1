"""Factory for creating LLM provider instances from explicit options or settings."""

import logging
from typing import (
    Any,
    Dict,
    Optional,
)

from abapforge.config import settings
from abapforge.core.errors import ConfigurationError
from abapforge.core.resilience import ResilientExecutor
from abapforge.llm import (  # noqa: F401  pylint: disable=unused-import
    anthropic_provider,
    openai_provider,
)
from abapforge.llm.base import (
    PROVIDER_REGISTRY,
    LLMProvider,
)

logger = logging.getLogger(__name__)


def create_provider(
    provider: Optional[str] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    max_tokens: Optional[int] = None,
    api_version: Optional[str] = None,
    timeout: Optional[float] = None,
    executor: Optional[ResilientExecutor] = None,
) -> LLMProvider:
    """
    Return an instantiated provider.

    Every option falls back to its ``AI_*`` setting: ``AI_PROVIDER`` (default ``"anthropic"``),
    ``AI_API_KEY``, ``AI_MODEL``, ``AI_BASE_URL``, ``AI_MAX_TOKENS`` and ``AI_API_VERSION``.

    Raises
    ------
    ConfigurationError
        When no API key is available or the provider name is not registered.
    """
    name = (provider or settings.AI_PROVIDER or "anthropic").lower()
    key = api_key or settings.AI_API_KEY
    if not key:
        raise ConfigurationError("AI_API_KEY is required for live mode", details={"provider": name})

    cls = PROVIDER_REGISTRY.get(name)
    if cls is None:
        raise ConfigurationError(
            f"Unknown AI provider: {name}. Use: {', '.join(sorted(PROVIDER_REGISTRY))}",
            details={"provider": name},
        )

    kwargs: Dict[str, Any] = {
        "model": model or settings.AI_MODEL,
        "base_url": base_url or settings.AI_BASE_URL,
        "max_tokens": max_tokens or settings.AI_MAX_TOKENS,
        "timeout": timeout or settings.AI_TIMEOUT,
        "executor": executor,
    }
    if name == "azure":
        kwargs["api_version"] = api_version or settings.AI_API_VERSION

    logger.info("Using LLM provider '%s' (model=%s)", name, kwargs["model"] or cls.default_model)
    return cls(key, **kwargs)
