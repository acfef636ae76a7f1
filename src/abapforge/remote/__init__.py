"""Remote-operation facades: HTTP (:class:`AdtGateway`) and offline (:class:`FixtureGateway`)."""

import logging
from typing import Optional

from abapforge.config import settings
from abapforge.core.oauth import OAuth2TokenProvider
from abapforge.remote.fixture_gateway import FixtureGateway
from abapforge.remote.gateway import AdtGateway

logger = logging.getLogger(__name__)

__all__ = ["AdtGateway", "FixtureGateway", "create_remote"]


def create_remote(base_url: Optional[str] = None) -> AdtGateway | FixtureGateway:
    """
    The facade for the configured system.

    Falls back to ``settings.ADT_BASE_URL``; without a URL the offline :class:`FixtureGateway` is
    returned.  OAuth2 is used when a token URL is configured.
    """
    base_url = base_url or settings.ADT_BASE_URL
    if not base_url:
        logger.info("No ADT_BASE_URL configured; tools are served from fixture data")
        return FixtureGateway()

    token_provider = None
    if settings.ADT_TOKEN_URL:
        token_provider = OAuth2TokenProvider(
            token_url=settings.ADT_TOKEN_URL,
            client_id=settings.ADT_CLIENT_ID,
            client_secret=settings.ADT_CLIENT_SECRET,
            scope=settings.ADT_SCOPE,
            tenant=settings.ADT_TENANT,
            tenant_header=settings.ADT_TENANT_HEADER,
        )
    logger.info("Using remote system at %s", base_url)
    return AdtGateway(base_url, token_provider=token_provider, timeout=settings.ADT_TIMEOUT)
