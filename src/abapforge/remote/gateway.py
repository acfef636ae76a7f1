"""
Remote-operation facade over HTTP.

Each tool operation is one JSON call against an ADT-style REST endpoint.  Calls go through a
:class:`~abapforge.core.resilience.ResilientExecutor` (transport faults are retried, the breaker
guards the system as a whole) and carry OAuth2 bearer headers when a token provider is configured.
A 401 drops the cached token so the next call fetches a fresh one.
"""

import logging
from typing import (
    Any,
    Dict,
    Optional,
)
from urllib.parse import quote

import httpx

from abapforge.core.errors import (
    AuthenticationError,
    RemoteOperationError,
    transport_error_from,
)
from abapforge.core.oauth import OAuth2TokenProvider
from abapforge.core.resilience import ResilientExecutor

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_TIMEOUT = 30.0
MAX_ERROR_BODY = 500

OBJECT_COLLECTIONS: Dict[str, str] = {
    "CLAS": "oo/classes",
    "INTF": "oo/interfaces",
    "FUGR": "functions/groups",
    "PROG": "programs/programs",
    "TABL": "ddic/tables",
    "DTEL": "ddic/dataelements",
}
DEFAULT_OBJECT_TYPE = "CLAS"


def object_uri(object_name: str, object_type: Optional[str]) -> str:
    """ADT URI of an object, e.g. ``/sap/bc/adt/oo/classes/zcl_x``."""
    collection = OBJECT_COLLECTIONS.get(object_type or DEFAULT_OBJECT_TYPE, OBJECT_COLLECTIONS["CLAS"])
    return f"/sap/bc/adt/{collection}/{quote(object_name.lower(), safe='')}"


class AdtGateway:
    """
    Remote operations against an ABAP system's development tools API.

    Parameters
    ----------
    base_url:
        Root URL of the system, e.g. ``https://host:44300``.
    token_provider:
        Supplies ``Authorization`` (and tenant) headers.  ``None`` sends no credentials.
    executor:
        Resilience wrapper for every call.  Defaults to ``ResilientExecutor.for_remote_api()``.
    timeout:
        Per-request deadline in seconds.
    client:
        Pre-built ``httpx.AsyncClient`` (tests inject one with a ``MockTransport``).
    """

    mode = "live"

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[OAuth2TokenProvider] = None,
        executor: Optional[ResilientExecutor] = None,
        timeout: float = DEFAULT_REMOTE_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.executor = executor or ResilientExecutor.for_remote_api()
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AdtGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------
    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        extra_headers = kwargs.pop("headers", {})

        async def attempt() -> httpx.Response:
            headers = {"Accept": "application/json"}
            if self.token_provider is not None:
                headers.update(await self.token_provider.get_headers())
            headers.update(extra_headers)
            logger.debug("%s %s (%s)", method, path, operation)
            try:
                response = await self._client.request(method, path, headers=headers, **kwargs)
            except httpx.TransportError as exc:
                raise transport_error_from(exc, f"{operation} failed") from exc

            if response.status_code == 401:
                if self.token_provider is not None:
                    self.token_provider.invalidate()
                raise AuthenticationError(
                    f"{operation} rejected: HTTP 401",
                    details={"operation": operation, "status": 401},
                )
            if response.is_error:
                raise RemoteOperationError(
                    f"{operation} failed: HTTP {response.status_code}",
                    details={
                        "operation": operation,
                        "status": response.status_code,
                        "body": response.text[:MAX_ERROR_BODY],
                    },
                )
            return response

        return await self.executor.execute(attempt)

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteOperationError(
                f"{operation} returned invalid JSON",
                details={"operation": operation, "body": response.text[:MAX_ERROR_BODY]},
            ) from exc

    @classmethod
    def _object(cls, response: httpx.Response, operation: str) -> Dict[str, Any]:
        body = cls._json(response, operation)
        return body if isinstance(body, dict) else {"result": body}

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------
    async def read(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]:
        kind = object_type or DEFAULT_OBJECT_TYPE
        response = await self._request(
            "read", "GET", f"{object_uri(object_name, kind)}/source/main", headers={"Accept": "text/plain"}
        )
        return {"object_name": object_name, "object_type": kind, "source": response.text}

    async def write(
        self,
        object_name: str,
        source: str,
        object_type: Optional[str],
        package: Optional[str],
    ) -> Dict[str, Any]:
        kind = object_type or DEFAULT_OBJECT_TYPE
        params = {"package": package} if package else None
        await self._request(
            "write",
            "PUT",
            f"{object_uri(object_name, kind)}/source/main",
            content=source.encode("utf-8"),
            params=params,
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        return {
            "object_name": object_name,
            "object_type": kind,
            "package": package or "$TMP",
            "status": "SAVED",
            "lines": len(source.split("\n")) if source else 0,
        }

    async def list(self, package: str) -> Dict[str, Any]:
        response = await self._request(
            "list", "GET", f"/sap/bc/adt/packages/{quote(package.lower(), safe='')}/objects"
        )
        body = self._json(response, "list")
        objects = body.get("objects", []) if isinstance(body, dict) else body
        return {"package": package, "object_count": len(objects), "objects": objects}

    async def search(self, query: str, object_type: Optional[str]) -> Dict[str, Any]:
        params = {"operation": "quickSearch", "query": query, "maxResults": 50}
        if object_type:
            params["objectType"] = object_type
        response = await self._request(
            "search", "GET", "/sap/bc/adt/repository/informationsystem/search", params=params
        )
        body = self._json(response, "search")
        results = body.get("results", []) if isinstance(body, dict) else body
        return {"query": query, "result_count": len(results), "results": results}

    async def ddic(self, object_name: str) -> Dict[str, Any]:
        response = await self._request("ddic", "GET", object_uri(object_name, "TABL"))
        return {"object_name": object_name, **self._object(response, "ddic")}

    async def activate(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]:
        kind = object_type or DEFAULT_OBJECT_TYPE
        response = await self._request(
            "activate",
            "POST",
            "/sap/bc/adt/activation",
            json={"objects": [{"uri": object_uri(object_name, kind), "name": object_name}]},
        )
        return {
            "object_name": object_name,
            "object_type": kind,
            "status": "ACTIVE",
            **self._object(response, "activate"),
        }

    async def tests(self, object_name: str, with_coverage: Optional[bool]) -> Dict[str, Any]:
        response = await self._request(
            "tests",
            "POST",
            "/sap/bc/adt/abapunit/testruns",
            json={"uri": object_uri(object_name, None), "coverage": bool(with_coverage)},
        )
        return {"object_name": object_name, **self._object(response, "tests")}

    async def syntax(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]:
        response = await self._request(
            "syntax",
            "POST",
            "/sap/bc/adt/abap/validation/syntax",
            json={"uri": object_uri(object_name, object_type)},
        )
        return {"object_name": object_name, **self._object(response, "syntax")}
