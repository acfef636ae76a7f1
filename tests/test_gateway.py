"""Tests for the HTTP and fixture remote-operation facades."""

import json

import httpx
import pytest

from abapforge.config import settings
from abapforge.core.errors import (
    AuthenticationError,
    MockDataError,
    RemoteOperationError,
    TransportError,
)
from abapforge.core.resilience import ResilientExecutor
from abapforge.remote import (
    AdtGateway,
    FixtureGateway,
    create_remote,
)
from abapforge.remote import gateway as gateway_module
from abapforge.remote.fixture_gateway import load_fixture
from abapforge.remote.gateway import object_uri

BASE_URL = "https://sap.example.com"


async def no_sleep(_delay):
    return None


class StaticTokens:
    """Token provider stand-in that counts invalidations."""

    def __init__(self) -> None:
        self.invalidated = 0

    async def get_headers(self):
        return {"Authorization": "Bearer tok-1", "X-Tenant-Id": "acme"}

    def invalidate(self) -> None:
        self.invalidated += 1


def make_gateway(handler, token_provider=None):
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    executor = ResilientExecutor.for_remote_api(sleep=no_sleep)
    return AdtGateway(BASE_URL, token_provider=token_provider, executor=executor, client=client)


def test_object_uri() -> None:
    """Type picks the collection; names are lower-cased and quoted."""
    assert object_uri("ZCL_A", "CLAS") == "/sap/bc/adt/oo/classes/zcl_a"
    assert object_uri("ZIF_A", "INTF") == "/sap/bc/adt/oo/interfaces/zif_a"
    assert object_uri("/ACME/PROG", "PROG") == "/sap/bc/adt/programs/programs/%2Facme%2Fprog"
    assert object_uri("ZCL_A", None) == "/sap/bc/adt/oo/classes/zcl_a"


# ---------------------------------------------------------------------------
# AdtGateway
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_read_sends_bearer_and_returns_source() -> None:
    """Auth headers are attached; read asks for plain text."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="CLASS zcl_a DEFINITION.\nENDCLASS.")

    gateway = make_gateway(handler, StaticTokens())

    result = await gateway.read("ZCL_A", "CLAS")

    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/sap/bc/adt/oo/classes/zcl_a/source/main"
    assert request.headers["Authorization"] == "Bearer tok-1"
    assert request.headers["X-Tenant-Id"] == "acme"
    assert request.headers["Accept"] == "text/plain"
    assert result == {
        "object_name": "ZCL_A",
        "object_type": "CLAS",
        "source": "CLASS zcl_a DEFINITION.\nENDCLASS.",
    }


@pytest.mark.asyncio
async def test_write_puts_source_with_package() -> None:
    """Write is a PUT of the raw source with the package as query parameter."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    gateway = make_gateway(handler)

    result = await gateway.write("ZCL_A", "line1\nline2", None, "ZPKG")

    request = seen[0]
    assert request.method == "PUT"
    assert request.url.params["package"] == "ZPKG"
    assert request.content == b"line1\nline2"
    assert "Authorization" not in request.headers
    assert result["status"] == "SAVED"
    assert result["lines"] == 2


@pytest.mark.asyncio
async def test_search_and_list_shape_results() -> None:
    """Result lists are counted whatever envelope the server uses."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            assert request.url.params["operation"] == "quickSearch"
            assert request.url.params["objectType"] == "CLAS"
            return httpx.Response(200, json={"results": [{"name": "ZCL_A", "type": "CLAS"}]})
        return httpx.Response(200, json=[{"name": "ZCL_A", "type": "CLAS"}, {"name": "ZIF_A", "type": "INTF"}])

    gateway = make_gateway(handler)

    search = await gateway.search("vendor", "CLAS")
    listing = await gateway.list("ZTEST")

    assert search["result_count"] == 1
    assert listing["package"] == "ZTEST"
    assert listing["object_count"] == 2


@pytest.mark.asyncio
async def test_activate_posts_object_reference() -> None:
    """Activation posts the object URI and merges the server's reply."""
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"warnings": ["unused variable"]})

    gateway = make_gateway(handler)

    result = await gateway.activate("ZCL_A", "CLAS")

    assert bodies == [{"objects": [{"uri": "/sap/bc/adt/oo/classes/zcl_a", "name": "ZCL_A"}]}]
    assert result["status"] == "ACTIVE"
    assert result["warnings"] == ["unused variable"]


@pytest.mark.asyncio
async def test_unauthorized_invalidates_token() -> None:
    """401 drops the cached token and is not retried."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401)

    tokens = StaticTokens()
    gateway = make_gateway(handler, tokens)

    with pytest.raises(AuthenticationError):
        await gateway.ddic("EKKO")
    assert tokens.invalidated == 1
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_error_is_remote_operation_error() -> None:
    """Non-success statuses carry operation, status and body."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="dump")

    gateway = make_gateway(handler)

    with pytest.raises(RemoteOperationError) as exc_info:
        await gateway.syntax("ZCL_A", None)
    assert exc_info.value.details == {"operation": "syntax", "status": 500, "body": "dump"}


@pytest.mark.asyncio
async def test_transport_faults_are_retried() -> None:
    """A refused connection is retried and the next attempt succeeds."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused")
        return httpx.Response(200, json={"summary": {"passed": 1, "failed": 0, "skipped": 0}})

    gateway = make_gateway(handler, StaticTokens())

    result = await gateway.tests("ZCL_A", True)

    assert len(calls) == 2
    assert calls[1].headers["Authorization"] == "Bearer tok-1"
    assert result["summary"]["passed"] == 1


@pytest.mark.asyncio
async def test_transport_faults_surface_after_retries() -> None:
    """Once retries are spent the transport error is raised."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    gateway = make_gateway(handler)

    with pytest.raises(TransportError) as exc_info:
        await gateway.list("ZTEST")
    assert exc_info.value.code == "ECONNREFUSED"


@pytest.mark.asyncio
async def test_invalid_json_is_remote_operation_error() -> None:
    """Unparseable bodies are reported, not returned."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html/>")

    gateway = make_gateway(handler)

    with pytest.raises(RemoteOperationError, match="invalid JSON"):
        await gateway.ddic("EKKO")


# ---------------------------------------------------------------------------
# FixtureGateway
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_fixture_read_and_missing_object() -> None:
    """Known objects return their source; unknown ones an error result."""
    gateway = FixtureGateway()

    found = await gateway.read("ZCL_VENDOR_EVALUATION", None)
    missing = await gateway.read("ZCL_NOPE", None)

    assert found["object_name"] == "ZCL_VENDOR_EVALUATION"
    assert "CLASS" in found["source"].upper()
    assert missing == {"error": "Object ZCL_NOPE not found in repository"}


@pytest.mark.asyncio
async def test_fixture_write_defaults() -> None:
    """Writes are acknowledged into $TMP."""
    result = await FixtureGateway().write("ZCL_NEW", "a\nb\nc", None, None)

    assert result == {
        "object_name": "ZCL_NEW",
        "object_type": "CLAS",
        "package": "$TMP",
        "status": "SAVED",
        "lines": 3,
    }


@pytest.mark.asyncio
async def test_fixture_search_key_and_type_filter() -> None:
    """Queries are matched on their lower-cased, underscore-joined form."""
    gateway = FixtureGateway(
        {"searchResults": {"vendor_rating": [{"name": "ZCL_A", "type": "CLAS"}, {"name": "ZIF_A", "type": "INTF"}]}}
    )

    everything = await gateway.search("Vendor Rating", None)
    classes = await gateway.search("vendor rating", "CLAS")

    assert everything["result_count"] == 2
    assert classes["results"] == [{"name": "ZCL_A", "type": "CLAS"}]
    assert (await gateway.search("other", None))["result_count"] == 0


@pytest.mark.asyncio
async def test_fixture_tests_drop_coverage_unless_asked() -> None:
    """Coverage is only reported when requested."""
    gateway = FixtureGateway({"unitTests": {"ZCL_A": {"summary": {"passed": 1}, "coverage": {"statement": 80}}}})

    assert "coverage" not in await gateway.tests("ZCL_A", False)
    assert (await gateway.tests("ZCL_A", True))["coverage"] == {"statement": 80}
    assert "error" in await gateway.tests("ZCL_B", True)


@pytest.mark.asyncio
async def test_fixture_syntax_defaults_to_clean() -> None:
    """Objects without a recorded check are clean."""
    result = await FixtureGateway({}).syntax("ZCL_ANY", None)
    assert result["status"] == "OK"
    assert result["errors"] == []


def test_load_fixture_errors(tmp_path) -> None:
    """Missing or malformed fixture files raise MockDataError."""
    with pytest.raises(MockDataError):
        load_fixture(tmp_path / "absent.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(MockDataError):
        load_fixture(broken)


def test_create_remote(monkeypatch) -> None:
    """No base URL gives the fixture facade; a URL the HTTP one, with OAuth when configured."""
    monkeypatch.setattr(settings, "ADT_BASE_URL", None)
    monkeypatch.setattr(settings, "ADT_TOKEN_URL", None)
    assert isinstance(create_remote(), FixtureGateway)

    plain = create_remote("https://sap.example.com/")
    assert isinstance(plain, AdtGateway)
    assert plain.base_url == BASE_URL
    assert plain.token_provider is None

    monkeypatch.setattr(settings, "ADT_TOKEN_URL", "https://auth.example.com/token")
    monkeypatch.setattr(settings, "ADT_TENANT", "acme")
    secured = create_remote(BASE_URL)
    assert secured.token_provider.token_url == "https://auth.example.com/token"
    assert secured.token_provider.tenant == "acme"


def test_gateway_default_executor() -> None:
    """Without an injected executor the remote-API defaults are used."""
    gateway = AdtGateway(BASE_URL)
    assert gateway.executor.retry.max_attempts == 3
    assert gateway.executor.circuit_breaker.failure_threshold == 5
    assert gateway_module.DEFAULT_REMOTE_TIMEOUT == gateway.timeout
