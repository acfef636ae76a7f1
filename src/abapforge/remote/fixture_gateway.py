"""
Offline remote-operation facade.

Answers the eight tool operations from the bundled fixture file so agents can be exercised without
a remote system.  Writes and activations are acknowledged but change nothing.
"""

import json
import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    Optional,
)

from abapforge.core.errors import MockDataError

logger = logging.getLogger(__name__)

FIXTURE_PATH = Path(__file__).resolve().parent.parent / "fixtures" / "mock_responses.json"


def load_fixture(path: Path | str | None = None) -> Dict[str, Any]:
    """Read the fixture JSON (the bundled one unless *path* is given)."""
    path = Path(path) if path else FIXTURE_PATH
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise MockDataError(f"Cannot load fixture {path}: {exc}", details={"path": str(path)}) from exc


class FixtureGateway:
    """Remote operations served from fixture data."""

    mode = "fixture"

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data = data

    @property
    def data(self) -> Dict[str, Any]:
        if self._data is None:
            self._data = load_fixture()
        return self._data

    def _section(self, key: str) -> Dict[str, Any]:
        return self.data.get(key) or {}

    async def read(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]:
        logger.debug("read %s (%s)", object_name, object_type or "auto")
        entry = self._section("abapSources").get(object_name)
        if not entry:
            return {"error": f"Object {object_name} not found in repository"}
        source = entry.get("source", "")
        return {
            "object_name": object_name,
            "object_type": entry.get("objectType"),
            "package": entry.get("package"),
            "description": entry.get("description"),
            "source": "\n".join(source) if isinstance(source, list) else source,
        }

    async def write(
        self,
        object_name: str,
        source: str,
        object_type: Optional[str],
        package: Optional[str],
    ) -> Dict[str, Any]:
        logger.debug("write %s -> %s", object_name, package or "$TMP")
        return {
            "object_name": object_name,
            "object_type": object_type or "CLAS",
            "package": package or "$TMP",
            "status": "SAVED",
            "lines": len(source.split("\n")) if source else 0,
        }

    async def list(self, package: str) -> Dict[str, Any]:
        entry = self._section("packageObjects").get(package)
        if not entry:
            return {"error": f"Package {package} not found"}
        objects = entry.get("objects", [])
        return {
            "package": package,
            "description": entry.get("description"),
            "object_count": len(objects),
            "objects": objects,
        }

    async def search(self, query: str, object_type: Optional[str]) -> Dict[str, Any]:
        key = "_".join(query.lower().split())
        results = self._section("searchResults").get(key, [])
        if object_type:
            results = [r for r in results if r.get("type") == object_type]
        return {"query": query, "result_count": len(results), "results": results}

    async def ddic(self, object_name: str) -> Dict[str, Any]:
        entry = self._section("dataDictionary").get(object_name)
        if not entry:
            return {"error": f"DDIC object {object_name} not found"}
        return {"object_name": object_name, **entry}

    async def activate(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]:
        return {
            "object_name": object_name,
            "object_type": object_type or "CLAS",
            "status": "ACTIVE",
            "warnings": [],
        }

    async def tests(self, object_name: str, with_coverage: Optional[bool]) -> Dict[str, Any]:
        entry = self._section("unitTests").get(object_name)
        if not entry:
            return {"error": f"No test results for {object_name}"}
        result = {"object_name": object_name, **entry}
        if not with_coverage:
            result.pop("coverage", None)
        return result

    async def syntax(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]:
        entry = self._section("syntaxCheck").get(object_name)
        if not entry:
            return {"object_name": object_name, "status": "OK", "errors": [], "warnings": []}
        return {"object_name": object_name, **entry}
