"""
Tool registry for abapforge.

This module provides a decorator to register tools and a registry to look them up by name.  Each
tool pairs a :class:`~abapforge.core.schema.ToolDescriptor` (what the model sees) with an adapter
coroutine that maps the tool input onto one method of the remote-operation facade, passing the
arguments positionally in a fixed order.
"""

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from abapforge.core.schema import ToolDescriptor

logger = logging.getLogger(__name__)

OBJECT_TYPES = ("CLAS", "INTF", "FUGR", "PROG", "TABL", "DTEL")
"""Object-type codes accepted by the remote system."""

MUTATING_TOOLS = frozenset({"write_abap_source", "activate_object"})


class RemoteOperations(Protocol):
    """The remote-operation facade the tools dispatch to."""

    async def read(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]: ...

    async def write(
        self,
        object_name: str,
        source: str,
        object_type: Optional[str],
        package: Optional[str],
    ) -> Dict[str, Any]: ...

    async def list(self, package: str) -> Dict[str, Any]: ...

    async def search(self, query: str, object_type: Optional[str]) -> Dict[str, Any]: ...

    async def ddic(self, object_name: str) -> Dict[str, Any]: ...

    async def activate(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]: ...

    async def tests(self, object_name: str, with_coverage: Optional[bool]) -> Dict[str, Any]: ...

    async def syntax(self, object_name: str, object_type: Optional[str]) -> Dict[str, Any]: ...


ToolAdapter = Callable[[RemoteOperations, Mapping[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class RegisteredTool:
    """A descriptor and the adapter that executes it."""

    descriptor: ToolDescriptor
    adapter: ToolAdapter


TOOL_REGISTRY: Dict[str, RegisteredTool] = {}
"""Global registry of tools, in registration order."""


def register_tool(
    name: str,
    description: str,
    properties: Mapping[str, Mapping[str, Any]],
    required: Sequence[str],
) -> Callable[[ToolAdapter], ToolAdapter]:
    """
    Register a tool adapter under *name*.

    The adapter is registered as a decorator, so it can be used like this::

        @register_tool("list_objects", "List objects", {"package": {...}}, ["package"])
        async def list_objects(remote, args):
            return await remote.list(args["package"])

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    descriptor = ToolDescriptor(
        name=name,
        description=description,
        input_schema={
            "type": "object",
            "properties": {k: dict(v) for k, v in properties.items()},
            "required": list(required),
        },
    )

    def wrapper(fn: ToolAdapter) -> ToolAdapter:
        TOOL_REGISTRY[name] = RegisteredTool(descriptor=descriptor, adapter=fn)
        return fn

    return wrapper


def get_tool(name: str) -> Optional[RegisteredTool]:
    return TOOL_REGISTRY.get(name)


def get_tools_for_role(names: Sequence[str]) -> List[ToolDescriptor]:
    """Descriptors for the registered tools among *names*, in the caller's order."""
    return [TOOL_REGISTRY[n].descriptor for n in names if n in TOOL_REGISTRY]


def all_tools() -> List[ToolDescriptor]:
    return [t.descriptor for t in TOOL_REGISTRY.values()]


# ---------------------------------------------------------------------------
# The eight ABAP tools
# ---------------------------------------------------------------------------
_CODE_TYPE = {
    "type": "string",
    "description": "Type of object: CLAS, INTF, FUGR, PROG",
    "enum": ["CLAS", "INTF", "FUGR", "PROG"],
}
_ANY_TYPE = {
    "type": "string",
    "description": "Type of object: CLAS, INTF, TABL, DTEL, FUGR, PROG",
    "enum": list(OBJECT_TYPES),
}


@register_tool(
    "read_abap_source",
    "Read the ABAP source code of an object (class, interface, function module, program)",
    {
        "object_name": {"type": "string", "description": "Name of the ABAP object (e.g., ZCL_VENDOR_RATING)"},
        "object_type": _CODE_TYPE,
    },
    ["object_name"],
)
async def read_abap_source(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.read(args["object_name"], args.get("object_type"))


@register_tool(
    "write_abap_source",
    "Write or update the ABAP source code of an object",
    {
        "object_name": {"type": "string", "description": "Name of the ABAP object"},
        "object_type": _CODE_TYPE,
        "source": {"type": "string", "description": "The ABAP source code to write"},
        "package": {"type": "string", "description": "Package to create the object in"},
        "transport": {"type": "string", "description": "Transport request (e.g., DEVK900123)"},
    },
    ["object_name", "source"],
)
async def write_abap_source(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.write(
        args["object_name"], args["source"], args.get("object_type"), args.get("package")
    )


@register_tool(
    "list_objects",
    "List all objects in an ABAP package",
    {"package": {"type": "string", "description": "Package name (e.g., ZVENDOR_RATING)"}},
    ["package"],
)
async def list_objects(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.list(args["package"])


@register_tool(
    "search_repository",
    "Search the ABAP repository for objects matching a pattern",
    {
        "query": {"type": "string", "description": "Search term or pattern"},
        "object_type": _ANY_TYPE,
    },
    ["query"],
)
async def search_repository(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.search(args["query"], args.get("object_type"))


@register_tool(
    "get_data_dictionary",
    "Get the structure definition of a data dictionary object (table, structure, data element)",
    {"object_name": {"type": "string", "description": "Name of the DDIC object (e.g., EKKO, ZVENDOR_RATING)"}},
    ["object_name"],
)
async def get_data_dictionary(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.ddic(args["object_name"])


@register_tool(
    "activate_object",
    "Activate an ABAP object after creation or modification",
    {
        "object_name": {"type": "string", "description": "Name of the ABAP object to activate"},
        "object_type": _ANY_TYPE,
        "transport": {"type": "string", "description": "Transport request (e.g., DEVK900123)"},
    },
    ["object_name"],
)
async def activate_object(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.activate(args["object_name"], args.get("object_type"))


@register_tool(
    "run_unit_tests",
    "Run ABAP Unit tests for a class or package",
    {
        "object_name": {"type": "string", "description": "Name of the class or package to test"},
        "with_coverage": {"type": "boolean", "description": "Include code coverage metrics"},
    },
    ["object_name"],
)
async def run_unit_tests(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.tests(args["object_name"], args.get("with_coverage"))


@register_tool(
    "run_syntax_check",
    "Run syntax check on an ABAP object",
    {
        "object_name": {"type": "string", "description": "Name of the ABAP object to check"},
        "object_type": _CODE_TYPE,
    },
    ["object_name"],
)
async def run_syntax_check(remote: RemoteOperations, args: Mapping[str, Any]) -> Dict[str, Any]:
    return await remote.syntax(args["object_name"], args.get("object_type"))
