"""Dispatches tool calls registered in ``abapforge.tools`` and validates their input."""

import logging
from typing import (
    Any,
    Dict,
    Mapping,
)

from abapforge.core.errors import ToolExecutionError
from abapforge.core.schema import ToolDescriptor
from abapforge.tools import (
    RemoteOperations,
    get_tool,
)

logger = logging.getLogger(__name__)

UNKNOWN_TOOL_PREFIX = "Unknown tool:"

_JSON_TYPES: Dict[str, tuple] = {
    "string": (str,),
    "boolean": (bool,),
    "integer": (int,),
    "number": (int, float),
    "object": (dict,),
    "array": (list,),
}


def validate_input(descriptor: ToolDescriptor, args: Mapping[str, Any]) -> None:
    """
    Check *args* against the descriptor's input schema.

    Only the parts of JSON schema the registry uses are enforced: required properties, primitive
    ``type`` and ``enum``.  Unknown properties are ignored.

    Raises
    ------
    ToolExecutionError
        On the first violation found.
    """
    if not isinstance(args, Mapping):
        raise ToolExecutionError(f"Invalid arguments for tool '{descriptor.name}': expected an object")

    missing = [name for name in descriptor.required if args.get(name) in (None, "")]
    if missing:
        raise ToolExecutionError(
            f"Invalid arguments for tool '{descriptor.name}': missing required {', '.join(missing)}"
        )

    properties = descriptor.input_schema.get("properties", {})
    for name, value in args.items():
        prop = properties.get(name)
        if prop is None or value is None:
            continue
        expected = _JSON_TYPES.get(prop.get("type", ""))
        # bool is an int subclass
        stray_bool = isinstance(value, bool) and bool not in (expected or ())
        if expected and (not isinstance(value, expected) or stray_bool):
            raise ToolExecutionError(
                f"Invalid arguments for tool '{descriptor.name}': '{name}' must be {prop['type']}"
            )
        if "enum" in prop and value not in prop["enum"]:
            raise ToolExecutionError(
                f"Invalid arguments for tool '{descriptor.name}': '{name}' must be one of "
                f"{', '.join(map(str, prop['enum']))}"
            )


async def execute_tool(
    name: str, args: Mapping[str, Any] | None, remote: RemoteOperations
) -> Dict[str, Any]:
    """
    Look up *name* in the registry and run its adapter against *remote*.

    Parameters
    ----------
    name:
        The registered tool name.
    args:
        Tool input as produced by the model.  If *None*, an empty dict is assumed.
    remote:
        The remote-operation facade.

    Returns
    -------
    dict
        Whatever the remote operation returns, or ``{"error": "Unknown tool: <name>"}``.

    Raises
    ------
    ToolExecutionError
        If *args* does not satisfy the tool's input schema.  Failures of the remote operation
        propagate unchanged.
    """
    if args is None:
        args = {}

    tool = get_tool(name)
    if tool is None:
        logger.warning("Model requested unknown tool '%s'", name)
        return {"error": f"{UNKNOWN_TOOL_PREFIX} {name}"}

    validate_input(tool.descriptor, args)
    logger.debug("Executing tool '%s' with args=%s", name, sorted(args))
    return await tool.adapter(remote, args)
