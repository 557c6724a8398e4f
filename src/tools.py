# tools.py
"""
Tool catalogue exposed to the MCP host and the `invoke` boundary that runs
a named tool against a FalconClient. `invoke` never raises: every failure is
turned into an error-flagged ToolResult.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from src.errors import FalconError, ValidationError
from src.falcon_client import FalconClient

logger = logging.getLogger("falcon-mcp.tools")

ERROR_PREFIX = "Error: "


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: Dict[str, Any]


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False


def _query_schema(noun: str, examples: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "filter": {
                "type": "string",
                "description": f"FQL (Falcon Query Language) filter expression. Examples: {examples}",
            },
            "limit": {
                "type": "number",
                "description": f"Maximum number of {noun} to return (default: 50)",
                "default": 50,
            },
        },
    }


def _ids_schema(noun: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "ids": {
                "type": "array",
                "items": {"type": "string"},
                "description": f"Array of {noun} IDs to retrieve details for",
            },
        },
        "required": ["ids"],
    }


TOOLS: List[ToolDescriptor] = [
    ToolDescriptor(
        name="list_detections",
        description="Query CrowdStrike Falcon detections. Returns a list of detection IDs based on filter criteria.",
        input_schema=_query_schema(
            "detections", "status:'new', severity:['high','critical'], device.hostname:'*server*'"
        ),
    ),
    ToolDescriptor(
        name="get_detection_details",
        description="Get detailed information about specific detections by their IDs.",
        input_schema=_ids_schema("detection"),
    ),
    ToolDescriptor(
        name="list_devices",
        description="Query CrowdStrike Falcon devices/hosts. Returns a list of device IDs based on filter criteria.",
        input_schema=_query_schema("devices", "hostname:'*server*', platform_name:'Windows', status:'normal'"),
    ),
    ToolDescriptor(
        name="get_device_details",
        description="Get detailed information about specific devices by their IDs.",
        input_schema=_ids_schema("device"),
    ),
    ToolDescriptor(
        name="list_incidents",
        description="Query CrowdStrike Falcon incidents. Returns a list of incident IDs based on filter criteria.",
        input_schema=_query_schema("incidents", "status:'new', severity:['high','critical']"),
    ),
    ToolDescriptor(
        name="get_incident_details",
        description="Get detailed information about specific incidents by their IDs.",
        input_schema=_ids_schema("incident"),
    ),
    ToolDescriptor(
        name="search_indicators",
        description="Search for Indicators of Compromise (IOCs) in CrowdStrike Falcon.",
        input_schema={
            "type": "object",
            "properties": {
                "types": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "IOC types to search for (e.g., 'domain', 'ipv4', 'md5', 'sha256')",
                },
                "values": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "IOC values to search for",
                },
                "limit": {
                    "type": "number",
                    "description": "Maximum number of results to return (default: 50)",
                    "default": 50,
                },
            },
        },
    ),
    ToolDescriptor(
        name="run_remote_command",
        description=(
            "Execute a Real Time Response (RTR) command on a device. "
            "Common commands: ls, cd, cat, ps, etc."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "device_id": {"type": "string", "description": "The device ID to run the command on"},
                "command": {
                    "type": "string",
                    "description": "The RTR command to execute (e.g., 'ls', 'ps', 'cat')",
                },
                "arguments": {"type": "string", "description": "Arguments for the command"},
            },
            "required": ["device_id", "command"],
        },
    ),
]

_TOOLS_BY_NAME = {tool.name: tool for tool in TOOLS}


def list_tools() -> List[ToolDescriptor]:
    return list(TOOLS)


def get_tool(name: str) -> ToolDescriptor:
    return _TOOLS_BY_NAME[name]


def argument_description(tool_name: str, argument: str) -> str:
    return _TOOLS_BY_NAME[tool_name].input_schema["properties"][argument]["description"]


def invoke(get_client: Callable[[], FalconClient], name: str, arguments: Dict[str, Any] = None) -> ToolResult:
    """
    Run tool `name` with `arguments` and package the outcome.
    Each tool maps onto the FalconClient method of the same name; arguments
    not declared in the tool schema are dropped.
    """
    logger.info("Tool call: %s", name)
    try:
        tool = _TOOLS_BY_NAME.get(name)
        if tool is None:
            raise ValidationError(f"Unknown tool: {name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValidationError("Tool arguments must be an object")

        accepted = tool.input_schema["properties"]
        kwargs = {key: value for key, value in arguments.items() if key in accepted}
        ignored = set(arguments) - set(kwargs)
        if ignored:
            logger.debug("Ignoring undeclared arguments for %s: %s", name, sorted(ignored))

        client = get_client()
        result = getattr(client, name)(**kwargs)
        return ToolResult(text=json.dumps(result, indent=2))

    except FalconError as e:
        logger.error("Tool %s failed: %s", name, e)
        return ToolResult(text=f"{ERROR_PREFIX}{e}", is_error=True)
    except Exception as e:
        logger.exception("Unexpected error in tool %s", name)
        return ToolResult(text=f"{ERROR_PREFIX}{e}", is_error=True)
