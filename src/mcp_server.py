import argparse
import logging
import sys
from typing import Annotated, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from src import tools
from src.config import FalconConfig
from src.errors import ConfigurationError
from src.falcon_client import FalconClient
from src.logging_config import setup_logging

logger = logging.getLogger("falcon-mcp.server")

mcp = FastMCP("CrowdStrike-Falcon-MCP")

_client: Optional[FalconClient] = None


def get_client() -> FalconClient:
    """Return the process-wide FalconClient, building it from the environment on first use."""
    global _client
    if _client is None:
        _client = FalconClient(FalconConfig.from_env())
    return _client


def _run(name: str, **arguments) -> str:
    result = tools.invoke(get_client, name, arguments)
    if result.is_error:
        raise ToolError(result.text)
    return result.text


def _arg(tool_name: str, argument: str):
    return Field(description=tools.argument_description(tool_name, argument))


@mcp.tool(
    name="list_detections",
    description=tools.get_tool("list_detections").description,
)
def list_detections(
    filter: Annotated[Optional[str], _arg("list_detections", "filter")] = None,
    limit: Annotated[float, _arg("list_detections", "limit")] = 50,
) -> str:
    return _run("list_detections", filter=filter, limit=limit)


@mcp.tool(
    name="get_detection_details",
    description=tools.get_tool("get_detection_details").description,
)
def get_detection_details(ids: Annotated[List[str], _arg("get_detection_details", "ids")]) -> str:
    return _run("get_detection_details", ids=ids)


@mcp.tool(
    name="list_devices",
    description=tools.get_tool("list_devices").description,
)
def list_devices(
    filter: Annotated[Optional[str], _arg("list_devices", "filter")] = None,
    limit: Annotated[float, _arg("list_devices", "limit")] = 50,
) -> str:
    return _run("list_devices", filter=filter, limit=limit)


@mcp.tool(
    name="get_device_details",
    description=tools.get_tool("get_device_details").description,
)
def get_device_details(ids: Annotated[List[str], _arg("get_device_details", "ids")]) -> str:
    return _run("get_device_details", ids=ids)


@mcp.tool(
    name="list_incidents",
    description=tools.get_tool("list_incidents").description,
)
def list_incidents(
    filter: Annotated[Optional[str], _arg("list_incidents", "filter")] = None,
    limit: Annotated[float, _arg("list_incidents", "limit")] = 50,
) -> str:
    return _run("list_incidents", filter=filter, limit=limit)


@mcp.tool(
    name="get_incident_details",
    description=tools.get_tool("get_incident_details").description,
)
def get_incident_details(ids: Annotated[List[str], _arg("get_incident_details", "ids")]) -> str:
    return _run("get_incident_details", ids=ids)


@mcp.tool(
    name="search_indicators",
    description=tools.get_tool("search_indicators").description,
)
def search_indicators(
    types: Annotated[Optional[List[str]], _arg("search_indicators", "types")] = None,
    values: Annotated[Optional[List[str]], _arg("search_indicators", "values")] = None,
    limit: Annotated[float, _arg("search_indicators", "limit")] = 50,
) -> str:
    return _run("search_indicators", types=types, values=values, limit=limit)


@mcp.tool(
    name="run_remote_command",
    description=tools.get_tool("run_remote_command").description,
)
def run_remote_command(
    device_id: Annotated[str, _arg("run_remote_command", "device_id")],
    command: Annotated[str, _arg("run_remote_command", "command")],
    arguments: Annotated[Optional[str], _arg("run_remote_command", "arguments")] = None,
) -> str:
    return _run("run_remote_command", device_id=device_id, command=command, arguments=arguments)


def main(argv=None):
    parser = argparse.ArgumentParser(description="CrowdStrike Falcon MCP server")
    parser.add_argument("--transport", choices=["stdio", "http", "sse"], default="stdio",
                        help="Transport method to use (default: stdio)")
    parser.add_argument("--host", default="127.0.0.1", help="Host for HTTP/SSE transports (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=9000, help="Port for HTTP/SSE transports (default: 9000)")
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging()

    # Fail fast on missing credentials instead of on the first tool call
    try:
        client = get_client()
    except ConfigurationError as e:
        logger.critical("Invalid Falcon configuration: %s", e)
        sys.exit(1)

    logger.info("Starting Falcon MCP server (%s transport) against %s", args.transport, client.config.base_url)
    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport=args.transport, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
