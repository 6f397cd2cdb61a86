#!/usr/bin/env python3
"""Auvo MCP Server - Retrieve, create, upsert and delete Auvo entities."""

import json
import logging
import os
import sys
from typing import Any

import httpx
from dotenv import load_dotenv
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from auvo import (
    DEFAULT_BASE_URL,
    DEFAULT_ENTITY,
    ENTITIES,
    AuthenticationError,
    Credentials,
    Operation,
    OperationRequest,
    check_credentials,
    execute,
)

load_dotenv()

logger = logging.getLogger(__name__)

# Credentials are configured in .mcp.json or .env
AUVO_API_KEY = os.getenv("AUVO_API_KEY")
AUVO_API_TOKEN = os.getenv("AUVO_API_TOKEN")
AUVO_API_URL = os.getenv("AUVO_API_URL", DEFAULT_BASE_URL)
AUVO_ALLOW_WRITES = os.getenv("AUVO_ALLOW_WRITES", "false").lower() == "true"
AUVO_LOG_LEVEL = os.getenv("AUVO_LOG_LEVEL", "WARNING").upper()

WRITE_OPERATIONS = {Operation.CREATE, Operation.UPSERT, Operation.DELETE}


def check_write_permission(operation: Operation) -> None:
    """Raise error if writes not allowed for create, upsert and delete."""
    if operation in WRITE_OPERATIONS and not AUVO_ALLOW_WRITES:
        raise ValueError(
            f"Write operations ({operation.value}) are disabled. "
            "Set AUVO_ALLOW_WRITES=true to enable create, upsert and delete."
        )


def get_credentials() -> Credentials:
    """Build Auvo credentials from the environment."""
    if not AUVO_API_KEY or not AUVO_API_TOKEN:
        raise ValueError("AUVO_API_KEY and AUVO_API_TOKEN must be set in environment")
    return Credentials(api_key=AUVO_API_KEY, api_token=AUVO_API_TOKEN, base_url=AUVO_API_URL)


def _entity_help() -> str:
    return "; ".join(
        f"{value} ({name}): {description}" for value, (name, description) in ENTITIES.items()
    )


# Tool definitions
# Each tool has: description, operation (None for the credential check), params
TOOLS = {
    "auvo_retrieve": {
        "description": (
            "Retrieve Auvo entities matching a paramFilter, one page at a time. "
            "For tasks, the filter must set startDate and endDate."
        ),
        "operation": Operation.RETRIEVE,
        "params": ["entity", "filter", "page", "pageSize", "order"],
        "required": ["filter"],
    },
    "auvo_create": {
        "description": "⚠️ WRITE OPERATION - Confirm with user before calling. Create an Auvo entity.",
        "operation": Operation.CREATE,
        "params": ["entity", "attributes"],
        "required": ["attributes"],
    },
    "auvo_upsert": {
        "description": (
            "⚠️ WRITE OPERATION - Confirm with user before calling. "
            "Create an Auvo entity or update the existing one."
        ),
        "operation": Operation.UPSERT,
        "params": ["entity", "attributes"],
        "required": ["attributes"],
    },
    "auvo_delete": {
        "description": "⚠️ DESTRUCTIVE - Confirm with user before calling. Delete an Auvo entity by ID.",
        "operation": Operation.DELETE,
        "params": ["entity", "id"],
        "required": ["id"],
    },
    "auvo_test_credentials": {
        "description": "Check that the configured Auvo API key and token can log in.",
        "operation": None,
        "params": [],
        "required": [],
    },
}


PARAM_DEFINITIONS = {
    "entity": {
        "type": "string",
        "enum": list(ENTITIES),
        "default": DEFAULT_ENTITY,
        "description": f"Entity to perform the operation on. {_entity_help()}",
    },
    "filter": {
        "type": ["object", "string"],
        "description": (
            "JSON object (or JSON string) filtering by attributes like active, id, name, "
            "creationDate, email. Refer to the Auvo API documentation for the entity's attributes."
        ),
    },
    "page": {"type": "integer", "default": 1, "description": "Page of the selection"},
    "pageSize": {"type": "integer", "default": 10, "description": "Amount of records of the selection"},
    "order": {"type": "string", "default": "asc", "description": "Order of the selection: asc or desc"},
    "attributes": {
        "type": ["object", "string"],
        "description": (
            "JSON object (or JSON string) with the attributes of the entity to create or update. "
            "Refer to the Auvo API documentation for the entity's attributes."
        ),
    },
    "id": {"type": "string", "description": "ID of the entity to delete"},
}


def build_tool_schema(tool_name: str, tool_config: dict) -> Tool:
    """Build a Tool object from a TOOLS entry."""
    properties = {
        param: PARAM_DEFINITIONS[param].copy() for param in tool_config["params"]
    }

    return Tool(
        name=tool_name,
        description=tool_config["description"],
        inputSchema={
            "type": "object",
            "properties": properties,
            "required": list(tool_config["required"]),
        },
    )


def build_operation_request(operation: Operation, arguments: dict[str, Any]) -> OperationRequest:
    """Map tool arguments onto an OperationRequest, applying parameter defaults."""
    return OperationRequest(
        operation=operation.value,
        entity=arguments.get("entity", DEFAULT_ENTITY),
        filter=arguments.get("filter"),
        attributes=arguments.get("attributes"),
        id=arguments.get("id"),
        page=arguments.get("page", 1),
        page_size=arguments.get("pageSize", 10),
        order=arguments.get("order", "asc"),
    )


def _format_result(result: dict[str, Any]) -> str:
    return json.dumps(result, indent=2)


# Create the MCP server
server = Server("auvo")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available Auvo tools."""
    return [build_tool_schema(name, config) for name, config in TOOLS.items()]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls, reporting failures as text."""
    try:
        result = await execute_tool(name, arguments or {})
        return [TextContent(type="text", text=_format_result(result))]

    except AuthenticationError as e:
        return [TextContent(type="text", text=f"Auvo authentication error: {e}")]
    except httpx.TransportError as e:
        return [TextContent(type="text", text=f"Auvo connection error: {e!r}")]
    except Exception as e:
        return [TextContent(type="text", text=f"Error: {str(e)}")]


async def execute_tool(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Execute the actual API call after validation."""
    if name not in TOOLS:
        raise ValueError(f"Unknown tool: {name}")

    operation = TOOLS[name]["operation"]
    credentials = get_credentials()

    if operation is None:
        return {"authenticated": await check_credentials(credentials)}

    check_write_permission(operation)
    request = build_operation_request(operation, arguments)
    logger.debug("Calling %s on %s", name, request.entity)
    envelope = await execute(credentials, request)
    return envelope.to_dict()


def configure_logging(level: str = AUVO_LOG_LEVEL) -> None:
    """Send logs to stderr; stdout carries the MCP stream."""
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs request URLs at INFO, and the login URL carries the API token
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(logging.getLevelName(level), logging.WARNING))


async def main():
    """Run the MCP server."""
    configure_logging()
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run() -> None:
    """Console script entry point."""
    import asyncio
    asyncio.run(main())


if __name__ == "__main__":
    run()
