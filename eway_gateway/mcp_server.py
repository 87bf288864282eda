"""
MCP tool server for the eWay-CRM gateway.

Exposes the authentication status and the entity services as MCP tools over
stdio. The REST application runs in the same process, so an OAuth2
authorization completed in the browser lands in the token store the tools
use.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .config import (
    API_BASE_PATH,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_PORT,
    MAX_PAGE_LIMIT,
    load_environment,
)
from .context import GatewayContext
from .errors import GatewayError
from .main import create_app
from .routes.oauth2 import auth_status_payload
from .routes.utils import paginated_response
from .services.auth import resolve_auth_config
from .services.eway_client import EwaySessionClient
from .services.entity_service import (
    ENTITY_SERVICES,
    EnumTypeService,
    create_entity_service,
)

logger = logging.getLogger(__name__)

MCP_SERVER_NAME = "eway-crm"

LOGIN_INSTRUCTIONS = [
    "1. Open the authorization URL in a browser",
    "2. Sign in to eWay-CRM",
    "3. Retry the tool call once the browser shows a success page",
]


class EwayTools:
    """Tool implementations. Every method returns a JSON-serializable dict."""

    def __init__(self, context: GatewayContext, server_base_url: str):
        self.context = context
        self.login_url = f"{server_base_url.rstrip('/')}{API_BASE_PATH}/oauth2/authorize"

    async def _session(self) -> EwaySessionClient:
        context = self.context
        if context.config.is_oauth2 and not context.token_manager.has_valid_token():
            raise ToolError(
                f"Not authenticated with eWay-CRM. Open {self.login_url} in a "
                "browser (see get_login_url) and retry."
            )
        session = context.session_client
        try:
            await session.log_in()
        except GatewayError as e:
            raise ToolError(f"Failed to log in to eWay-CRM: {e}") from e
        return session

    async def get_login_url(self) -> Dict[str, Any]:
        if not self.context.config.is_oauth2:
            return {
                "status": "success",
                "message": "The server logs in with a username and password, "
                "no browser login is needed",
                "authMode": self.context.config.mode.value,
            }
        return {
            "status": "success",
            "message": "Open this URL in a browser to log in",
            "authorizationUrl": self.login_url,
            "instructions": LOGIN_INSTRUCTIONS,
        }

    async def get_auth_status(self) -> Dict[str, Any]:
        payload = auth_status_payload(self.context)
        if self.context.config.is_oauth2 and not payload["oauth2"]["hasValidToken"]:
            payload["hint"] = "Use get_login_url to obtain the login URL."
        return payload

    async def list_items(
        self,
        entity: str,
        query: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        List or search items of a registered entity.

        Args:
            entity: Key of ENTITY_SERVICES, e.g. ``companies``
            query: Optional full-text query
            limit: Page size, clamped to 1..MAX_PAGE_LIMIT
            offset: Number of items to skip

        Returns:
            ``{"data": [...], "pagination": {...}}``
        """
        limit = max(1, min(limit, MAX_PAGE_LIMIT))
        offset = max(0, offset)
        service = create_entity_service(await self._session(), entity)
        try:
            result = await service.search(limit=limit, offset=offset, search_query=query)
        except GatewayError as e:
            raise ToolError(str(e)) from e
        return paginated_response(result.items, result.total_count, limit, offset)

    async def get_item(self, entity: str, item_id: str) -> Dict[str, Any]:
        service = create_entity_service(await self._session(), entity)
        try:
            item = await service.get_by_id(item_id)
        except GatewayError as e:
            raise ToolError(str(e)) from e
        if item is None:
            raise ToolError(f"{service.methods.name} {item_id} not found")
        return {"data": item}

    async def save_item(
        self, entity: str, data: Dict[str, Any], item_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an item, or update it when ``item_id`` is given."""
        if item_id:
            data = {**data, "ItemGUID": item_id}
        service = create_entity_service(await self._session(), entity)
        try:
            guid = await service.save(data)
        except GatewayError as e:
            raise ToolError(str(e)) from e
        return {"status": "success", "id": guid}

    async def delete_item(self, entity: str, item_id: str) -> Dict[str, Any]:
        service = create_entity_service(await self._session(), entity)
        try:
            deleted = await service.delete(item_id)
        except GatewayError as e:
            raise ToolError(str(e)) from e
        if not deleted:
            raise ToolError(f"{service.methods.name} {item_id} not found")
        return {"status": "success", "id": item_id}

    async def search_enum_types(
        self,
        enum_name: Optional[str] = None,
        folder_name: Optional[str] = None,
        include_values: bool = True,
    ) -> Dict[str, Any]:
        service = EnumTypeService(await self._session())
        try:
            items = await service.search(
                enum_name=enum_name,
                folder_names=[folder_name] if folder_name else None,
                include_values=include_values,
            )
        except GatewayError as e:
            raise ToolError(str(e)) from e
        return {"data": items, "total": len(items)}

    async def get_enum_type_by_name(self, name: str) -> Dict[str, Any]:
        service = EnumTypeService(await self._session())
        try:
            item = await service.get_by_name(name)
        except GatewayError as e:
            raise ToolError(str(e)) from e
        if item is None:
            raise ToolError(f"Enum type {name} not found")
        return {"data": item}


def _register_entity_tools(mcp: FastMCP, tools: EwayTools, entity: str) -> None:
    name = ENTITY_SERVICES[entity].name

    async def list_items(
        query: Optional[str] = None, limit: int = DEFAULT_PAGE_LIMIT, offset: int = 0
    ) -> Dict[str, Any]:
        return await tools.list_items(entity, query=query, limit=limit, offset=offset)

    async def get_item(id: str) -> Dict[str, Any]:
        return await tools.get_item(entity, id)

    async def create_item(data: Dict[str, Any]) -> Dict[str, Any]:
        return await tools.save_item(entity, data)

    async def update_item(id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await tools.save_item(entity, data, item_id=id)

    async def delete_item(id: str) -> Dict[str, Any]:
        return await tools.delete_item(entity, id)

    read, write = {"eway", "read"}, {"eway", "write"}
    mcp.tool(
        name=f"get_{entity}",
        description=f"List {entity} with optional full-text search and paging.",
        tags=read,
    )(list_items)
    mcp.tool(
        name=f"get_{name}_by_id", description=f"Get one {name} by its GUID.", tags=read
    )(get_item)
    mcp.tool(
        name=f"create_{name}",
        description=f"Create a {name} from backend field names.",
        tags=write,
    )(create_item)
    mcp.tool(
        name=f"update_{name}",
        description=f"Update the {name} with the given GUID.",
        tags=write,
    )(update_item)
    mcp.tool(
        name=f"delete_{name}", description=f"Delete the {name} with the given GUID.", tags=write
    )(delete_item)


def create_mcp_server(context: GatewayContext, server_base_url: str) -> FastMCP:
    """
    Build the MCP server and register its tools.

    Args:
        context: Shared gateway context (session client, token manager)
        server_base_url: Public base URL of the REST application, used in
            login instructions

    Returns:
        FastMCP server ready to run
    """
    mcp = FastMCP(
        MCP_SERVER_NAME,
        instructions="Tools for reading and editing eWay-CRM data. "
        "Call get_auth_status first; use get_login_url when not authenticated.",
    )
    tools = EwayTools(context, server_base_url)

    mcp.tool(
        name="get_login_url",
        description="Get the URL to open in a browser to log in to eWay-CRM.",
        tags={"eway", "auth"},
    )(tools.get_login_url)
    mcp.tool(
        name="get_auth_status",
        description="Check whether the server holds a valid token and session.",
        tags={"eway", "auth"},
    )(tools.get_auth_status)

    for entity in ENTITY_SERVICES:
        _register_entity_tools(mcp, tools, entity)

    async def search_enum_types(
        enum_name: Optional[str] = None,
        folder_name: Optional[str] = None,
        include_values: bool = True,
    ) -> Dict[str, Any]:
        return await tools.search_enum_types(enum_name, folder_name, include_values)

    async def get_enum_types_by_folder(folder_name: str) -> Dict[str, Any]:
        return await tools.search_enum_types(folder_name=folder_name)

    async def get_task_enum_types() -> Dict[str, Any]:
        return await tools.search_enum_types(folder_name="Tasks")

    read = {"eway", "read"}
    mcp.tool(
        name="search_enum_types",
        description="Search enumeration types by name and/or associated folder.",
        tags=read,
    )(search_enum_types)
    mcp.tool(
        name="get_enum_type_by_name",
        description="Get one enumeration type and its values by name.",
        tags=read,
    )(tools.get_enum_type_by_name)
    mcp.tool(
        name="get_enum_types_by_folder",
        description="List enumeration types used by a folder, e.g. Tasks or Leads.",
        tags=read,
    )(get_enum_types_by_folder)
    mcp.tool(
        name="get_task_enum_types",
        description="List enumeration types of tasks (importance, type, state).",
        tags=read,
    )(get_task_enum_types)
    return mcp


async def serve_stdio(app: FastAPI, host: str, port: int, server_base_url: str) -> None:
    """Run the REST app in the background and the MCP server on stdio."""
    # stdout carries the MCP protocol, so uvicorn must not write access logs there
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, access_log=False))
    http_task = asyncio.create_task(server.serve())
    mcp = create_mcp_server(app.state.context, server_base_url)
    logger.info(f"MCP server started, REST API on {server_base_url}")
    try:
        await mcp.run_async(transport="stdio")
    finally:
        server.should_exit = True
        await http_task


def main() -> None:
    load_environment()
    port = int(os.getenv("PORT", str(DEFAULT_PORT)))
    host = os.getenv("HOST", "127.0.0.1")
    base_url = os.getenv("SERVER_BASE_URL", f"http://localhost:{port}")
    app = create_app(resolve_auth_config())
    asyncio.run(serve_stdio(app, host, port, base_url))


if __name__ == "__main__":
    main()
