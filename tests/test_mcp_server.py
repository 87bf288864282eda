"""Tests for the MCP tool server."""

import time

import pytest
from fastmcp.exceptions import ToolError

from conftest import login_ok
from eway_gateway.context import build_context
from eway_gateway.mcp_server import EwayTools, create_mcp_server
from eway_gateway.services.auth import StoredToken

BASE_URL = "http://localhost:3000"


def _tools(config, backend):
    context = build_context(config, transport=backend.transport)
    return EwayTools(context, BASE_URL), context


class TestToolRegistration:
    """Tests for the registered tool set."""

    @pytest.mark.asyncio
    async def test_tool_names(self, legacy_config, backend):
        """Auth, entity and enum type tools are registered."""
        context = build_context(legacy_config, transport=backend.transport)
        mcp = create_mcp_server(context, BASE_URL)

        tools = await mcp.get_tools()

        for name in (
            "get_login_url",
            "get_auth_status",
            "get_companies",
            "get_company_by_id",
            "create_company",
            "update_company",
            "delete_company",
            "get_tasks",
            "get_deals",
            "get_user_by_id",
            "search_enum_types",
            "get_enum_type_by_name",
            "get_enum_types_by_folder",
            "get_task_enum_types",
        ):
            assert name in tools
        assert "write" in tools["create_company"].tags
        assert "read" in tools["get_companies"].tags

    @pytest.mark.asyncio
    async def test_registered_tool_calls_service(self, legacy_config, backend):
        """A registered list tool runs the entity search."""
        backend.queue("LogIn", login_ok("abc-123"))
        backend.queue(
            "SearchCompanies",
            {"ReturnCode": "rcSuccess", "Data": [{"ItemGUID": "a"}], "TotalCount": 1},
        )
        context = build_context(legacy_config, transport=backend.transport)
        mcp = create_mcp_server(context, BASE_URL)
        tool = (await mcp.get_tools())["get_companies"]

        result = await tool.fn(query="acme", limit=5)

        assert result["data"] == [{"ItemGUID": "a"}]
        assert result["pagination"]["total"] == 1
        assert backend.bodies("SearchCompanies")[0]["transmitObject"] == {
            "Limit": 5,
            "Offset": 0,
            "SearchQuery": "acme",
        }


class TestAuthTools:
    """Tests for get_login_url and get_auth_status."""

    @pytest.mark.asyncio
    async def test_login_url_oauth(self, oauth_config, backend):
        """OAuth2 mode points at the authorize endpoint of the REST app."""
        tools, _ = _tools(oauth_config, backend)
        result = await tools.get_login_url()
        assert result["authorizationUrl"] == f"{BASE_URL}/api/v1/oauth2/authorize"
        assert result["instructions"]

    @pytest.mark.asyncio
    async def test_login_url_legacy(self, legacy_config, backend):
        """Password mode needs no browser login."""
        tools, _ = _tools(legacy_config, backend)
        result = await tools.get_login_url()
        assert "authorizationUrl" not in result
        assert result["authMode"] == "legacy"

    @pytest.mark.asyncio
    async def test_auth_status_without_token(self, oauth_config, backend):
        """The status carries a hint when no token is held."""
        tools, _ = _tools(oauth_config, backend)
        result = await tools.get_auth_status()
        assert result["oauth2"]["hasValidToken"] is False
        assert "get_login_url" in result["hint"]

    @pytest.mark.asyncio
    async def test_auth_status_masks_session(self, legacy_config, backend):
        """The session id is never returned in full."""
        backend.queue("LogIn", login_ok("0123456789abcdef"))
        tools, context = _tools(legacy_config, backend)
        await context.session_client.log_in()

        result = await tools.get_auth_status()

        assert result["eway"]["sessionId"] == "01234567..."
        assert "hint" not in result


class TestEntityTools:
    """Tests for the entity tools."""

    @pytest.mark.asyncio
    async def test_unauthenticated_oauth(self, oauth_config, backend):
        """Without a token the tools fail with the login URL."""
        tools, _ = _tools(oauth_config, backend)

        with pytest.raises(ToolError) as exc_info:
            await tools.list_items("companies")

        assert "/api/v1/oauth2/authorize" in str(exc_info.value)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_oauth_with_token(self, oauth_config, backend):
        """A stored token lets the tools log in with the bearer header."""
        backend.queue("LogIn", login_ok(None))
        backend.queue("GetTasksByItemGuids", {"ReturnCode": "rcSuccess", "Data": [{"ItemGUID": "t"}]})
        tools, context = _tools(oauth_config, backend)
        context.token_manager.set_stored_token(
            StoredToken(
                access_token="access-0",
                refresh_token="refresh-0",
                expires_at=int((time.time() + 3600) * 1000),
            )
        )

        result = await tools.get_item("tasks", "t")

        assert result == {"data": {"ItemGUID": "t"}}
        assert backend.requests_to("LogIn")[0].headers["authorization"] == "Bearer access-0"

    @pytest.mark.asyncio
    async def test_login_failure(self, legacy_config, backend):
        """A rejected login is reported as a tool error."""
        backend.queue("LogIn", {"ReturnCode": "rcError", "Description": "Invalid password"})
        tools, _ = _tools(legacy_config, backend)

        with pytest.raises(ToolError) as exc_info:
            await tools.list_items("users")

        assert "Invalid password" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_limit_clamped(self, legacy_config, backend):
        """Page sizes are clamped to the allowed range."""
        backend.queue("LogIn", login_ok())
        backend.queue("SearchContacts", {"ReturnCode": "rcSuccess", "Data": []})
        tools, _ = _tools(legacy_config, backend)

        result = await tools.list_items("contacts", limit=0)

        assert result["pagination"]["limit"] == 1
        assert backend.bodies("SearchContacts")[0]["transmitObject"]["Limit"] == 1

    @pytest.mark.asyncio
    async def test_update_sets_item_guid(self, legacy_config, backend):
        """Updates save the data under the given GUID."""
        backend.queue("LogIn", login_ok())
        backend.queue("SaveCompany", {"ReturnCode": "rcSuccess"})
        tools, _ = _tools(legacy_config, backend)

        result = await tools.save_item("companies", {"FileAs": "Acme"}, item_id="c-1")

        assert result == {"status": "success", "id": "c-1"}
        assert backend.bodies("SaveCompany")[0]["transmitObject"] == {
            "FileAs": "Acme",
            "ItemGUID": "c-1",
        }

    @pytest.mark.asyncio
    async def test_missing_item(self, legacy_config, backend):
        """A missing item is a tool error."""
        backend.queue("LogIn", login_ok())
        backend.queue("GetLeadsByItemGuids", {"ReturnCode": "rcSuccess", "Data": []})
        tools, _ = _tools(legacy_config, backend)

        with pytest.raises(ToolError):
            await tools.get_item("leads", "l-9")

    @pytest.mark.asyncio
    async def test_backend_error(self, legacy_config, backend):
        """Backend failures carry the backend description."""
        backend.queue("LogIn", login_ok())
        backend.queue("DeleteTask", {"ReturnCode": "rcError", "Description": "Locked"})
        tools, _ = _tools(legacy_config, backend)

        with pytest.raises(ToolError) as exc_info:
            await tools.delete_item("tasks", "t-1")

        assert str(exc_info.value) == "Locked"


class TestEnumTypeTools:
    """Tests for the enum type tools."""

    @pytest.mark.asyncio
    async def test_search_by_folder(self, legacy_config, backend):
        """Folder searches return the matching types and a total."""
        backend.queue("LogIn", login_ok())
        backend.queue(
            "SearchEnumTypes",
            {
                "ReturnCode": "rcSuccess",
                "Data": [
                    {"EnumName": "TaskType", "AssociatedFolderNames": ["Tasks"]},
                    {"EnumName": "LeadType", "AssociatedFolderNames": ["Leads"]},
                ],
            },
        )
        tools, _ = _tools(legacy_config, backend)

        result = await tools.search_enum_types(folder_name="Tasks")

        assert result["total"] == 1
        assert result["data"][0]["EnumName"] == "TaskType"

    @pytest.mark.asyncio
    async def test_unknown_enum_name(self, legacy_config, backend):
        """An unknown enum name is a tool error."""
        backend.queue("LogIn", login_ok())
        backend.queue("SearchEnumTypes", {"ReturnCode": "rcSuccess", "Data": []})
        tools, _ = _tools(legacy_config, backend)

        with pytest.raises(ToolError):
            await tools.get_enum_type_by_name("Nope")
