"""Tests for the entity services."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from eway_gateway.errors import RemoteCallError
from eway_gateway.schemas import EwayApiResult
from eway_gateway.services.entity_service import (
    ENTITY_SERVICES,
    DealService,
    EntityService,
    EnumTypeService,
    build_search_params,
    create_entity_service,
)


def _service(entity: str, *results: dict):
    client = MagicMock()
    client.call_method = AsyncMock(
        side_effect=[EwayApiResult.model_validate(r) for r in results]
    )
    return EntityService(client, ENTITY_SERVICES[entity]), client


class TestBuildSearchParams:
    """Tests for build_search_params."""

    def test_defaults(self):
        """Defaults are a page of 25 from the start."""
        assert build_search_params() == {"transmitObject": {"Limit": 25, "Offset": 0}}

    def test_limit_capped_and_fields_merged(self):
        """Limit is capped at 100 and extra fields are merged in."""
        params = build_search_params(
            limit=1000, offset=5, search_query="acme", additional_fields={"Town": "Prague"}
        )
        assert params == {
            "transmitObject": {
                "Limit": 100,
                "Offset": 5,
                "SearchQuery": "acme",
                "Town": "Prague",
            }
        }


class TestEntityService:
    """Tests for EntityService operations."""

    def test_registry(self):
        """The registry covers the supported entities."""
        assert set(ENTITY_SERVICES) == {
            "companies", "contacts", "deals", "leads", "tasks", "users"
        }
        assert ENTITY_SERVICES["companies"].search == "SearchCompanies"

    @pytest.mark.asyncio
    async def test_search(self):
        """Search returns items and the backend total."""
        service, client = _service(
            "companies", {"ReturnCode": "rcSuccess", "Data": [{"ItemGUID": "a"}], "TotalCount": 7}
        )

        result = await service.search(limit=5, search_query="acme")

        assert result.items == [{"ItemGUID": "a"}]
        assert result.total_count == 7
        client.call_method.assert_awaited_once_with(
            "SearchCompanies",
            {"transmitObject": {"Limit": 5, "Offset": 0, "SearchQuery": "acme"}},
        )

    @pytest.mark.asyncio
    async def test_search_failure(self):
        """Non-success codes raise RemoteCallError with the description."""
        service, _ = _service("tasks", {"ReturnCode": "rcError", "Description": "Boom"})

        with pytest.raises(RemoteCallError) as exc_info:
            await service.search()

        assert str(exc_info.value) == "Boom"
        assert exc_info.value.return_code == "rcError"

    @pytest.mark.asyncio
    async def test_get_by_id_not_found(self):
        """A failed lookup is None rather than an error."""
        service, _ = _service("users", {"ReturnCode": "rcError", "Description": "Not found"})
        assert await service.get_by_id("u-1") is None

    @pytest.mark.asyncio
    async def test_save_falls_back_to_item_guid(self):
        """An update without a returned Guid reports the item's own GUID."""
        service, client = _service("contacts", {"ReturnCode": "rcSuccess"})

        guid = await service.save({"ItemGUID": "c-1", "FileAs": "Jane"})

        assert guid == "c-1"
        client.call_method.assert_awaited_once_with(
            "SaveContact", {"transmitObject": {"ItemGUID": "c-1", "FileAs": "Jane"}}
        )

    @pytest.mark.asyncio
    async def test_save_uses_user_message(self):
        """The user message is used when there is no description."""
        service, _ = _service(
            "leads", {"ReturnCode": "rcValidationError", "UserMessage": "Name is required"}
        )
        with pytest.raises(RemoteCallError) as exc_info:
            await service.save({})
        assert str(exc_info.value) == "Name is required"
        assert exc_info.value.return_code == "rcValidationError"

    @pytest.mark.asyncio
    async def test_delete(self):
        """Delete sends the item GUID."""
        service, client = _service("leads", {"ReturnCode": "rcSuccess"})
        assert await service.delete("l-1") is True
        client.call_method.assert_awaited_once_with("DeleteLead", {"itemGuid": "l-1"})

    @pytest.mark.asyncio
    async def test_single_object_data(self):
        """A single object in Data is treated as one item."""
        service, _ = _service(
            "companies", {"ReturnCode": "rcSuccess", "Data": {"ItemGUID": "a"}, "TotalCount": "?"}
        )
        result = await service.search()
        assert result.items == [{"ItemGUID": "a"}]
        assert result.total_count is None


def _client(*results: dict):
    client = MagicMock()
    client.call_method = AsyncMock(
        side_effect=[EwayApiResult.model_validate(r) for r in results]
    )
    return client


class TestDealService:
    """Tests for deals stored in the Leads folder."""

    def test_factory_picks_deal_service(self):
        """Deals get their own service, other entities the generic one."""
        client = MagicMock()
        assert isinstance(create_entity_service(client, "deals"), DealService)
        service = create_entity_service(client, "companies")
        assert type(service) is EntityService

    @pytest.mark.asyncio
    async def test_search_uses_folder_paging(self):
        """Deals are searched by project name through SearchItems."""
        client = _client({"ReturnCode": "rcSuccess", "Data": [{"ItemGUID": "d-1"}]})
        service = create_entity_service(client, "deals")

        result = await service.search(limit=500, offset=10, search_query=" Roof ")

        assert result.items == [{"ItemGUID": "d-1"}]
        client.call_method.assert_awaited_once_with(
            "SearchItems",
            {
                "transmitObject": {
                    "folderName": "Leads",
                    "maxRecords": 100,
                    "skip": 10,
                    "searchFields": {"ProjectName": "Roof"},
                }
            },
        )

    @pytest.mark.asyncio
    async def test_get_by_id_and_save_params(self):
        """Lookups and saves are wrapped in the folder transmit object."""
        client = _client(
            {"ReturnCode": "rcSuccess", "Data": [{"ItemGUID": "d-1"}]},
            {"ReturnCode": "rcSuccess", "Guid": "d-2"},
        )
        service = create_entity_service(client, "deals")

        assert await service.get_by_id("d-1") == {"ItemGUID": "d-1"}
        assert await service.save({"ProjectName": "Roof"}) == "d-2"

        calls = client.call_method.await_args_list
        assert calls[0].args == (
            "GetLeadsByItemGuids",
            {"transmitObject": {"folderName": "Leads", "itemGuids": ["d-1"]}},
        )
        assert calls[1].args == (
            "SaveLeads",
            {"transmitObject": {"folderName": "Leads", "itemData": {"ProjectName": "Roof"}}},
        )

    @pytest.mark.asyncio
    async def test_delete_marks_item_deleted(self):
        """Delete saves the item with IsDeleted and its current version."""
        client = _client(
            {"ReturnCode": "rcSuccess", "Data": [{"ItemGUID": "d-1", "ItemVersion": 4}]},
            {"ReturnCode": "rcSuccess"},
        )
        service = create_entity_service(client, "deals")

        assert await service.delete("d-1") is True

        assert client.call_method.await_args_list[1].args == (
            "SaveLeads",
            {
                "transmitObject": {
                    "folderName": "Leads",
                    "itemData": {"ItemGUID": "d-1", "ItemVersion": 4, "IsDeleted": True},
                }
            },
        )

    @pytest.mark.asyncio
    async def test_delete_missing_deal(self):
        """Deleting an unknown deal reports False without saving."""
        client = _client({"ReturnCode": "rcSuccess", "Data": []})
        service = create_entity_service(client, "deals")

        assert await service.delete("d-9") is False
        assert client.call_method.await_count == 1


class TestEnumTypeService:
    """Tests for enumeration type lookups."""

    ENUM_TYPES = [
        {"EnumName": "TaskImportance", "AssociatedFolderNames": ["Tasks"]},
        {"EnumName": "LeadType", "AssociatedFolderNames": ["Leads"]},
        {"EnumName": "Orphan", "AssociatedFolderNames": None},
    ]

    @pytest.mark.asyncio
    async def test_search_without_name_uses_broad_filter(self):
        """Without a name the backend is asked for non-system types."""
        client = _client({"ReturnCode": "rcSuccess", "Data": self.ENUM_TYPES})
        service = EnumTypeService(client)

        items = await service.search(include_values=False)

        assert len(items) == 3
        client.call_method.assert_awaited_once_with(
            "SearchEnumTypes",
            {
                "transmitObject": {"IsSystem": False},
                "includeRelations": False,
                "omitEnumValues": True,
            },
        )

    @pytest.mark.asyncio
    async def test_search_by_name(self):
        """A name is passed to the backend as EnumName."""
        client = _client({"ReturnCode": "rcSuccess", "Data": self.ENUM_TYPES[:1]})
        service = EnumTypeService(client)

        item = await service.get_by_name("TaskImportance")

        assert item["EnumName"] == "TaskImportance"
        params = client.call_method.await_args.args[1]
        assert params["transmitObject"] == {"EnumName": "TaskImportance"}
        assert params["omitEnumValues"] is False

    @pytest.mark.asyncio
    async def test_folder_filter_is_case_insensitive(self):
        """Folder filtering happens locally and ignores case."""
        client = _client({"ReturnCode": "rcSuccess", "Data": self.ENUM_TYPES})
        service = EnumTypeService(client)

        items = await service.get_by_folder("tasks")

        assert [item["EnumName"] for item in items] == ["TaskImportance"]

    @pytest.mark.asyncio
    async def test_task_enum_types(self):
        """Task enum types are those associated with the Tasks folder."""
        client = _client({"ReturnCode": "rcSuccess", "Data": self.ENUM_TYPES})
        items = await EnumTypeService(client).get_task_enum_types()
        assert [item["EnumName"] for item in items] == ["TaskImportance"]

    @pytest.mark.asyncio
    async def test_unknown_name(self):
        """An empty result means the type does not exist."""
        client = _client({"ReturnCode": "rcSuccess", "Data": []})
        assert await EnumTypeService(client).get_by_name("Nope") is None

    @pytest.mark.asyncio
    async def test_failure_raises(self):
        """Backend failures raise RemoteCallError."""
        client = _client({"ReturnCode": "rcError", "Description": "Boom"})
        with pytest.raises(RemoteCallError):
            await EnumTypeService(client).search()
