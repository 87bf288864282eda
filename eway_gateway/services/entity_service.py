"""
Entity services - generic CRUD operations over backend methods.

Each entity maps to four backend methods (search, get, save, delete). Items
are passed through with their backend field names. Deals live in the
``Leads`` folder and are reached through the folder-based item methods.
Enumeration types are read-only and have their own service.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from ..errors import RemoteCallError
from ..schemas.eway import EwayApiResult
from .eway_client import EwaySessionClient

logger = logging.getLogger(__name__)

DEAL_FOLDER = "Leads"
TASK_FOLDER = "Tasks"


@dataclass(frozen=True)
class EntityMethods:
    """Backend method names used for one entity type."""

    name: str
    search: str
    get_by_id: str
    save: str
    delete: str


ENTITY_SERVICES: Dict[str, EntityMethods] = {
    "companies": EntityMethods(
        "company", "SearchCompanies", "GetCompaniesByItemGuids", "SaveCompany", "DeleteCompany"
    ),
    "contacts": EntityMethods(
        "contact", "SearchContacts", "GetContactsByItemGuids", "SaveContact", "DeleteContact"
    ),
    "deals": EntityMethods(
        "deal", "SearchItems", "GetLeadsByItemGuids", "SaveLeads", "SaveLeads"
    ),
    "leads": EntityMethods(
        "lead", "SearchLeads", "GetLeadsByItemGuids", "SaveLead", "DeleteLead"
    ),
    "tasks": EntityMethods(
        "task", "SearchTasks", "GetTasksByItemGuids", "SaveTask", "DeleteTask"
    ),
    "users": EntityMethods(
        "user", "SearchUsers", "GetUsersByItemGuids", "SaveUser", "DeleteUser"
    ),
}


def _items(result: EwayApiResult) -> List[Any]:
    if result.data is None:
        return []
    if isinstance(result.data, list):
        return result.data
    return [result.data]


def _raise_for_result(result: EwayApiResult, action: str) -> None:
    if result.is_success:
        return
    message = result.description or result.user_message or "Internal server error"
    logger.error(f"{action} failed: {result.return_code} {message}")
    raise RemoteCallError(
        message, return_code=result.return_code or "unknown", description=result.description
    )


@dataclass
class SearchResult:
    items: List[Any]
    total_count: Optional[int]


def build_search_params(
    limit: int = DEFAULT_PAGE_LIMIT,
    offset: int = 0,
    search_query: Optional[str] = None,
    additional_fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the ``transmitObject`` body of a search call.

    Args:
        limit: Page size, capped at MAX_PAGE_LIMIT
        offset: Number of items to skip
        search_query: Optional full-text query
        additional_fields: Extra backend filter fields

    Returns:
        Request body for a search method
    """
    transmit: Dict[str, Any] = {"Limit": min(limit, MAX_PAGE_LIMIT), "Offset": offset}
    if search_query:
        transmit["SearchQuery"] = search_query
    if additional_fields:
        transmit.update(additional_fields)
    return {"transmitObject": transmit}


class EntityService:
    """CRUD operations for one entity type."""

    def __init__(self, client: EwaySessionClient, methods: EntityMethods):
        self.client = client
        self.methods = methods

    def search_params(
        self,
        limit: int,
        offset: int,
        search_query: Optional[str],
        additional_fields: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return build_search_params(limit, offset, search_query, additional_fields)

    def get_params(self, item_guid: str) -> Dict[str, Any]:
        return {"itemGuid": item_guid, "includeForeignKeys": True}

    def save_params(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"transmitObject": data}

    def _raise_for_result(self, result: EwayApiResult, action: str) -> None:
        _raise_for_result(result, f"{action} {self.methods.name}")

    async def search(
        self,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
        search_query: Optional[str] = None,
        additional_fields: Optional[Dict[str, Any]] = None,
    ) -> SearchResult:
        params = self.search_params(limit, offset, search_query, additional_fields)
        logger.info(f"Searching {self.methods.name} items: {params['transmitObject']}")
        result = await self.client.call_method(self.methods.search, params)
        self._raise_for_result(result, "Search")
        total = result.total_count if isinstance(result.total_count, int) else None
        return SearchResult(items=_items(result), total_count=total)

    async def get_by_id(self, item_guid: str) -> Optional[Dict[str, Any]]:
        """Return the item, or None if the backend does not find it."""
        result = await self.client.call_method(
            self.methods.get_by_id, self.get_params(item_guid)
        )
        if not result.is_success:
            logger.warning(
                f"{self.methods.name} {item_guid} not found ({result.return_code})"
            )
            return None
        items = _items(result)
        return items[0] if items else None

    async def save(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Create or update an item.

        Args:
            data: Item with backend field names; include ``ItemGUID`` to update

        Returns:
            GUID of the saved item
        """
        result = await self.client.call_method(self.methods.save, self.save_params(data))
        self._raise_for_result(result, "Save")
        guid = result.guid or data.get("ItemGUID")
        logger.info(f"Saved {self.methods.name} {guid}")
        return guid

    async def delete(self, item_guid: str) -> bool:
        """Delete an item. Returns False if the item does not exist."""
        result = await self.client.call_method(self.methods.delete, {"itemGuid": item_guid})
        self._raise_for_result(result, "Delete")
        logger.info(f"Deleted {self.methods.name} {item_guid}")
        return True


class DealService(EntityService):
    """
    Deals are items of the ``Leads`` folder.

    Searches go through ``SearchItems`` with ``maxRecords``/``skip`` paging
    and a ``ProjectName`` filter. Deletion marks the item as deleted.
    """

    def search_params(self, limit, offset, search_query, additional_fields):
        transmit: Dict[str, Any] = {
            "folderName": DEAL_FOLDER,
            "maxRecords": min(limit, MAX_PAGE_LIMIT),
            "skip": offset,
        }
        search_fields: Dict[str, Any] = dict(additional_fields or {})
        if search_query and search_query.strip():
            search_fields["ProjectName"] = search_query.strip()
        if search_fields:
            transmit["searchFields"] = search_fields
        return {"transmitObject": transmit}

    def get_params(self, item_guid):
        return {"transmitObject": {"folderName": DEAL_FOLDER, "itemGuids": [item_guid]}}

    def save_params(self, data):
        return {"transmitObject": {"folderName": DEAL_FOLDER, "itemData": data}}

    async def delete(self, item_guid: str) -> bool:
        existing = await self.get_by_id(item_guid)
        if existing is None:
            return False
        data = {
            "ItemGUID": item_guid,
            "ItemVersion": existing.get("ItemVersion"),
            "IsDeleted": True,
        }
        result = await self.client.call_method(self.methods.delete, self.save_params(data))
        self._raise_for_result(result, "Delete")
        logger.info(f"Deleted deal {item_guid}")
        return True


ENTITY_SERVICE_CLASSES = {"deals": DealService}


def create_entity_service(client: EwaySessionClient, entity: str) -> EntityService:
    """
    Build the service for a registered entity.

    Raises:
        KeyError: If the entity is not registered
    """
    methods = ENTITY_SERVICES[entity]
    service_class = ENTITY_SERVICE_CLASSES.get(entity, EntityService)
    return service_class(client, methods)


class EnumTypeService:
    """Read access to enumeration types (option lists of item fields)."""

    search_method = "SearchEnumTypes"

    def __init__(self, client: EwaySessionClient):
        self.client = client

    async def search(
        self,
        enum_name: Optional[str] = None,
        folder_names: Optional[List[str]] = None,
        include_values: bool = True,
    ) -> List[Dict[str, Any]]:
        """
        Search enumeration types.

        The backend filters by name only. Folder filtering is applied to the
        returned ``AssociatedFolderNames``, case-insensitively.

        Args:
            enum_name: Exact enumeration name, e.g. ``TaskImportance``
            folder_names: Keep types associated with any of these folders
            include_values: Include the enumeration values

        Returns:
            Matching enumeration types with backend field names
        """
        # The backend requires at least one filter property
        transmit: Dict[str, Any] = {"EnumName": enum_name} if enum_name else {"IsSystem": False}
        params = {
            "transmitObject": transmit,
            "includeRelations": False,
            "omitEnumValues": not include_values,
        }
        result = await self.client.call_method(self.search_method, params)
        _raise_for_result(result, "Search enum types")

        enum_types = [item for item in _items(result) if isinstance(item, dict)]
        if folder_names:
            wanted = {name.lower() for name in folder_names}
            enum_types = [
                item
                for item in enum_types
                if any(
                    str(folder).lower() in wanted
                    for folder in item.get("AssociatedFolderNames") or []
                )
            ]
        logger.info(f"Found {len(enum_types)} enum types")
        return enum_types

    async def get_by_name(
        self, enum_name: str, include_values: bool = True
    ) -> Optional[Dict[str, Any]]:
        enum_types = await self.search(enum_name=enum_name, include_values=include_values)
        if not enum_types:
            logger.warning(f"Enum type {enum_name} not found")
            return None
        return enum_types[0]

    async def get_by_folder(
        self, folder_name: str, include_values: bool = True
    ) -> List[Dict[str, Any]]:
        return await self.search(folder_names=[folder_name], include_values=include_values)

    async def get_task_enum_types(self) -> List[Dict[str, Any]]:
        return await self.get_by_folder(TASK_FOLDER)
