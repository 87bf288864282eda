"""
Entity Routes - generic CRUD endpoints for the registered backend entities.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Response

from ..config import API_BASE_PATH, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from ..errors import ApiError, GatewayError
from ..services.auth import require_auth
from ..services.eway_client import EwaySessionClient
from ..services.entity_service import (
    ENTITY_SERVICES,
    EntityMethods,
    EntityService,
    EnumTypeService,
    create_entity_service,
)
from .utils import paginated_response, to_api_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix=API_BASE_PATH, tags=["Entities"])


def get_entity_methods(entity: str) -> EntityMethods:
    methods = ENTITY_SERVICES.get(entity)
    if methods is None:
        raise ApiError(404, "NOT_FOUND", f"Unknown entity: {entity}")
    return methods


def get_entity_service(
    entity: str,
    methods: EntityMethods = Depends(get_entity_methods),
    session: EwaySessionClient = Depends(require_auth),
) -> EntityService:
    """Resolve the entity first so unknown paths fail before authentication."""
    return create_entity_service(session, entity)


def get_enum_type_service(
    session: EwaySessionClient = Depends(require_auth),
) -> EnumTypeService:
    return EnumTypeService(session)


@router.get("/enum-types", tags=["Enum types"], summary="Search enumeration types")
async def search_enum_types(
    enum_name: Optional[str] = Query(None, alias="enumName"),
    folder_name: Optional[str] = Query(None, alias="folderName"),
    include_values: bool = Query(True, alias="includeEnumValues"),
    service: EnumTypeService = Depends(get_enum_type_service),
) -> Dict[str, Any]:
    try:
        items = await service.search(
            enum_name=enum_name,
            folder_names=[folder_name] if folder_name else None,
            include_values=include_values,
        )
    except GatewayError as e:
        raise to_api_error(e) from e
    return {"data": items, "total": len(items)}


@router.get("/enum-types/tasks", tags=["Enum types"], summary="Enumeration types of tasks")
async def get_task_enum_types(
    service: EnumTypeService = Depends(get_enum_type_service),
) -> Dict[str, Any]:
    try:
        items = await service.get_task_enum_types()
    except GatewayError as e:
        raise to_api_error(e) from e
    return {"data": items, "total": len(items)}


@router.get(
    "/enum-types/folder/{folder_name}",
    tags=["Enum types"],
    summary="Enumeration types of a folder",
)
async def get_enum_types_by_folder(
    folder_name: str,
    include_values: bool = Query(True, alias="includeEnumValues"),
    service: EnumTypeService = Depends(get_enum_type_service),
) -> Dict[str, Any]:
    try:
        items = await service.get_by_folder(folder_name, include_values=include_values)
    except GatewayError as e:
        raise to_api_error(e) from e
    return {"data": items, "total": len(items)}


@router.get("/enum-types/{enum_name}", tags=["Enum types"], summary="Get an enumeration type")
async def get_enum_type(
    enum_name: str,
    include_values: bool = Query(True, alias="includeEnumValues"),
    service: EnumTypeService = Depends(get_enum_type_service),
) -> Dict[str, Any]:
    try:
        item = await service.get_by_name(enum_name, include_values=include_values)
    except GatewayError as e:
        raise to_api_error(e) from e
    if item is None:
        raise ApiError(404, "NOT_FOUND", f"Enum type {enum_name} not found")
    return {"data": item}


@router.get("/{entity}", summary="List or search items")
async def list_items(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1),
    offset: int = Query(0, ge=0),
    q: Optional[str] = Query(None, description="Full-text search query"),
    service: EntityService = Depends(get_entity_service),
) -> Dict[str, Any]:
    limit = min(limit, MAX_PAGE_LIMIT)
    try:
        result = await service.search(limit=limit, offset=offset, search_query=q)
    except GatewayError as e:
        raise to_api_error(e) from e
    return paginated_response(result.items, result.total_count, limit, offset)


@router.get("/{entity}/{item_id}", summary="Get one item")
async def get_item(
    item_id: str, service: EntityService = Depends(get_entity_service)
) -> Dict[str, Any]:
    try:
        item = await service.get_by_id(item_id)
    except GatewayError as e:
        raise to_api_error(e) from e
    if item is None:
        raise ApiError(404, "NOT_FOUND", f"{service.methods.name} {item_id} not found")
    return {"data": item}


@router.post("/{entity}", status_code=201, summary="Create or update an item")
async def save_item(
    data: Dict[str, Any] = Body(...),
    service: EntityService = Depends(get_entity_service),
) -> Dict[str, Any]:
    try:
        guid = await service.save(data)
    except GatewayError as e:
        raise to_api_error(e) from e
    return {"id": guid}


@router.delete("/{entity}/{item_id}", status_code=204, summary="Delete an item")
async def delete_item(
    item_id: str, service: EntityService = Depends(get_entity_service)
) -> Response:
    try:
        deleted = await service.delete(item_id)
    except GatewayError as e:
        raise to_api_error(e) from e
    if not deleted:
        raise ApiError(404, "NOT_FOUND", f"{service.methods.name} {item_id} not found")
    return Response(status_code=204)
