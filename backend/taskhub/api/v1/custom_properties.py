"""Custom property definition and value endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from taskhub.api.v1.auth import CurrentUser
from taskhub.db.session import DBSession
from taskhub.models.custom_property import CustomProperty, EntityType, PropertyType
from taskhub.services.custom_property import CustomPropertyService, PropertyValueView

router = APIRouter()
logger = structlog.get_logger()


class CustomPropertyCreate(BaseModel):
    """Custom property definition request."""

    name: str = Field(..., min_length=1, max_length=100)
    property_type: PropertyType
    entity_type: EntityType
    options: list[str] | None = None


class CustomPropertyUpdate(BaseModel):
    """Only the name and options of a property can change."""

    name: str | None = Field(None, min_length=1, max_length=100)
    options: list[str] | None = None


class CustomPropertyResponse(BaseModel):
    id: UUID
    organization_id: UUID
    entity_type: EntityType
    name: str
    property_type: PropertyType
    options: list[str] | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PropertyValueSet(BaseModel):
    value: Any


class PropertyValueResponse(BaseModel):
    """Stored value with its property definition."""

    property_id: UUID
    name: str
    property_type: PropertyType
    options: list[str] | None
    value: Any
    updated_at: datetime

    class Config:
        from_attributes = True


@router.post(
    "/organizations/{org_id}/properties",
    response_model=CustomPropertyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def define_property(
    org_id: UUID,
    data: CustomPropertyCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> CustomProperty:
    """Define a custom property for tasks or projects. Requires owner or admin."""
    return await CustomPropertyService(db).define_property(
        current_user.id,
        org_id,
        name=data.name,
        property_type=data.property_type,
        entity_type=data.entity_type,
        options=data.options,
    )


@router.get(
    "/organizations/{org_id}/properties/{entity_type}",
    response_model=list[CustomPropertyResponse],
)
async def list_organization_properties(
    org_id: UUID,
    entity_type: EntityType,
    current_user: CurrentUser,
    db: DBSession,
) -> list[CustomProperty]:
    return await CustomPropertyService(db).list_organization_properties(
        current_user.id, org_id, entity_type
    )


@router.get("/properties/values/{entity_type}/{entity_id}", response_model=list[PropertyValueResponse])
async def get_entity_property_values(
    entity_type: EntityType,
    entity_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> list[PropertyValueView]:
    """All property values set on a task or project."""
    return await CustomPropertyService(db).get_entity_property_values(
        current_user.id, entity_id, entity_type
    )


@router.put("/properties/values/{entity_id}/{property_id}", response_model=PropertyValueResponse)
async def set_property_value(
    entity_id: UUID,
    property_id: UUID,
    data: PropertyValueSet,
    current_user: CurrentUser,
    db: DBSession,
) -> PropertyValueView:
    """Set (create or replace) a property value on an entity."""
    return await CustomPropertyService(db).set_property_value(
        current_user.id, entity_id, property_id, data.value
    )


@router.delete(
    "/properties/values/{entity_id}/{property_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_property_value(
    entity_id: UUID,
    property_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    await CustomPropertyService(db).delete_property_value(current_user.id, entity_id, property_id)


@router.get("/properties/{property_id}", response_model=CustomPropertyResponse)
async def get_property(
    property_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> CustomProperty:
    return await CustomPropertyService(db).get_property(current_user.id, property_id)


@router.put("/properties/{property_id}", response_model=CustomPropertyResponse)
async def update_property(
    property_id: UUID,
    updates: CustomPropertyUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> CustomProperty:
    """Rename a property or replace its options. Requires owner or admin."""
    return await CustomPropertyService(db).update_property(
        current_user.id, property_id, updates.model_dump(exclude_unset=True)
    )


@router.delete("/properties/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Delete a property and all of its values. Requires owner or admin."""
    await CustomPropertyService(db).delete_property(current_user.id, property_id)
