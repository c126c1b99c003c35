"""Custom property definitions and their per-entity values.

Definitions belong to an organization and apply to either tasks or projects.
Values live in a single table keyed by (entity_id, property); ``entity_type`` on
each row says which table ``entity_id`` points into, and the service checks the
referenced row exists before writing.
"""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.transaction import atomic
from taskhub.exceptions import ConflictError, InvalidInputError, NotFoundError
from taskhub.models.custom_property import (
    CHOICE_TYPES,
    CustomProperty,
    CustomPropertyValue,
    EntityType,
    PropertyType,
)
from taskhub.services.access_control import (
    MANAGE_ROLES,
    READ_ROLES,
    WRITE_ROLES,
    authorize,
    get_membership,
    resolve_entity_organization,
    resolve_organization,
    resolve_property,
)

logger = structlog.get_logger()

NAME_MAX_LENGTH = 100
UPDATABLE_FIELDS = frozenset({"name", "options"})
DUPLICATE_NAME_MESSAGE = "A property with this name already exists for this entity type."


@dataclass
class PropertyValueView:
    """A stored value together with its property definition."""

    property_id: UUID
    name: str
    property_type: PropertyType
    options: list[str] | None
    value: Any
    updated_at: datetime

    @classmethod
    def build(
        cls, value: CustomPropertyValue, custom_property: CustomProperty
    ) -> "PropertyValueView":
        return cls(
            property_id=custom_property.id,
            name=custom_property.name,
            property_type=custom_property.property_type,
            options=custom_property.options,
            value=value.value,
            updated_at=value.updated_at,
        )


async def load_entity_values(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: UUID,
) -> list[PropertyValueView]:
    """All values stored for one entity, ordered by property name."""
    result = await db.execute(
        select(CustomPropertyValue, CustomProperty)
        .join(CustomProperty, CustomProperty.id == CustomPropertyValue.custom_property_id)
        .where(
            CustomPropertyValue.entity_type == entity_type,
            CustomPropertyValue.entity_id == entity_id,
        )
        .order_by(func.lower(CustomProperty.name), CustomProperty.id)
    )
    return [PropertyValueView.build(value, prop) for value, prop in result.all()]


def normalize_options(property_type: PropertyType, options: Sequence[str] | None) -> list[str] | None:
    """Validate the choice list for a property type.

    Choice types need a non-empty list of distinct, non-blank strings; every other
    type takes no options.
    """
    if property_type not in CHOICE_TYPES:
        if options:
            raise InvalidInputError(f"Properties of type {property_type.value} take no options.")
        return None

    if not options:
        raise InvalidInputError(f"Properties of type {property_type.value} need options.")
    if any(not isinstance(option, str) or not option.strip() for option in options):
        raise InvalidInputError("Options must be non-empty strings.")
    if len(set(options)) != len(options):
        raise InvalidInputError("Options must be distinct.")
    return list(options)


def _parse_datetime(value: str) -> datetime:
    # A bare date parses as midnight; require the time part
    if "T" not in value and " " not in value.strip():
        raise ValueError(value)
    return datetime.fromisoformat(value)


class CustomPropertyService:
    """Service for custom property definitions and values."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Property Definition CRUD
    # =========================================================================

    async def define_property(
        self,
        actor_id: UUID,
        organization_id: UUID,
        name: str,
        property_type: PropertyType | str,
        entity_type: EntityType | str,
        options: Sequence[str] | None = None,
    ) -> CustomProperty:
        await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, MANAGE_ROLES)

        property_type = self._parse_property_type(property_type)
        entity_type = self._parse_entity_type(entity_type)
        name = self._clean_name(name)
        options = normalize_options(property_type, options)
        await self._ensure_name_available(organization_id, entity_type, name)

        custom_property = CustomProperty(
            organization_id=organization_id,
            entity_type=entity_type,
            name=name,
            property_type=property_type,
            options=options,
        )
        async with atomic(self.db, DUPLICATE_NAME_MESSAGE):
            self.db.add(custom_property)

        logger.info(
            "custom_property_defined",
            property_id=str(custom_property.id),
            organization_id=str(organization_id),
            entity_type=entity_type.value,
            property_type=property_type.value,
        )
        return custom_property

    async def list_organization_properties(
        self,
        actor_id: UUID,
        organization_id: UUID,
        entity_type: EntityType | str,
    ) -> list[CustomProperty]:
        await resolve_organization(self.db, organization_id)
        await authorize(self.db, actor_id, organization_id, READ_ROLES)

        result = await self.db.execute(
            select(CustomProperty)
            .where(
                CustomProperty.organization_id == organization_id,
                CustomProperty.entity_type == self._parse_entity_type(entity_type),
            )
            .order_by(func.lower(CustomProperty.name), CustomProperty.id)
        )
        return list(result.scalars().all())

    async def get_property(self, actor_id: UUID, property_id: UUID) -> CustomProperty:
        custom_property = await resolve_property(self.db, property_id)
        await authorize(self.db, actor_id, custom_property.organization_id, READ_ROLES)
        return custom_property

    async def update_property(
        self,
        actor_id: UUID,
        property_id: UUID,
        changes: Mapping[str, Any],
    ) -> CustomProperty:
        """Rename a property or replace its options.

        The value type and entity type are fixed at creation.
        """
        custom_property = await resolve_property(self.db, property_id)
        await authorize(self.db, actor_id, custom_property.organization_id, MANAGE_ROLES)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(
                f"Cannot update property fields: {', '.join(sorted(unknown))}."
            )

        name = None
        if "name" in changes:
            name = self._clean_name(changes["name"])
            if name.lower() != custom_property.name.lower():
                await self._ensure_name_available(
                    custom_property.organization_id,
                    custom_property.entity_type,
                    name,
                )
        options = None
        if "options" in changes:
            options = normalize_options(custom_property.property_type, changes["options"])
            await self._ensure_choices_unused(custom_property, options)

        async with atomic(self.db, DUPLICATE_NAME_MESSAGE):
            if name is not None:
                custom_property.name = name
            if "options" in changes:
                custom_property.options = options

        logger.info("custom_property_updated", property_id=str(property_id), fields=sorted(changes))
        return custom_property

    async def delete_property(self, actor_id: UUID, property_id: UUID) -> None:
        """Delete a definition together with every value stored for it."""
        custom_property = await resolve_property(self.db, property_id)
        await authorize(self.db, actor_id, custom_property.organization_id, MANAGE_ROLES)

        async with atomic(self.db):
            await self.db.execute(
                delete(CustomPropertyValue).where(
                    CustomPropertyValue.custom_property_id == property_id
                )
            )
            await self.db.execute(delete(CustomProperty).where(CustomProperty.id == property_id))

        logger.info("custom_property_deleted", property_id=str(property_id), deleted_by=str(actor_id))

    # =========================================================================
    # Values
    # =========================================================================

    async def set_property_value(
        self,
        actor_id: UUID,
        entity_id: UUID,
        property_id: UUID,
        value: Any,
    ) -> PropertyValueView:
        """Validate ``value`` against the property type and upsert it for the entity."""
        custom_property = await resolve_property(self.db, property_id)
        await self._resolve_target(custom_property, entity_id)
        await authorize(self.db, actor_id, custom_property.organization_id, WRITE_ROLES)

        value = await self.validate_value(custom_property, value)

        existing = await self._get_value(entity_id, property_id)
        async with atomic(self.db):
            if existing is None:
                existing = CustomPropertyValue(
                    entity_id=entity_id,
                    entity_type=custom_property.entity_type,
                    custom_property_id=property_id,
                    value=value,
                )
                self.db.add(existing)
            else:
                existing.value = value

        logger.info(
            "custom_property_value_set",
            property_id=str(property_id),
            entity_type=custom_property.entity_type.value,
            entity_id=str(entity_id),
        )
        return PropertyValueView.build(existing, custom_property)

    async def get_entity_property_values(
        self,
        actor_id: UUID,
        entity_id: UUID,
        entity_type: EntityType | str,
    ) -> list[PropertyValueView]:
        entity_type = self._parse_entity_type(entity_type)
        organization_id = await resolve_entity_organization(self.db, entity_type, entity_id)
        await authorize(self.db, actor_id, organization_id, READ_ROLES)
        return await load_entity_values(self.db, entity_type, entity_id)

    async def delete_property_value(
        self,
        actor_id: UUID,
        entity_id: UUID,
        property_id: UUID,
    ) -> None:
        custom_property = await resolve_property(self.db, property_id)
        await self._resolve_target(custom_property, entity_id)
        await authorize(self.db, actor_id, custom_property.organization_id, WRITE_ROLES)

        existing = await self._get_value(entity_id, property_id)
        if existing is None:
            raise NotFoundError("Property value")

        async with atomic(self.db):
            await self.db.delete(existing)

        logger.info(
            "custom_property_value_deleted",
            property_id=str(property_id),
            entity_id=str(entity_id),
        )

    async def validate_value(self, custom_property: CustomProperty, value: Any) -> Any:
        """Check ``value`` against the property's type and return its stored form.

        Raises:
            InvalidInputError: when the value does not fit the type.
        """
        property_type = custom_property.property_type
        label = f"Value for '{custom_property.name}'"

        if value is None:
            raise InvalidInputError(f"{label} must not be null; delete the value instead.")

        if property_type == PropertyType.TEXT:
            if not isinstance(value, str):
                raise InvalidInputError(f"{label} must be text.")
            return value

        if property_type == PropertyType.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInputError(f"{label} must be a number.")
            if isinstance(value, float) and not math.isfinite(value):
                raise InvalidInputError(f"{label} must be a finite number.")
            return value

        if property_type == PropertyType.DATE:
            try:
                if not isinstance(value, str):
                    raise ValueError(value)
                return date.fromisoformat(value).isoformat()
            except ValueError:
                raise InvalidInputError(f"{label} must be a date (YYYY-MM-DD).") from None

        if property_type == PropertyType.DATETIME:
            try:
                if not isinstance(value, str):
                    raise ValueError(value)
                _parse_datetime(value)
            except ValueError:
                raise InvalidInputError(f"{label} must be an ISO 8601 datetime.") from None
            return value

        options = custom_property.options or []

        if property_type == PropertyType.SELECT:
            if not isinstance(value, str) or value not in options:
                raise InvalidInputError(f"{label} must be one of: {', '.join(options)}.")
            return value

        if property_type == PropertyType.MULTI_SELECT:
            if not isinstance(value, list) or any(
                not isinstance(item, str) or item not in options for item in value
            ):
                raise InvalidInputError(f"{label} must be a list drawn from: {', '.join(options)}.")
            # Collapse duplicates, keeping first occurrence order
            return list(dict.fromkeys(value))

        if property_type == PropertyType.USER:
            try:
                user_id = UUID(str(value))
            except ValueError:
                raise InvalidInputError(f"{label} must be a user ID.") from None
            if await get_membership(self.db, user_id, custom_property.organization_id) is None:
                raise InvalidInputError(
                    f"{label} must reference a member of this organization.",
                    code="INVALID_USER",
                )
            return str(user_id)

        raise InvalidInputError(f"Unsupported property type: {property_type}.")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _resolve_target(self, custom_property: CustomProperty, entity_id: UUID) -> None:
        """Check the entity exists as the property's entity type, in its organization."""
        organization_id = await resolve_entity_organization(
            self.db, custom_property.entity_type, entity_id
        )
        if organization_id != custom_property.organization_id:
            raise NotFoundError(custom_property.entity_type.value.capitalize())

    async def _ensure_choices_unused(
        self, custom_property: CustomProperty, options: list[str] | None
    ) -> None:
        """Refuse an options change that drops a choice some stored value still uses."""
        if custom_property.property_type not in CHOICE_TYPES:
            return
        result = await self.db.execute(
            select(CustomPropertyValue.value).where(
                CustomPropertyValue.custom_property_id == custom_property.id
            )
        )
        in_use: set[str] = set()
        for value in result.scalars():
            in_use.update(value if isinstance(value, list) else [value])
        removed = in_use - set(options or [])
        if removed:
            raise ConflictError(
                f"Options still in use cannot be removed: {', '.join(sorted(removed))}.",
                code="OPTION_IN_USE",
            )

    async def _get_value(self, entity_id: UUID, property_id: UUID) -> CustomPropertyValue | None:
        result = await self.db.execute(
            select(CustomPropertyValue).where(
                CustomPropertyValue.entity_id == entity_id,
                CustomPropertyValue.custom_property_id == property_id,
            )
        )
        return result.scalar_one_or_none()

    async def _ensure_name_available(
        self,
        organization_id: UUID,
        entity_type: EntityType,
        name: str,
    ) -> None:
        result = await self.db.execute(
            select(CustomProperty.id).where(
                CustomProperty.organization_id == organization_id,
                CustomProperty.entity_type == entity_type,
                func.lower(CustomProperty.name) == name.lower(),
            )
        )
        if result.first() is not None:
            raise ConflictError(DUPLICATE_NAME_MESSAGE)

    @staticmethod
    def _clean_name(name: str | None) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Property name must not be empty.")
        if len(name) > NAME_MAX_LENGTH:
            raise InvalidInputError(f"Property name must be at most {NAME_MAX_LENGTH} characters.")
        return name

    @staticmethod
    def _parse_property_type(value: PropertyType | str) -> PropertyType:
        try:
            return PropertyType(value)
        except ValueError:
            raise InvalidInputError(f"Invalid property type: {value!r}.") from None

    @staticmethod
    def _parse_entity_type(value: EntityType | str) -> EntityType:
        try:
            return EntityType(value)
        except ValueError:
            raise InvalidInputError(f"Invalid entity type: {value!r}.") from None
