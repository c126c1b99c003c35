"""Custom property definitions and their polymorphic values."""

import enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskhub.db.base import BaseModel, JSONType, enum_type

if TYPE_CHECKING:
    from taskhub.models.organization import Organization


class EntityType(str, enum.Enum):
    """Kind of entity a custom property attaches to."""

    TASK = "task"
    PROJECT = "project"


class PropertyType(str, enum.Enum):
    """Value type of a custom property."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    DATETIME = "datetime"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    USER = "user"


# Types whose options hold the allowed choices
CHOICE_TYPES = frozenset({PropertyType.SELECT, PropertyType.MULTI_SELECT})


class CustomProperty(BaseModel):
    """Organization-level property definition for tasks or projects.

    ``property_type`` and ``entity_type`` are fixed at creation; only the name and
    options may change afterwards.
    """

    __tablename__ = "custom_properties"

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[EntityType] = mapped_column(enum_type(EntityType), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(
        enum_type(PropertyType), nullable=False
    )

    # Choice list for select / multi_select, null otherwise
    options: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    # Relationships
    organization: Mapped["Organization"] = relationship("Organization")

    def __repr__(self) -> str:
        try:
            return f"<CustomProperty {self.name} ({self.property_type})>"
        except Exception:
            return f"<CustomProperty id={self.id}>"


# Property names are unique per (organization, entity type), ignoring case
Index(
    "uq_custom_property_name",
    CustomProperty.organization_id,
    CustomProperty.entity_type,
    func.lower(CustomProperty.name),
    unique=True,
)


class CustomPropertyValue(BaseModel):
    """Value of a custom property for one task or project.

    ``entity_type`` is the discriminant telling whether ``entity_id`` refers to a
    task or a project row, so ``entity_id`` carries no foreign key.
    """

    __tablename__ = "custom_property_values"
    __table_args__ = (
        UniqueConstraint(
            "entity_id", "custom_property_id", name="uq_custom_property_value_entity"
        ),
        Index("ix_custom_property_values_entity", "entity_type", "entity_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    entity_type: Mapped[EntityType] = mapped_column(enum_type(EntityType), nullable=False)
    custom_property_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("custom_properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[Any] = mapped_column(JSONType, nullable=False)

    # Relationships
    custom_property: Mapped["CustomProperty"] = relationship("CustomProperty")

    def __repr__(self) -> str:
        return (
            f"<CustomPropertyValue {self.entity_type}:{self.entity_id} "
            f"property={self.custom_property_id}>"
        )
