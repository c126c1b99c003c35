"""User model."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskhub.db.base import BaseModel

if TYPE_CHECKING:
    from taskhub.models.organization import OrganizationMember


class User(BaseModel):
    """Registered user. Identity (email, username) is immutable after registration."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)

    # Opaque credential material, never serialized
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    organization_memberships: Mapped[list["OrganizationMember"]] = relationship(
        "OrganizationMember", back_populates="user"
    )

    def __repr__(self) -> str:
        try:
            return f"<User {self.username}>"
        except Exception:
            return f"<User id={self.id}>"
