"""Profile model: one row per user, holding the Notion connection."""

import uuid

from sqlalchemy import LargeBinary, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    # Same id as the identity provider's user (JWT `sub`)
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    # Notion access token (libsodium crypto_secretbox); NULL means disconnected
    encrypted_notion_token: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    notion_workspace_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notion_workspace_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    schedules: Mapped[list["Schedule"]] = relationship(
        "Schedule", back_populates="profile", cascade="all, delete-orphan"
    )
    subscription: Mapped["Subscription"] = relationship(
        "Subscription", back_populates="profile", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def notion_connected(self) -> bool:
        return self.encrypted_notion_token is not None

    def __repr__(self) -> str:
        return f"<Profile {self.id} notion={'yes' if self.notion_connected else 'no'}>"
