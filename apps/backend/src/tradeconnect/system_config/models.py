from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tradeconnect.db.base import (
    Base,
    MetadataAliasMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from tradeconnect.db.types import GUID, enum_values
from tradeconnect.system_config.enums import ConfigCategory


class SystemConfig(UUIDPrimaryKeyMixin, TimestampMixin, MetadataAliasMixin, Base):
    """Runtime-editable platform setting addressed by a dotted key."""

    __tablename__ = "system_configs"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    # Any JSON document, scalars included.
    value: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    category: Mapped[ConfigCategory] = mapped_column(
        Enum(
            ConfigCategory,
            name="system_config_category",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=ConfigCategory.GENERAL,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(Text)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("auth_users.id", ondelete="SET NULL")
    )
    updated_by: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), ForeignKey("auth_users.id", ondelete="SET NULL")
    )
