from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Callable, Mapping
from functools import wraps
from typing import Any, ClassVar, cast

from sqlalchemy import MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tradeconnect.db.types import GUID, JSONType, UTCDateTime

__all__ = [
    "Base",
    "CreatedAtMixin",
    "MetadataAliasMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "metadata",
]

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    metadata = metadata


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        GUID(), primary_key=True, default=uuid.uuid4, nullable=False
    )


class CreatedAtMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: dt.datetime.now(dt.UTC),
        server_default=func.now(),
        nullable=False,
        index=True,
    )


class TimestampMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: dt.datetime.now(dt.UTC),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: dt.datetime.now(dt.UTC),
        server_default=func.now(),
        onupdate=lambda: dt.datetime.now(dt.UTC),
        nullable=False,
    )


class MetadataAliasMixin:
    """Expose the ``meta_data`` JSON column under the ``metadata`` keyword.

    ``metadata`` is reserved on declarative classes, so models store the
    payload in ``meta_data`` while constructors still accept ``metadata=...``.
    """

    meta_data: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType(), default=dict, nullable=False
    )

    _metadata_marker: ClassVar[object] = object()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        original_init = cast(Callable[..., None], cls.__init__)
        if getattr(original_init, "__metadata_alias_wrapped__", False):
            return

        @wraps(original_init)
        def wrapped_init(self: Any, *args: Any, **init_kwargs: Any) -> None:
            value = init_kwargs.pop("metadata", cls._metadata_marker)
            if value is not cls._metadata_marker and "meta_data" not in init_kwargs:
                init_kwargs["meta_data"] = _coerce_metadata(value)
            original_init(self, *args, **init_kwargs)

        wrapped_init.__metadata_alias_wrapped__ = True  # type: ignore[attr-defined]
        cls.__init__ = wrapped_init  # type: ignore[method-assign]

    @property
    def metadata_dict(self) -> dict[str, Any]:
        return self.meta_data or {}


def _coerce_metadata(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError("metadata assignments must be mapping types")
