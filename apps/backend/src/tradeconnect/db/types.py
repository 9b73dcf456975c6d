from __future__ import annotations

import datetime as dt
import json
import uuid
from enum import StrEnum
from typing import Any

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.type_api import TypeEngine
from sqlalchemy.types import CHAR, JSON, DateTime, TypeDecorator


class GUID(TypeDecorator[uuid.UUID]):
    """UUID column: native on PostgreSQL, CHAR(36) elsewhere."""

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value: uuid.UUID | None, dialect: Dialect) -> Any:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        raise TypeError("GUID values must be UUID instances")

    def process_result_value(self, value: Any, dialect: Dialect) -> uuid.UUID | None:
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


JSONValue = dict[str, Any] | list[Any]


class JSONType(TypeDecorator[JSONValue]):
    """JSONB on PostgreSQL, JSON elsewhere.

    Values are normalised through ``json`` on the way in so audit snapshots may
    carry datetimes, UUIDs and enums without the caller converting them.
    """

    impl = JSONB
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value: JSONValue | None, dialect: Dialect) -> Any:
        if value is None:
            return value
        if not isinstance(value, (dict, list)):
            raise TypeError("JSONType values must be dicts or lists")
        return json.loads(json.dumps(value, default=str))

    def process_result_value(self, value: Any, dialect: Dialect) -> JSONValue | None:
        if value is None or isinstance(value, (dict, list)):
            return value
        decoded = json.loads(value)
        if isinstance(decoded, (dict, list)):
            return decoded
        raise TypeError("JSON deserialisation returned unexpected type")


class UTCDateTime(TypeDecorator[dt.datetime]):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite drops offsets, so naive values read back are tagged as UTC.
    Naive values are rejected on write.
    """

    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        return dialect.type_descriptor(DateTime(timezone=True))

    def process_bind_param(self, value: dt.datetime | None, dialect: Dialect) -> Any:
        if value is None:
            return value
        if not isinstance(value, dt.datetime):
            raise TypeError("UTCDateTime values must be datetime instances")
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetime")
        return value.astimezone(dt.UTC)

    def process_result_value(self, value: Any, dialect: Dialect) -> dt.datetime | None:
        if value is None:
            return value
        if isinstance(value, str):
            value = dt.datetime.fromisoformat(value)
        if not isinstance(value, dt.datetime):
            raise TypeError(f"Expected datetime, got {type(value)}")
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


def enum_values(enum_cls: type[StrEnum]) -> list[str]:
    """``values_callable`` for non-native SQL enums: persist values, not names."""
    return [member.value for member in enum_cls]
