from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tradeconnect.system_config.enums import ConfigCategory


class ConfigCreate(BaseModel):
    key: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_.]+$")
    value: Any
    category: ConfigCategory = ConfigCategory.GENERAL
    description: str | None = Field(default=None, max_length=500)
    is_public: bool = False
    is_active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConfigUpdate(BaseModel):
    value: Any = None
    description: str | None = Field(default=None, max_length=500)
    is_public: bool | None = None
    is_active: bool | None = None
    metadata: dict[str, Any] | None = None


class BulkConfigRequest(BaseModel):
    configs: list[ConfigCreate] = Field(min_length=1, max_length=100)


class ConfigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: uuid.UUID
    key: str
    value: Any
    category: ConfigCategory
    description: str | None
    is_public: bool
    is_active: bool
    metadata: dict[str, Any] = Field(validation_alias="metadata_dict")
    created_by: uuid.UUID | None
    updated_by: uuid.UUID | None
    created_at: dt.datetime
    updated_at: dt.datetime


class BulkConfigResponse(BaseModel):
    created: list[str]
    updated: list[str]
    errors: list[str]


class ConfigStatsResponse(BaseModel):
    total_configs: int
    active_configs: int
    public_configs: int
    categories_count: dict[str, int]
    last_updated: dt.datetime | None
    last_updated_by: uuid.UUID | None
