"""Runtime-editable platform settings."""

from .enums import ConfigCategory
from .models import SystemConfig

__all__ = ["ConfigCategory", "SystemConfig"]
