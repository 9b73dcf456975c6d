"""Second factor enrolment and verification."""

from .enums import TwoFactorMethod
from .models import TwoFactorAuth

__all__ = ["TwoFactorAuth", "TwoFactorMethod"]
