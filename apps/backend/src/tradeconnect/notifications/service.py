from __future__ import annotations

from typing import Protocol

import structlog

from tradeconnect.auth.models import User
from tradeconnect.two_factor.enums import TwoFactorMethod


class AuthNotifier(Protocol):
    """Delivers verification links, reset links and one-time codes to users."""

    async def send_verification_email(self, user: User, token: str) -> None:
        """Send the e-mail verification link carrying ``token``."""

    async def send_password_reset(self, user: User, token: str) -> None:
        """Send the password reset link carrying ``token``."""

    async def send_two_factor_code(
        self, user: User, method: TwoFactorMethod, destination: str, code: str
    ) -> None:
        """Send a one-time second-factor code by SMS or e-mail."""


def _mask_destination(destination: str) -> str:
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:1]}***@{domain}"
    return f"***{destination[-4:]}"


class LoggingAuthNotifier:
    """Default notifier that logs deliveries in lieu of an e-mail/SMS integration."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    async def send_verification_email(self, user: User, token: str) -> None:
        self._logger.info(
            "verification_email_queued",
            user_id=str(user.id),
            recipient=_mask_destination(user.email),
        )

    async def send_password_reset(self, user: User, token: str) -> None:
        self._logger.info(
            "password_reset_email_queued",
            user_id=str(user.id),
            recipient=_mask_destination(user.email),
        )

    async def send_two_factor_code(
        self, user: User, method: TwoFactorMethod, destination: str, code: str
    ) -> None:
        self._logger.info(
            "two_factor_code_queued",
            user_id=str(user.id),
            method=method.value,
            recipient=_mask_destination(destination),
        )
