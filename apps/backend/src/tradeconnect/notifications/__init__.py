"""Outbound user notifications for authentication flows."""

from .service import AuthNotifier, LoggingAuthNotifier

__all__ = ["AuthNotifier", "LoggingAuthNotifier"]
