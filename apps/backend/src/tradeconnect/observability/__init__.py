"""Observability stack for monitoring and error tracking."""

from .metrics import MetricsService, metrics_service
from .sentry import add_breadcrumb, add_sentry_context, configure_sentry

__all__ = [
    "MetricsService",
    "add_breadcrumb",
    "add_sentry_context",
    "configure_sentry",
    "metrics_service",
]
