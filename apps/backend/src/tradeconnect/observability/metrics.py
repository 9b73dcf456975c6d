"""Prometheus metrics collection and configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

from tradeconnect.core.config import PrometheusSettings

if TYPE_CHECKING:
    from fastapi import FastAPI
    from prometheus_client.registry import CollectorRegistry

LOGIN_ATTEMPTS_TOTAL = Counter(
    "auth_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)

SESSIONS_CREATED_TOTAL = Counter(
    "auth_sessions_created_total",
    "Sessions created by login method",
    ["login_method"],
)

SESSIONS_TERMINATED_TOTAL = Counter(
    "auth_sessions_terminated_total",
    "Sessions terminated by reason",
    ["reason"],
)

TWO_FACTOR_VERIFICATIONS_TOTAL = Counter(
    "auth_two_factor_verifications_total",
    "Second factor verifications by method and outcome",
    ["method", "outcome"],
)

ACCOUNT_LOCKOUTS_TOTAL = Counter(
    "auth_account_lockouts_total",
    "Accounts or second factors locked after repeated failures",
    ["kind"],
)

AUDIT_EVENTS_TOTAL = Counter(
    "audit_events_total",
    "Audit records written by severity and status",
    ["severity", "status"],
)

RATE_LIMIT_REJECTIONS_TOTAL = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by a rate limiter",
    ["scope"],
)


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry: CollectorRegistry | None = registry
        self._instrumentator: Instrumentator | None = None

    def create_instrumentator(self, settings: PrometheusSettings) -> Instrumentator:
        """Create and configure FastAPI instrumentator."""
        kwargs = {} if self.registry is None else {"registry": self.registry}
        return Instrumentator(
            should_group_status_codes=settings.should_group_status_codes,
            should_ignore_untemplated=settings.should_ignore_untemplated,
            should_respect_env_var=settings.should_respect_env_var,
            excluded_handlers=settings.excluded_handlers,
            env_var_name="ENABLE_METRICS",
            **kwargs,
        )

    def instrument_app(self, app: FastAPI, settings: PrometheusSettings) -> None:
        """Instrument FastAPI application with metrics."""
        if not settings.enabled:
            return

        self._instrumentator = self.create_instrumentator(settings)
        self._instrumentator.instrument(app)
        self._instrumentator.expose(
            app,
            should_gzip=True,
            endpoint=settings.metrics_path,
            include_in_schema=False,
        )

    def record_login(self, outcome: str) -> None:
        LOGIN_ATTEMPTS_TOTAL.labels(outcome=outcome).inc()

    def record_session_created(self, login_method: str) -> None:
        SESSIONS_CREATED_TOTAL.labels(login_method=login_method).inc()

    def record_sessions_terminated(self, reason: str, count: int = 1) -> None:
        if count > 0:
            SESSIONS_TERMINATED_TOTAL.labels(reason=reason).inc(count)

    def record_two_factor_verification(self, method: str, outcome: str) -> None:
        TWO_FACTOR_VERIFICATIONS_TOTAL.labels(method=method, outcome=outcome).inc()

    def record_lockout(self, kind: str) -> None:
        ACCOUNT_LOCKOUTS_TOTAL.labels(kind=kind).inc()

    def record_audit_event(self, severity: str, status: str) -> None:
        AUDIT_EVENTS_TOTAL.labels(severity=severity, status=status).inc()

    def record_rate_limited(self, scope: str) -> None:
        RATE_LIMIT_REJECTIONS_TOTAL.labels(scope=scope).inc()


# Global metrics service instance
metrics_service: MetricsService = MetricsService()
