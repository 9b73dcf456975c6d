from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

from tradeconnect.core.constants import SYSTEM_ACTOR, SYSTEM_IP_ADDRESS


@dataclass(frozen=True)
class ClientInfo:
    """Where a request came from, as recorded on sessions and audit logs."""

    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> ClientInfo:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            ip_address: str | None = forwarded_for.split(",")[0].strip()
        elif request.client is not None:
            ip_address = request.client.host
        else:
            ip_address = None
        return cls(ip_address=ip_address, user_agent=request.headers.get("user-agent"))

    @classmethod
    def system(cls) -> ClientInfo:
        return cls(ip_address=SYSTEM_IP_ADDRESS, user_agent=SYSTEM_ACTOR)
