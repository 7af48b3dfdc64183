from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

# Reason code -> HTTP status used by the API layer.
REASON_HTTP_STATUS: Final[dict[str, int]] = {
    "routing_service_unavailable": 502,
    "routing_not_configured": 503,
    "route_not_found": 404,
    "no_active_resolution": 409,
}

FROZEN_REASON_CODES: frozenset[str] = frozenset(REASON_HTTP_STATUS)


def normalize_reason_code(reason_code: str, *, default: str = "routing_service_unavailable") -> str:
    code = str(reason_code or "").strip()
    return code if code in FROZEN_REASON_CODES else default


@dataclass
class RouteResolutionError(ValueError):
    """Resolver-level failure the caller is expected to surface."""

    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.reason_code = normalize_reason_code(self.reason_code)

    def __str__(self) -> str:
        return self.message

    @property
    def http_status(self) -> int:
        return REASON_HTTP_STATUS[self.reason_code]

    def as_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"reason_code": self.reason_code, "message": self.message}
        if self.details:
            detail["details"] = dict(self.details)
        return detail
