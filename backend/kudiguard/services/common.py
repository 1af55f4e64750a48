from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from kudiguard import config

UTC = timezone.utc
REDACTED = "[REDACTED]"
SENSITIVE_KEYS = {
    "password",
    "email",
    "authorization",
    "authheader",
    "access_token",
    "refresh_token",
    "jwt",
    "api_key",
    "apikey",
}


def new_request_id(request_id: str | None = None) -> str:
    return request_id or f"req_{uuid.uuid4().hex[:12]}"


def now_utc() -> datetime:
    return datetime.now(tz=UTC)


def iso_utc(value: datetime | None = None) -> str:
    dt = (value or now_utc()).astimezone(UTC).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def response_meta(request_id: str | None = None) -> Dict[str, str]:
    return {
        "request_id": new_request_id(request_id),
        "timestamp": iso_utc(),
        "version": config.API_VERSION,
    }


def success_body(data: Any, request_id: str | None = None) -> Dict[str, Any]:
    return {"success": True, "data": data, "error": None, "meta": response_meta(request_id)}


def redact_sensitive(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else redact_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_sensitive(item) for item in data]
    return data
