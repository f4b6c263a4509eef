from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from currency_cache.core.logging import get_request_id


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _envelope(
    *,
    success: bool,
    message: str,
    data: Any = None,
    error: str | None = None,
    meta: Any = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        payload["data"] = jsonable_encoder(data, by_alias=True)
    if error is not None:
        payload["error"] = error
    if meta is not None:
        payload["meta"] = jsonable_encoder(meta)
    payload["timestamp"] = utc_now_iso()
    request_id = get_request_id()
    if request_id:
        payload["requestId"] = request_id
    return payload


def success_response(message: str, data: Any = None, meta: Any = None) -> dict[str, Any]:
    return _envelope(success=True, message=message, data=data, meta=meta)


def error_response(
    message: str, error: str | None = None, data: Any = None, meta: Any = None
) -> dict[str, Any]:
    return _envelope(success=False, message=message, data=data, error=error, meta=meta)


def error_json(
    status_code: int, message: str, error: str | None = None
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(message, error))


class ApiError(Exception):
    """Raised by routes to return an error envelope with a specific status."""

    def __init__(self, status_code: int, message: str, error: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error
