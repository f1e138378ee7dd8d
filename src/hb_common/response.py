"""Response envelope shared by every router and exception handler.

    {"code": 0, "message": "success", "data": {...},
     "timestamp": "2026-01-01T00:00:00+00:00", "request_id": "req_..."}

``code`` is 0 on success and the AppError code otherwise.
"""

import uuid
from typing import Any

from pydantic import BaseModel, Field
from starlette.requests import Request

from src.hb_common.datetime_utils import utc_now


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def _request_id(request: Request | None) -> str:
    if request is None:
        return new_request_id()
    return getattr(request.state, "request_id", None) or new_request_id()


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    request_id: str = Field(default_factory=new_request_id)


def success_response(data: Any = None, request: Request | None = None) -> ApiResponse:
    """Wrap data, echoing the request id set by RequestLogMiddleware when available."""
    return ApiResponse(data=data, request_id=_request_id(request))


def error_response(
    code: int,
    message: str,
    request: Request | None = None,
    data: Any = None,
) -> ApiResponse:
    return ApiResponse(code=code, message=message, data=data, request_id=_request_id(request))
