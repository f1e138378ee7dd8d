"""Request logging middleware.

Every request gets an id: an upstream ``X-Request-ID`` is kept when it is a
plain token, otherwise a fresh ``req_...`` id is generated. The id is stored on
``request.state`` for the response envelope and echoed in the response header.

One line per request, WARNING for 5xx:
    POST /api/v1/billing/checkout 200 23ms req_a1b2c3d4e5f6
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.hb_common.response import new_request_id

logger = logging.getLogger("hb.request")

REQUEST_ID_HEADER = "X-Request-ID"
_UPSTREAM_ID = re.compile(r"^[A-Za-z0-9_.-]{8,64}$")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        upstream = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = upstream if _UPSTREAM_ID.match(upstream) else new_request_id()
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.log(
            logging.WARNING if response.status_code >= 500 else logging.INFO,
            "%s %s %d %.0fms %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response
