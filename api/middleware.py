import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Dict

from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# /tenants/{tenantId}/deals/{dealId}/... anywhere under the API prefix
DEAL_PATH_PATTERN = re.compile(r"/tenants/(?P<tenant_id>[^/]+)/deals/(?P<deal_id>[^/]+)")


def deal_scope(path: str) -> Dict[str, str]:
    """tenant_id/deal_id log fields for deal-scoped paths, empty otherwise"""
    match = DEAL_PATH_PATTERN.search(path)
    return match.groupdict() if match else {}


def error_envelope(request: Request, code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=code,
        content={
            "error": {
                "code": code,
                "message": message,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "path": str(request.url)
            }
        }
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an ID and logs it with its deal scope"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        log_fields = {
            "request_id": request_id,
            "method": request.method,
            "url": request.url.path,
            **deal_scope(request.url.path)
        }
        logger.info(f"{request.method} {request.url.path}", extra=log_fields)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} failed: {e}",
                extra={**log_fields, "process_time": time.perf_counter() - start_time}
            )
            raise

        process_time = time.perf_counter() - start_time
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)",
            extra={**log_fields, "status_code": response.status_code, "process_time": process_time}
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turns errors escaping the route stack into the standard error envelope"""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)

        except HTTPException:
            raise

        except Exception as e:
            logger.error(
                f"Unhandled error in request {get_request_id(request)}: {e}",
                exc_info=True,
                extra={"request_id": get_request_id(request), **deal_scope(request.url.path)}
            )
            return error_envelope(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def get_request_id(request: Request) -> str:
    """Get request ID from request state"""
    return getattr(request.state, 'request_id', 'unknown')
