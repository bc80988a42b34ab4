import re
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_INCOMING_ID = re.compile(r"^[A-Za-z0-9_.-]{8,64}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, reusing a well-formed caller-supplied X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get("x-request-id", "")
        request.state.request_id = incoming if _INCOMING_ID.match(incoming) else f"req_{uuid.uuid4().hex}"
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response
