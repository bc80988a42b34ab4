import math
import uuid
from fastapi import Request
from fastapi.responses import JSONResponse


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", f"req_{uuid.uuid4().hex}")


def _envelope(request: Request, data, message: str | None) -> dict:
    content = {"success": True, "data": data, "request_id": _request_id(request)}
    if message:
        content["message"] = message
    return content


def ok(request: Request, data=None, message: str | None = None):
    return JSONResponse(status_code=200, content=_envelope(request, data, message))


def created(request: Request, data=None, message: str | None = None):
    return JSONResponse(status_code=201, content=_envelope(request, data, message))


def err(request: Request, code: str, message: str, status_code: int = 400, details=None):
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            "error": {"code": code, "message": message, "details": details or {}},
            "request_id": _request_id(request),
        },
    )


def page_meta(page: int, limit: int, total: int) -> dict:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalCount": total,
        "limit": limit,
        "hasNextPage": page * limit < total,
        "hasPrevPage": page > 1,
    }