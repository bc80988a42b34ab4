from dataclasses import dataclass
from typing import Any


@dataclass
class AppError(Exception):
    code: str
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None


def validation_error(message: str = "Validation failed", details: dict[str, Any] | None = None) -> AppError:
    return AppError(code="VALIDATION_ERROR", message=message or "Validation failed", status_code=400, details=details or {})


def auth_required() -> AppError:
    return AppError(code="AUTH_REQUIRED", message="Authentication required.", status_code=401)


def auth_invalid_token(message: str = "Invalid or expired token") -> AppError:
    return AppError(code="AUTH_INVALID_TOKEN", message=message, status_code=401)


def permission_denied(message: str = "Forbidden: Insufficient permissions.") -> AppError:
    return AppError(code="PERMISSION_DENIED", message=message, status_code=403)


def not_found(message: str = "Resource not found") -> AppError:
    return AppError(code="RESOURCE_NOT_FOUND", message=message, status_code=404)


def duplicate_field(message: str = "Duplicate field value entered") -> AppError:
    return AppError(code="DUPLICATE_FIELD", message=message, status_code=400)


def internal_error(message: str = "Internal server error") -> AppError:
    return AppError(code="INTERNAL_ERROR", message=message, status_code=500)
