from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    CSRF_INVALID = "CSRF_INVALID"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    QUIZ_TIME_EXCEEDED = "QUIZ_TIME_EXCEEDED"
    QUIZ_TOKEN_MISMATCH = "QUIZ_TOKEN_MISMATCH"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_DEFAULT_CODES = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}


def default_code(status_code: int) -> str:
    return _DEFAULT_CODES.get(int(status_code), ErrorCode.INTERNAL_ERROR if int(status_code) >= 500 else "HTTP_ERROR")


def api_error(
    status_code: int,
    code: str,
    message: str,
    *,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    detail: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def not_found(message: str = "Resource not found") -> HTTPException:
    return api_error(404, ErrorCode.NOT_FOUND, message)


def forbidden(message: str = "Access denied") -> HTTPException:
    return api_error(403, ErrorCode.FORBIDDEN, message)


def bad_request(message: str, *, code: str = ErrorCode.BAD_REQUEST) -> HTTPException:
    return api_error(400, code, message)


def conflict(message: str) -> HTTPException:
    return api_error(409, ErrorCode.ALREADY_EXISTS, message)


def unauthorized(message: str = "Authentication required", *, code: str = ErrorCode.UNAUTHORIZED) -> HTTPException:
    return api_error(401, code, message)


def error_body(code: str, message: str, *, request_id: str | None, details: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error, "request_id": request_id}
