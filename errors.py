from typing import Any, Dict, List

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class AuthError(HTTPException):
    def __init__(self, detail: str = "Not authorized to access this route"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UploadError(HTTPException):
    def __init__(self, detail: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


# Messages for unique keys, by collection then field
DUPLICATE_MESSAGES = {
    ("user", "email"): "Email already registered",
    ("user", "drugLicenseNo"): "Drug license number already registered",
    ("company", "name"): "Company name already registered",
    ("company", "licenseNumber"): "License number already registered",
    ("stockist", "licenseNumber"): "License number already registered",
}


def duplicate_message(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_pattern = details.get("keyPattern") or details.get("keyValue") or {}
    message = details.get("errmsg", "") or str(exc)
    for (collection, field), text in DUPLICATE_MESSAGES.items():
        if field in key_pattern and f".{collection} " in message:
            return text
    for (_, field), text in DUPLICATE_MESSAGES.items():
        if field in key_pattern or f"{field}_1" in message:
            return text
    return "Duplicate field value entered"


def _param(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "form")]
    return ".".join(parts) or "body"


def _msg(error: Dict[str, Any]) -> str:
    msg = error.get("msg", "Invalid value")
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return msg


def validation_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    return [{"param": _param(e.get("loc", ())), "msg": _msg(e)} for e in exc.errors()]


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": validation_errors(exc)},
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": duplicate_message(exc)},
    )
