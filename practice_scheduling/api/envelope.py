"""
Response envelope shared by every endpoint.

    {"success": true,  "data": {...},  "message": "..."}
    {"success": false, "error": "CODE", "message": "...", "details": {...}}
"""

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success(data: Any = None, message: str = "") -> dict[str, Any]:
    return {"success": True, "data": jsonable_encoder(data), "message": message}


def failure(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": code, "message": message}
    if details:
        body["details"] = jsonable_encoder(details)
    return body


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=failure(code, message, details), headers=headers)
