"""Service result helpers shared by the domain layers"""

import enum

from fastapi.responses import JSONResponse


class ErrorCode(str, enum.Enum):
    VALIDATION = "VALIDATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    BACKEND_FAILURE = "BACKEND_FAILURE"


HTTP_STATUS_BY_ERROR = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.ALREADY_RESOLVED: 400,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.BACKEND_FAILURE: 500,
}


def failure(message: str, error_code: ErrorCode, key: str = "message") -> dict:
    """Failed service result. Deletion-workflow results carry the text under "error"."""
    return {"success": False, key: message, "error_code": error_code}


def failure_response(result: dict) -> JSONResponse:
    """Map a failed service result to its HTTP response"""
    status_code = HTTP_STATUS_BY_ERROR.get(result.get("error_code"), 500)
    content = {k: v for k, v in result.items() if k != "error_code"}
    return JSONResponse(status_code=status_code, content=content)
