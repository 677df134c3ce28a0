from typing import Any, Optional, Dict
from fastapi.responses import JSONResponse


def success_response(
    message: str = "Success",
    data: Any = None,
    status_code: int = 200
) -> JSONResponse:
    """
    Standard success response

    Args:
        message: Success message
        data: Response data (optional)
        status_code: HTTP status code (default: 200)

    Returns:
        JSONResponse with success format
    """
    response = {
        "success": True,
        "message": message
    }

    if data is not None:
        response["data"] = data

    return JSONResponse(content=response, status_code=status_code)


def error_response(
    message: str = "Error",
    status_code: int = 400,
    code: str = "VALIDATION_ERROR",
    details: Any = None
) -> JSONResponse:
    """
    Standard error response

    Args:
        message: Error message
        status_code: HTTP status code (default: 400)
        code: Machine-readable error code
        details: Extra error context (optional)

    Returns:
        JSONResponse with error format
    """
    error = {
        "code": code,
        "message": message
    }

    if details is not None:
        error["details"] = details

    return JSONResponse(
        content={
            "success": False,
            "message": message,
            "error": error
        },
        status_code=status_code
    )


def validation_error_response(
    message: str = "Validation error",
    errors: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """
    Standard validation error response for malformed requests (422)
    """
    return error_response(
        message=message,
        status_code=422,
        code="VALIDATION_ERROR",
        details=errors
    )


def unauthorized_response(
    message: str = "Authentication required"
) -> JSONResponse:
    """
    Standard unauthorized response (401)
    """
    return error_response(
        message=message,
        status_code=401,
        code="AUTHORIZATION_ERROR"
    )
