"""
Translation of service errors into JSON failure responses
"""

from fastapi.responses import JSONResponse

from src.services.errors import ErrorCategory, ServiceError

STATUS_CODES = {
    ErrorCategory.UNAUTHENTICATED: 401,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.PERMISSION_DENIED: 403,
    ErrorCategory.RATE_LIMITED: 429,
    ErrorCategory.VALIDATION_ERROR: 400,
    ErrorCategory.CONFLICTING_STATE: 409,
    ErrorCategory.CONFLICTING_CONFIGURATION: 409,
    ErrorCategory.UNKNOWN: 500,
}


def failure(message: str, category: ErrorCategory, status_code: int = None) -> JSONResponse:
    return JSONResponse(
        content={"success": False, "error": message, "category": category.value},
        status_code=status_code or STATUS_CODES[category],
    )


def error_response(error: ServiceError) -> JSONResponse:
    """Failure body for a categorized service error"""
    return failure(error.message, error.category)


def unexpected_error_response(message: str) -> JSONResponse:
    return failure(message, ErrorCategory.UNKNOWN)
