"""
API Response Utilities - Standardized error handling and responses
"""

from flask import jsonify, request
from functools import wraps
import logging
import traceback

from exceptions import RetroShelfException, ValidationException

logger = logging.getLogger(__name__)


# API Error Codes
class ErrorCode:
    SUCCESS = "SUCCESS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    STORE_ERROR = "STORE_ERROR"
    IO_ERROR = "IO_ERROR"
    EXTERNAL_ERROR = "EXTERNAL_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    FORBIDDEN = "FORBIDDEN"


def success_response(data=None, message=None, status_code=200):
    """
    Standard success response format for API endpoints
    """
    response = {"code": ErrorCode.SUCCESS, "success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return jsonify(response), status_code


def error_response(
    error_code=ErrorCode.INTERNAL_ERROR,
    message=None,
    details=None,
    status_code=400,
    log_error=True,
    include_traceback=False,
):
    """
    Standard error response format for API endpoints
    """
    response = {"code": error_code, "success": False}

    if message:
        response["message"] = message
    elif error_code == ErrorCode.NOT_FOUND:
        response["message"] = "Resource not found"
    elif error_code == ErrorCode.VALIDATION_ERROR:
        response["message"] = "Invalid request parameters"
    elif error_code == ErrorCode.INTERNAL_ERROR:
        response["message"] = "An unexpected error occurred"
    elif error_code == ErrorCode.FORBIDDEN:
        response["message"] = "Access forbidden"

    if details:
        response["details"] = details

    if include_traceback:
        response["traceback"] = traceback.format_exc()

    if log_error and error_code in [ErrorCode.INTERNAL_ERROR, ErrorCode.VALIDATION_ERROR, ErrorCode.STORE_ERROR]:
        error_msg = f"{error_code}: {message} | Details: {details}"
        if include_traceback:
            logger.error(error_msg, exc_info=True)
        else:
            logger.error(error_msg)

    return jsonify(response), status_code


def handle_api_errors(f):
    """
    Decorator to standardize error handling for API endpoints
    Automatically catches exceptions and returns consistent error responses
    """

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except RetroShelfException as e:
            details = {k: v for k, v in e.to_dict().items() if k not in ("error", "code", "message")}
            return error_response(e.code, message=e.message, details=details or None, status_code=e.status_code)
        except ValueError as e:
            return error_response(ErrorCode.VALIDATION_ERROR, message=str(e), status_code=400)
        except KeyError as e:
            return error_response(
                ErrorCode.VALIDATION_ERROR, message=f"Missing required parameter: {str(e)}", status_code=400
            )
        except FileNotFoundError as e:
            return error_response(ErrorCode.NOT_FOUND, message=str(e), status_code=404)
        except PermissionError as e:
            return error_response(ErrorCode.FORBIDDEN, message=str(e), status_code=403)
        except Exception as e:
            logger.error(f"Unhandled exception in {f.__name__}: {e}", exc_info=True)
            return error_response(
                ErrorCode.INTERNAL_ERROR,
                message="An unexpected error occurred",
                status_code=500,
                include_traceback=False,
            )

    return wrapper


def json_body():
    """JSON object sent with the request; an absent body reads as {}"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationException("Request body must be a JSON object")
    return data
