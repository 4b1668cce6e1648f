"""
RetroShelf - Custom Exceptions and Exception Handlers
"""
import structlog
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = structlog.get_logger('exceptions')


class RetroShelfException(Exception):
    """Base exception for RetroShelf"""
    status_code = 400

    def __init__(self, message: str, code: str = "RETROSHELF_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'message': self.message
        }


class NotFoundException(RetroShelfException):
    """A game, platform or input file does not exist"""
    status_code = 404

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        if identifier is not None:
            message = f"{resource} '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, code="NOT_FOUND")
        logger.warning(f"Not found: {message}")


class ParseException(RetroShelfException):
    """Malformed metadata XML. `offset` is the absolute byte offset of the error."""
    status_code = 422

    def __init__(self, message: str, offset: int = None, line: int = None, column: int = None,
                 records_parsed: int = 0):
        self.offset = offset
        self.line = line
        self.column = column
        self.records_parsed = records_parsed
        super().__init__(message, code="PARSE_ERROR")
        logger.error(f"Parse error: {message}", offset=offset, line=line, column=column,
                     records_parsed=records_parsed)

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'offset': self.offset,
            'line': self.line,
            'column': self.column,
            'records_parsed': self.records_parsed,
        })
        return data


class StoreException(RetroShelfException):
    """Database-related exceptions"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="STORE_ERROR")
        logger.error(f"Store error: {message}")


class MediaIOException(RetroShelfException):
    """Filesystem errors on ROM or media files"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="IO_ERROR")
        logger.error(f"IO error: {message}")


class ExternalServiceException(RetroShelfException):
    """RetroAchievements or another remote API failed"""
    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, code="EXTERNAL_ERROR")
        logger.error(f"External service error: {message}")


class CacheUnavailable(RetroShelfException):
    """Redis unreachable. Handled inside redis_cache and never returned to callers."""
    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, code="CACHE_UNAVAILABLE")


class ValidationException(RetroShelfException):
    """Validation-related exceptions"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")
        logger.warning(f"Validation error: {message}")


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Handle HTTP exceptions"""
        return jsonify({
            'error': True,
            'code': e.name.upper().replace(' ', '_'),
            'message': e.description
        }), e.code

    @app.errorhandler(RetroShelfException)
    def handle_retroshelf_exception(e):
        """Handle RetroShelf custom exceptions"""
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(NotFoundException)
    def handle_not_found_exception(e):
        return jsonify(e.to_dict()), 404

    @app.errorhandler(ParseException)
    def handle_parse_exception(e):
        return jsonify(e.to_dict()), 422

    @app.errorhandler(StoreException)
    def handle_store_exception(e):
        """Handle database exceptions"""
        return jsonify(e.to_dict()), 500

    @app.errorhandler(MediaIOException)
    def handle_media_io_exception(e):
        return jsonify(e.to_dict()), 500

    @app.errorhandler(ExternalServiceException)
    def handle_external_service_exception(e):
        return jsonify(e.to_dict()), 502

    @app.errorhandler(ValidationException)
    def handle_validation_exception(e):
        """Handle validation exceptions"""
        return jsonify(e.to_dict()), 400

    @app.errorhandler(Exception)
    def handle_generic_exception(e):
        """Handle all other exceptions"""
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({
            'error': True,
            'code': 'INTERNAL_ERROR',
            'message': 'An unexpected error occurred'
        }), 500
