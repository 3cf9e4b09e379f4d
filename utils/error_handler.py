"""
Error Handler for CozyClip Platform
Centralized error taxonomy and JSON error rendering
"""

from flask import jsonify
import logging
import traceback

logger = logging.getLogger(__name__)

class CozyClipError(Exception):
    """Base exception class for CozyClip platform"""
    def __init__(self, message, status_code=500, error_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code

class ValidationError(CozyClipError):
    """Raised when input validation fails"""
    def __init__(self, message, field=None):
        super().__init__(message, status_code=400, error_code='VALIDATION_ERROR')
        self.field = field

class AuthenticationError(CozyClipError):
    """Raised when the caller cannot be identified"""
    def __init__(self, message):
        super().__init__(message, status_code=401, error_code='AUTH_ERROR')

class AuthorizationError(CozyClipError):
    """Raised when user lacks required permissions"""
    def __init__(self, message):
        super().__init__(message, status_code=403, error_code='PERMISSION_ERROR')

class NotFoundError(CozyClipError):
    """Raised when requested resource is not found"""
    def __init__(self, message):
        super().__init__(message, status_code=404, error_code='NOT_FOUND')

class ConflictError(CozyClipError):
    """Raised when a business rule rejects the request"""
    def __init__(self, message, error_code='CONFLICT'):
        super().__init__(message, status_code=400, error_code=error_code)

class AlreadyOwnedError(ConflictError):
    def __init__(self, message="Item already owned"):
        super().__init__(message, error_code='ALREADY_OWNED')

class InsufficientFundsError(ConflictError):
    def __init__(self, message="Insufficient coins"):
        super().__init__(message, error_code='INSUFFICIENT_FUNDS')

class StoreUnavailableError(CozyClipError):
    """Raised when the ledger store cannot be reached or fails"""
    def __init__(self, message, error_code='STORE_UNAVAILABLE'):
        super().__init__(message, status_code=503, error_code=error_code)

class TransactionConflictError(StoreUnavailableError):
    """Raised when a transaction keeps conflicting after all retries"""
    def __init__(self, message="Transaction could not be committed, please retry"):
        super().__init__(message, error_code='TRANSACTION_CONFLICT')

def handle_error(error):
    """
    Central error handler that converts exceptions to JSON responses
    """
    try:
        if isinstance(error, CozyClipError):
            if error.status_code >= 500:
                logger.error(f"CozyClip error: {error.message}")
            else:
                logger.warning(f"CozyClip error: {error.message}")
            return jsonify({
                'error': error.message,
                'error_code': error.error_code,
                'status': 'error'
            }), error.status_code

        # Firebase errors that escaped the store layer
        elif 'firebase_admin' in str(type(error)) or 'google.api_core' in str(type(error)):
            logger.error(f"Firebase error: {str(error)}")
            return jsonify({
                'error': 'Service temporarily unavailable',
                'error_code': 'SERVICE_ERROR',
                'status': 'error'
            }), 503

        else:
            logger.error(f"Unhandled error: {str(error)}")
            logger.error(traceback.format_exc())

            return jsonify({
                'error': 'An unexpected error occurred',
                'error_code': 'INTERNAL_ERROR',
                'status': 'error'
            }), 500

    except Exception as e:
        logger.critical(f"Error in error handler: {str(e)}")
        return jsonify({
            'error': 'Critical system error',
            'error_code': 'CRITICAL_ERROR',
            'status': 'error'
        }), 500

def require_fields(data, required_fields):
    """
    Validate that a request body carries every required field
    """
    if not data:
        raise ValidationError("Request body cannot be empty")

    missing_fields = [field for field in required_fields if data.get(field) in (None, '')]
    if missing_fields:
        raise ValidationError(f"Missing required fields: {', '.join(missing_fields)}")

    return True

def parse_pagination(args, default_limit=20, max_limit=100):
    """
    Read page/limit query parameters
    """
    try:
        page = int(args.get('page', 1))
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")

    if page < 1:
        raise ValidationError("page must be >= 1", field='page')
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}", field='limit')

    return page, limit

