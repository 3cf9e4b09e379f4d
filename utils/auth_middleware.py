"""
Authentication Middleware for CozyClip Platform
Handles Firebase token validation and request authentication
"""

from functools import wraps
from flask import request, jsonify
from firebase_admin import auth
import logging

logger = logging.getLogger(__name__)

def _bearer_token():
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None
    return auth_header.replace('Bearer ', '').strip() or None

def require_auth(f):
    """
    Decorator to require authentication for API endpoints
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({'error': 'Authorization header required'}), 401

        try:
            decoded_token = auth.verify_id_token(token)
        except auth.ExpiredIdTokenError:
            logger.warning("Expired token provided")
            return jsonify({'error': 'Token expired'}), 401
        except auth.RevokedIdTokenError:
            logger.warning("Revoked token provided")
            return jsonify({'error': 'Token revoked'}), 401
        except auth.InvalidIdTokenError:
            logger.warning("Invalid token provided")
            return jsonify({'error': 'Invalid token'}), 401
        except Exception as e:
            logger.error(f"Authentication error: {str(e)}")
            return jsonify({'error': 'Authentication failed'}), 401

        # Add user info to request context
        request.current_user = decoded_token
        return f(*args, **kwargs)

    return decorated_function

def require_admin(f):
    """
    Decorator to require admin privileges (stack under require_auth)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        decoded_token = getattr(request, 'current_user', None) or {}

        is_admin = decoded_token.get('admin', False)
        if not is_admin:
            custom_claims = decoded_token.get('custom_claims', {})
            is_admin = custom_claims.get('admin', False)

        if not is_admin:
            logger.warning(f"Non-admin user attempted admin action: {decoded_token.get('uid')}")
            return jsonify({'error': 'Admin privileges required'}), 403

        return f(*args, **kwargs)

    return decorated_function

def current_user_id():
    """
    uid of the authenticated caller, or None outside require_auth
    """
    decoded_token = getattr(request, 'current_user', None) or {}
    return decoded_token.get('uid')
