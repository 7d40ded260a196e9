"""
Error Handling Decorators
Maps the failures of JSON API views onto consistent error payloads
"""

import logging
import traceback
from functools import wraps
from django.http import JsonResponse
from django.core.exceptions import ValidationError, PermissionDenied
from django.db import DatabaseError, InterfaceError, OperationalError

from discussions.exceptions import ThreadError

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = 'Server error occurred - Our team has been notified. Please try again in a few minutes.'


def error_response(message, error_type, status, **extra):
    payload = {
        'success': False,
        'error': message,
        'message': message,
        'type': error_type,
    }
    payload.update(extra)
    return JsonResponse(payload, status=status)


def api_error_handler(view_func):
    """
    Error handling decorator specifically for API views
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ThreadError as e:
            if e.status_code >= 500:
                logger.error(f"API error in {view_func.__name__}: {e.message}")
            else:
                logger.info(f"API {e.error_type} in {view_func.__name__}: {e.message}")
            return error_response(e.message, e.error_type, e.status_code)

        except ValidationError as e:
            logger.warning(f"API validation error in {view_func.__name__}: {e}")
            message = '; '.join(e.messages) if hasattr(e, 'messages') else str(e)
            return error_response(message, 'validation_error', 400)

        except PermissionDenied as e:
            logger.warning(f"API permission denied in {view_func.__name__}: {e}")
            return error_response('You do not have permission to perform this action', 'permission_error', 403)

        except (OperationalError, InterfaceError) as e:
            # connection level failures; the same request may be sent again
            logger.error(f"API transient database error in {view_func.__name__}: {e}")
            return error_response(
                'The service is temporarily unavailable. Please try again.',
                'transient_error',
                503,
                retryable=True,
            )

        except DatabaseError as e:
            logger.error(f"API database error in {view_func.__name__}: {e}")
            return error_response('A database error occurred. Please try again later.', 'database_error', 500)

        except Exception as e:
            logger.error(f"API unexpected error in {view_func.__name__}: {e}\n{traceback.format_exc()}")
            return error_response(SERVER_ERROR_MESSAGE, 'server_error', 500)

    return wrapper
