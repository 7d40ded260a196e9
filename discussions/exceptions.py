"""
Error taxonomy of the threaded discussion engine.

Each error carries the HTTP status and the ``type`` string the JSON layer
reports, so views never have to map exceptions by hand.
"""


class ThreadError(Exception):
    """Base class for every discussion engine failure"""
    status_code = 400
    error_type = 'thread_error'
    default_message = 'The discussion request could not be completed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ThreadValidationError(ThreadError):
    """Empty body, malformed id or unknown field value; shown inline, not retried"""
    status_code = 400
    error_type = 'validation_error'
    default_message = 'Please check your input and try again'


class NotFound(ThreadError):
    """Missing or deleted root/parent; the client must reload the thread"""
    status_code = 404
    error_type = 'not_found'
    default_message = 'Discussion not found or already deleted'


class Unauthorized(ThreadError):
    """Acting user may not perform this mutation; never retried"""
    status_code = 403
    error_type = 'permission_error'
    default_message = 'You do not have permission to perform this action'


class AuthenticationRequired(Unauthorized):
    status_code = 401
    error_type = 'authentication_required'
    default_message = 'You must be signed in to perform this action'


class ThreadStateError(ThreadError):
    """A cached thread was driven through an illegal state transition"""
    status_code = 409
    error_type = 'state_error'
    default_message = 'The thread is not in a state that allows this action'
