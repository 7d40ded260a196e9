"""
Structured logging utilities for better debugging and monitoring
"""

import logging
import json
import traceback
from typing import Dict, Any, Optional
from django.http import HttpRequest


class StructuredLogger:
    """Enhanced logger with structured output"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _create_context(self,
                       user: Optional[Any] = None,
                       request: Optional[HttpRequest] = None,
                       extra_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Create structured context for logging"""
        context = {}

        if user is not None and getattr(user, 'is_authenticated', False):
            context.update({
                'user_id': user.pk,
                'username': user.get_username(),
            })
        elif user is not None:
            context['user_id'] = None

        if request is not None:
            session = getattr(request, 'session', None)
            context.update({
                'request_method': request.method,
                'request_path': request.path,
                'request_ip': self._get_client_ip(request),
                'user_agent': request.META.get('HTTP_USER_AGENT', ''),
                'session_id': session.session_key if session is not None else None,
            })

        if extra_data:
            context.update(extra_data)

        return context

    def _get_client_ip(self, request: HttpRequest) -> Optional[str]:
        """Get client IP address from request"""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    def _format(self, message: str, context: Dict[str, Any]) -> str:
        return f"{message} | Context: {json.dumps(context, default=str)}"

    def info(self, message: str,
             user: Optional[Any] = None,
             request: Optional[HttpRequest] = None,
             extra_data: Optional[Dict[str, Any]] = None):
        """Log info message with context"""
        context = self._create_context(user, request, extra_data)
        self.logger.info(self._format(message, context))

    def error(self, message: str,
              exception: Optional[Exception] = None,
              user: Optional[Any] = None,
              request: Optional[HttpRequest] = None,
              extra_data: Optional[Dict[str, Any]] = None):
        """Log error message with context and exception details"""
        context = self._create_context(user, request, extra_data)

        if exception:
            context.update({
                'exception_type': type(exception).__name__,
                'exception_message': str(exception),
                'traceback': traceback.format_exc()
            })

        self.logger.error(self._format(message, context))

    def warning(self, message: str,
                user: Optional[Any] = None,
                request: Optional[HttpRequest] = None,
                extra_data: Optional[Dict[str, Any]] = None):
        """Log warning message with context"""
        context = self._create_context(user, request, extra_data)
        self.logger.warning(self._format(message, context))

    def debug(self, message: str,
              user: Optional[Any] = None,
              request: Optional[HttpRequest] = None,
              extra_data: Optional[Dict[str, Any]] = None):
        """Log debug message with context"""
        context = self._create_context(user, request, extra_data)
        self.logger.debug(self._format(message, context))


discussion_logger = StructuredLogger('discussions.activity')
