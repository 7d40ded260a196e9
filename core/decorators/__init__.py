"""
Core decorators package
"""

from .error_handling import api_error_handler, error_response

__all__ = ['api_error_handler', 'error_response']
