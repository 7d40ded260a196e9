"""
Discussion-specific validation utilities for request data and mutation input.
"""

from django.conf import settings
from typing import Any, Optional
import logging

from .exceptions import ThreadValidationError
from .models import ThreadNode, join_list_field

logger = logging.getLogger(__name__)


def validate_node_id(node_id: Any, field_name: str = 'Node ID') -> int:
    """
    Validate and convert a node reference to integer.

    Args:
        node_id: The id to validate (int or numeric string)
        field_name: Label used in the error message

    Returns:
        Validated positive integer id

    Raises:
        ThreadValidationError: If the reference is missing or malformed
    """
    if node_id is None or isinstance(node_id, bool):
        raise ThreadValidationError(f'{field_name} is required')

    try:
        int_id = int(str(node_id).strip())
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid {field_name}: {node_id!r} - {e}")
        raise ThreadValidationError(f'{field_name} must be a valid positive integer')

    if int_id <= 0:
        raise ThreadValidationError(f'{field_name} must be a valid positive integer')
    return int_id


def validate_body(body: Any, field_name: str = 'Comment') -> str:
    """
    Validate rich-text content: required after trimming and bounded in size.

    Returns:
        The trimmed body
    """
    if body is None or not isinstance(body, str):
        raise ThreadValidationError(f'{field_name} cannot be empty')

    body = body.strip()
    if not body:
        raise ThreadValidationError(f'{field_name} cannot be empty')

    max_length = getattr(settings, 'DISCUSSIONS_MAX_BODY_LENGTH', 20000)
    if len(body) > max_length:
        raise ThreadValidationError(f'{field_name} is too long (maximum {max_length} characters)')
    return body


def validate_title(title: Any) -> str:
    if title is None or not isinstance(title, str) or not title.strip():
        raise ThreadValidationError('Title and content are required')

    title = title.strip()
    max_length = ThreadNode._meta.get_field('title').max_length
    if len(title) > max_length:
        raise ThreadValidationError(f'Title is too long (maximum {max_length} characters)')
    return title


def validate_visibility(visibility: Any) -> str:
    """Case-insensitive; missing means public"""
    if visibility is None or (isinstance(visibility, str) and not visibility.strip()):
        return ThreadNode.VISIBILITY_PUBLIC

    value = str(visibility).strip().lower()
    allowed = [choice for choice, _label in ThreadNode.VISIBILITY_CHOICES]
    if value not in allowed:
        raise ThreadValidationError(f"Visibility must be one of: {', '.join(allowed)}")
    return value


def validate_list_field(values: Optional[Any]) -> str:
    """Accepts a list or a comma-joined string; returns the stored form"""
    if values is None:
        return ''
    if not isinstance(values, (str, list, tuple)):
        raise ThreadValidationError('Tags and resource links must be a list or a comma separated string')
    return join_list_field(values)
