import html
import re
from typing import Optional

from ..errors import ValidationError


def validate_and_sanitize_input(value: str, max_length: int = 500) -> str:
    """
    Validate and sanitize user input by removing potentially harmful content.

    The length limit applies to the escaped value, which is what gets stored.

    Args:
        value: Input string to validate
        max_length: Maximum allowed length

    Returns:
        Sanitized string

    Raises:
        ValueError: If input is invalid
    """
    if not value:
        return ""

    value = str(value).strip()

    value = html.escape(value, quote=True)

    # Strip control characters that have no place in names or notes
    value = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value)

    if len(value) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters once escaped")

    return value


def sanitize_field(value: Optional[str], field: str, max_length: int) -> str:
    """``validate_and_sanitize_input`` for service layers: failures become a 422"""
    try:
        return validate_and_sanitize_input(value, max_length=max_length)
    except ValueError as e:
        raise ValidationError(str(e), {"field": field, "max_length": max_length}) from e
