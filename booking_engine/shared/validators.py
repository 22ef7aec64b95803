"""Shared validation utilities"""

import re
from typing import Optional


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number to E.164-like form.

    Args:
        phone: Phone number string in various formats ("+33 6 12 34 56 78", "(555) 010-0000")

    Returns:
        Digits prefixed with "+" when the input had an international prefix

    Raises:
        ValueError: If the number has too few or too many digits
    """
    if not phone:
        return phone

    international = phone.strip().startswith(("+", "00"))

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)
    if phone.strip().startswith("00"):
        digits = digits[2:]

    # E.164 allows at most 15 digits
    if not 7 <= len(digits) <= 15:
        raise ValueError("Phone number must contain between 7 and 15 digits")

    return f"+{digits}" if international else digits
