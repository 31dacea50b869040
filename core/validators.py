"""
Input validation utilities for the counseling appointment service.
"""
from typing import Tuple, Optional, Any

import config


def is_blank(value: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def normalize_email(email: str) -> str:
    """Lowercase and strip an email address for storage and lookup."""
    return (email or "").strip().lower()


def validate_rating(rating: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a feedback rating.

    Args:
        rating: Submitted rating

    Returns:
        Tuple of (is_valid, error_message)
    """
    # bool is an int subclass; True must not count as a rating of 1
    if isinstance(rating, bool) or not isinstance(rating, int):
        return False, "Rating must be a whole number."

    if rating < config.MIN_FEEDBACK_RATING or rating > config.MAX_FEEDBACK_RATING:
        return False, (
            f"Rating must be between {config.MIN_FEEDBACK_RATING} "
            f"and {config.MAX_FEEDBACK_RATING}."
        )

    return True, None


def clean_text(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """
    Strip surrounding whitespace and optionally truncate.

    Returns None for blank input.
    """
    if is_blank(value):
        return None
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        value = value[:max_length]
    return value
