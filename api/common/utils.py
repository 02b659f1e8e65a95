"""
Common utility functions shared across the application.
"""
from typing import Any


def is_valid_document_id(value: Any) -> bool:
    """
    Check that a value can be used as a Firestore document ID.

    Args:
        value: The candidate ID

    Returns:
        bool: True if the value is a non-empty string Firestore accepts as an ID
    """
    if not isinstance(value, str):
        return False
    if not value.strip() or "/" in value or value in (".", ".."):
        return False
    if value.startswith("__") and value.endswith("__"):
        return False
    return len(value.encode("utf-8")) <= 1500


def paginate(items: list, page: int, size: int) -> tuple[list, int]:
    """
    Slice a list for the requested page.

    Returns:
        Tuple of (page_items, total_pages)
    """
    total = len(items)
    offset = (page - 1) * size
    pages = (total + size - 1) // size if size > 0 else 0
    return items[offset:offset + size], max(pages, 1)
