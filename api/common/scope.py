"""
Business scope resolution.

An account can hold several businesses. Records written before multi-business
support carry no `businessId` at all (or an explicit null), and all of them
belong to the reserved "default" business.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from api.common.config import get_settings

BUSINESS_FIELD = "businessId"


@dataclass(frozen=True)
class ScopePredicate:
    """Query predicate selecting the documents of one business."""
    business_id: str
    is_default: bool

    def matches(self, document: Mapping[str, Any]) -> bool:
        """Check a raw document against this scope."""
        value = document.get(BUSINESS_FIELD)
        if self.is_default:
            return value is None or value == self.business_id
        return value == self.business_id

    def apply(self, query):
        """
        Push the scope filter into a Firestore query when the store can express it.

        Firestore cannot select documents that lack a field, so the default
        scope is left to `matches` on the returned documents.
        """
        if self.is_default:
            return query
        return query.where(filter=FieldFilter(BUSINESS_FIELD, "==", self.business_id))

    def business_id_for_write(self) -> str:
        return self.business_id


def resolve_scope(requested: Optional[str] = None) -> ScopePredicate:
    """
    Normalize a caller supplied business id into a ScopePredicate.

    Args:
        requested: Business id from the request; empty or missing means the default business

    Returns:
        ScopePredicate for the business
    """
    default_id = get_settings().default_business_id
    business_id = (requested or "").strip() or default_id
    return ScopePredicate(business_id=business_id, is_default=business_id == default_id)
