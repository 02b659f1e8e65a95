"""
Firestore persistence for sale documents.
"""
from typing import Any, Dict, List, Optional, Tuple

from google.cloud.firestore_v1.base_query import FieldFilter

from api.common.config import get_settings
from api.common.database import get_firestore_client
from api.common.errors import store_errors
from api.common.scope import ScopePredicate


class SaleRepository:
    """Document CRUD for the sales collection."""

    def __init__(self, db=None, collection: Optional[str] = None):
        self._db = db if db is not None else get_firestore_client()
        self._collection = collection or get_settings().sales_collection

    def _sales(self):
        return self._db.collection(self._collection)

    def _precondition(self, expected_update_time):
        # Firestore rejects the write with FAILED_PRECONDITION once the document moved on
        if expected_update_time is None:
            return None
        return self._db.write_option(last_update_time=expected_update_time)

    async def insert(self, document: Dict[str, Any]) -> str:
        """Store a new sale and return its generated ID."""
        doc_ref = self._sales().document()
        async with store_errors("save sale"):
            await doc_ref.set(document)
        return doc_ref.id

    async def find_by_id(self, sale_id: str) -> Optional[Dict[str, Any]]:
        """Load a sale document with its `id`, or None if it does not exist."""
        found = await self.find_versioned(sale_id)
        return found[0] if found else None

    async def find_versioned(self, sale_id: str) -> Optional[Tuple[Dict[str, Any], Any]]:
        """
        Load a sale together with the update time of the snapshot read.

        Passing that update time back to `update_fields` or `delete` makes the
        write fail if another request changed or removed the sale in between.

        Returns:
            Tuple of (sale_data, update_time), or None if the sale does not exist
        """
        async with store_errors("load sale"):
            doc = await self._sales().document(sale_id).get()
        if not doc.exists:
            return None
        sale_data = doc.to_dict() or {}
        sale_data['id'] = doc.id
        return sale_data, doc.update_time

    async def update_fields(self, sale_id: str, fields: Dict[str, Any], expected_update_time=None) -> None:
        option = self._precondition(expected_update_time)
        async with store_errors("update sale", not_found="Sale not found"):
            await self._sales().document(sale_id).update(fields, option=option)

    async def delete(self, sale_id: str, expected_update_time=None) -> None:
        option = self._precondition(expected_update_time)
        async with store_errors("delete sale", not_found="Sale not found"):
            await self._sales().document(sale_id).delete(option=option)

    async def list_for_owner(self, owner_id: str, scope: ScopePredicate) -> List[Dict[str, Any]]:
        """
        Load every sale of one business.

        The owner and explicit business filters run in Firestore; the default
        business also matches legacy documents, which is checked here.
        """
        query = self._sales().where(filter=FieldFilter('userId', '==', owner_id))
        query = scope.apply(query)

        sales = []
        async with store_errors("list sales"):
            async for doc in query.stream():
                sale_data = doc.to_dict() or {}
                if not scope.matches(sale_data):
                    continue
                sale_data['id'] = doc.id
                sales.append(sale_data)
        return sales
