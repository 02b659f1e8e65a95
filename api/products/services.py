"""
Product persistence and stock adjustment.

Stock is only ever changed through `ProductStore.adjust_stock`, which applies
a signed delta inside a transaction scoped to a single product document.
"""
from datetime import datetime, timezone
from typing import List, Optional

from google.cloud.firestore import async_transactional
from google.cloud.firestore_v1.base_query import FieldFilter

from api.common.config import get_settings
from api.common.database import get_firestore_client
from api.common.errors import InsufficientStockError, store_errors
from api.common.logging import get_logger
from api.common.scope import ScopePredicate
from api.products.schemas import ProductInDB

logger = get_logger(__name__)


def _to_product(doc) -> ProductInDB:
    product_data = doc.to_dict() or {}
    product_data['id'] = doc.id
    return ProductInDB(**product_data)


class ProductStore:
    """Owns product documents in Firestore."""

    def __init__(self, db=None, collection: Optional[str] = None):
        self._db = db if db is not None else get_firestore_client()
        self._collection = collection or get_settings().products_collection

    def _document(self, product_id: str):
        return self._db.collection(self._collection).document(product_id)

    async def get_by_id(self, owner_id: str, product_id: str) -> Optional[ProductInDB]:
        """
        Retrieve a product owned by the given account.

        Args:
            owner_id: The account that must own the product
            product_id: The product document ID

        Returns:
            ProductInDB, or None if the product does not exist or belongs to someone else
        """
        async with store_errors("load product"):
            doc = await self._document(product_id).get()

        if not doc.exists:
            return None

        product = _to_product(doc)
        if product.userId != owner_id:
            return None
        return product

    async def adjust_stock(self, product_id: str, delta: int, floor: Optional[int] = None) -> Optional[int]:
        """
        Atomically add a signed delta to a product's stock.

        Missing or null stock counts as zero. Firestore retries the transaction
        when the document changes underneath it, so the delta is always applied
        to the stored value rather than to a value read earlier by the caller.

        Args:
            product_id: The product document ID
            delta: Signed quantity to add
            floor: If set, refuse to write a stock level below this value

        Returns:
            The new stock level, or None if the product does not exist

        Raises:
            InsufficientStockError: If the result would fall below `floor`
            StoreUnavailableError: If Firestore cannot be reached
        """
        doc_ref = self._document(product_id)

        @async_transactional
        async def apply_delta(transaction, ref):
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                return None

            product_data = snapshot.to_dict() or {}
            current = product_data.get('currentStock') or 0
            new_stock = current + delta

            if floor is not None and new_stock < floor:
                raise InsufficientStockError(
                    product_id, product_data.get('name'), available=current, requested=-delta
                )

            transaction.update(ref, {
                'currentStock': new_stock,
                'updatedAt': datetime.now(timezone.utc),
            })
            return new_stock

        async with store_errors("update product stock"):
            new_stock = await apply_delta(self._db.transaction(), doc_ref)

        if new_stock is None:
            logger.info("stock_adjust_skipped_missing_product", product_id=product_id, delta=delta)
        else:
            logger.debug("stock_adjusted", product_id=product_id, delta=delta, new_stock=new_stock)
        return new_stock

    async def list_products(self, owner_id: str, scope: ScopePredicate, search: Optional[str] = None,
                            category: Optional[str] = None, low_stock: bool = False) -> List[ProductInDB]:
        """
        List the products of one business, newest changes first.

        Args:
            owner_id: The account owning the products
            scope: Business scope predicate
            search: Case-insensitive substring matched against name, SKU and category
            category: Exact category filter ('all' disables it)
            low_stock: Only return products at or below the low stock threshold

        Returns:
            List of ProductInDB
        """
        query = self._db.collection(self._collection).where(filter=FieldFilter('userId', '==', owner_id))
        query = scope.apply(query)

        products = []
        async with store_errors("list products"):
            async for doc in query.stream():
                product_data = doc.to_dict() or {}
                if not scope.matches(product_data):
                    continue
                products.append(_to_product(doc))

        # Apply additional filters in memory
        if search:
            needle = search.lower().strip()
            products = [
                p for p in products
                if needle in p.name.lower() or needle in (p.sku or "").lower() or needle in p.category.lower()
            ]
        if category and category != 'all':
            products = [p for p in products if p.category == category]
        if low_stock:
            threshold = get_settings().low_stock_threshold
            products = [p for p in products if p.stock <= threshold]

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        products.sort(key=lambda p: _aware(p.updatedAt) or epoch, reverse=True)
        return products


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_product_store() -> ProductStore:
    """Dependency provider for the product store."""
    return ProductStore()
