"""
This module contains pytest fixtures and configuration for testing.
"""
from unittest.mock import MagicMock, patch
import asyncio
import itertools
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from google.cloud.firestore import DELETE_FIELD

# Add the project's root directory to the system path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from api.common.errors import ConflictError, InsufficientStockError, NotFoundError, StoreUnavailableError
from api.products.schemas import ProductInDB


class InMemoryProductStore:
    """Product store double keeping documents in a dict."""

    def __init__(self):
        self.documents = {}
        self.unavailable = set()
        self.adjust_calls = []

    def add(self, product_id, owner_id="user1", current_stock=10, cost_price=6.0, name=None, **fields):
        self.documents[product_id] = {
            "userId": owner_id,
            "name": name or f"Product {product_id}",
            "category": "General",
            "costPrice": cost_price,
            "salePrice": 10.0,
            "currentStock": current_stock,
            **fields,
        }

    def stock(self, product_id):
        return self.documents[product_id].get("currentStock")

    async def get_by_id(self, owner_id, product_id):
        if product_id in self.unavailable:
            raise StoreUnavailableError("Cannot load product: database unavailable. Please try again later.")
        data = self.documents.get(product_id)
        if data is None or data["userId"] != owner_id:
            return None
        return ProductInDB(id=product_id, **data)

    async def adjust_stock(self, product_id, delta, floor=None):
        self.adjust_calls.append((product_id, delta))
        if product_id in self.unavailable:
            raise StoreUnavailableError("Cannot update product stock: database unavailable. Please try again later.")
        data = self.documents.get(product_id)
        if data is None:
            return None
        current = data.get("currentStock") or 0
        new_stock = current + delta
        if floor is not None and new_stock < floor:
            raise InsufficientStockError(product_id, data.get("name"), current, -delta)
        data["currentStock"] = new_stock
        return new_stock

    async def list_products(self, owner_id, scope, search=None, category=None, low_stock=False):
        return [
            ProductInDB(id=product_id, **data)
            for product_id, data in self.documents.items()
            if data["userId"] == owner_id and scope.matches(data)
        ]


class InMemorySaleRepository:
    """
    Sale repository double keeping documents in a dict.

    Every write bumps a per-document version which stands in for the
    Firestore update time used as a write precondition.
    """

    def __init__(self):
        self.documents = {}
        self.versions = {}
        self.unavailable = False
        self.yield_on_read = False
        self._ids = (f"sale{n}" for n in itertools.count(1))

    def _bump(self, sale_id):
        self.versions[sale_id] = self.versions.get(sale_id, 0) + 1

    def _check_version(self, sale_id, expected_update_time):
        if expected_update_time is None:
            return
        if sale_id not in self.documents or self.versions.get(sale_id, 0) != expected_update_time:
            raise ConflictError("Cannot write sale: it was changed by another request. Please reload and try again.")

    async def insert(self, document):
        if self.unavailable:
            raise StoreUnavailableError("Cannot save sale: database unavailable. Please try again later.")
        sale_id = next(self._ids)
        self.documents[sale_id] = dict(document)
        self._bump(sale_id)
        return sale_id

    async def find_by_id(self, sale_id):
        found = await self.find_versioned(sale_id)
        return found[0] if found else None

    async def find_versioned(self, sale_id):
        data = self.documents.get(sale_id)
        version = self.versions.get(sale_id, 0)
        if self.yield_on_read:
            # Let concurrently scheduled requests read the same version
            await asyncio.sleep(0)
        if data is None:
            return None
        return {**data, "id": sale_id}, version

    async def update_fields(self, sale_id, fields, expected_update_time=None):
        if self.unavailable:
            raise StoreUnavailableError("Cannot update sale: database unavailable. Please try again later.")
        if sale_id not in self.documents:
            raise NotFoundError("Sale not found")
        self._check_version(sale_id, expected_update_time)
        document = self.documents[sale_id]
        for name, value in fields.items():
            if value is DELETE_FIELD:
                document.pop(name, None)
            else:
                document[name] = value
        self._bump(sale_id)

    async def delete(self, sale_id, expected_update_time=None):
        self._check_version(sale_id, expected_update_time)
        self.documents.pop(sale_id, None)
        self.versions.pop(sale_id, None)

    async def list_for_owner(self, owner_id, scope):
        return [
            {**data, "id": sale_id}
            for sale_id, data in self.documents.items()
            if data["userId"] == owner_id and scope.matches(data)
        ]


@pytest.fixture
def product_store():
    return InMemoryProductStore()


@pytest.fixture
def sale_repository():
    return InMemorySaleRepository()


@pytest.fixture
def ledger(sale_repository, product_store):
    from api.sales.services import SaleLedger
    return SaleLedger(sale_repository, product_store)


@pytest.fixture
def test_app():
    """
    Create a FastAPI test application.
    """
    from main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(test_app, ledger, product_store):
    """
    Create a test client with the stores replaced by in-memory doubles.
    """
    from api.auth.dependencies import get_current_user_id
    from api.products.services import get_product_store
    from api.sales.services import get_sale_ledger

    test_app.dependency_overrides[get_current_user_id] = lambda: "user1"
    test_app.dependency_overrides[get_sale_ledger] = lambda: ledger
    test_app.dependency_overrides[get_product_store] = lambda: product_store
    return TestClient(test_app)


@pytest.fixture
def mock_firestore():
    """
    Create a mock for the async Firestore client.
    """
    with patch('api.common.database.firestore_async.client') as mock:
        firestore_mock = MagicMock()
        mock.return_value = firestore_mock
        yield firestore_mock


@pytest.fixture
def make_doc():
    """Factory for Firestore document snapshot mocks."""
    def _make(doc_id, data, exists=True):
        doc = MagicMock()
        doc.id = doc_id
        doc.exists = exists
        doc.to_dict.return_value = dict(data) if data is not None else None
        return doc
    return _make


@pytest.fixture
def stream_of():
    """Factory turning a list of documents into an async query stream."""
    def _stream(docs):
        async def _gen():
            for doc in docs:
                yield doc
        return _gen()
    return _stream
