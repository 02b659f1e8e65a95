"""
Stock reconciliation for the sale lifecycle.

Turns a sale transition (create, update, delete) into signed per-product
stock deltas, validates them against a read of the products taken before
anything is written, and applies them one product at a time.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from api.common.errors import InsufficientStockError, NotFoundError, StoreUnavailableError
from api.common.logging import get_logger
from api.common.utils import is_valid_document_id
from api.products.schemas import ProductInDB
from api.products.services import ProductStore

logger = get_logger(__name__)


@dataclass
class SaleLine:
    """One product, quantity and price tuple of a sale."""
    product_id: Optional[str]
    quantity: Optional[int]
    unit_sale_price: Optional[float]
    unit_cost_price: float = 0.0
    product_name: Optional[str] = None

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_sale_price

    @property
    def line_cogs(self) -> float:
        return self.quantity * self.unit_cost_price

    @property
    def line_profit(self) -> float:
        return self.line_total - self.line_cogs

    def to_item(self) -> Dict[str, Any]:
        """Stored shape of the line inside a multi-item sale."""
        return {
            'productId': self.product_id,
            'productName': self.product_name,
            'quantity': self.quantity,
            'unitSalePrice': self.unit_sale_price,
            'unitCostPrice': self.unit_cost_price,
            'lineTotal': self.line_total,
            'lineProfit': self.line_profit,
        }


@dataclass(frozen=True)
class StockDelta:
    product_id: str
    delta: int


@dataclass(frozen=True)
class SaleTotals:
    total_sales: float
    total_cogs: float
    sale_expenses: float
    total_profit: float

    @property
    def gross_profit(self) -> float:
        return self.total_sales - self.total_cogs


@dataclass
class ReconciliationReport:
    """What happened to each stock delta of a sale mutation."""
    applied: Dict[str, int] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def sale_lines(document: Mapping[str, Any]) -> List[SaleLine]:
    """
    Read the lines of a stored sale in either shape.

    A non-empty `items` list marks a multi-item sale and the single-item
    fields are ignored even when present.
    """
    items = document.get('items') or []
    if items:
        return [
            SaleLine(
                product_id=item.get('productId'),
                quantity=item.get('quantity') or 0,
                unit_sale_price=item.get('unitSalePrice') or 0,
                unit_cost_price=item.get('unitCostPrice') or 0,
                product_name=item.get('productName'),
            )
            for item in items
        ]

    if not document.get('productId'):
        return []

    return [SaleLine(
        product_id=document.get('productId'),
        quantity=document.get('quantity') or 0,
        unit_sale_price=document.get('unitSalePrice') or 0,
        unit_cost_price=document.get('unitCostPrice') or 0,
        product_name=document.get('productName'),
    )]


def compute_totals(lines: List[SaleLine], sale_expenses: float = 0) -> SaleTotals:
    """
    Compute the stored financial fields of a sale.

    profit = revenue - cost of goods sold - sale expenses
    """
    total_sales = sum(line.line_total for line in lines)
    total_cogs = sum(line.line_cogs for line in lines)
    return SaleTotals(
        total_sales=total_sales,
        total_cogs=total_cogs,
        sale_expenses=sale_expenses,
        total_profit=total_sales - total_cogs - sale_expenses,
    )


def _quantities_by_product(lines: List[SaleLine]) -> "OrderedDict[str, int]":
    totals: "OrderedDict[str, int]" = OrderedDict()
    for line in lines:
        if not is_valid_document_id(line.product_id):
            continue
        totals[line.product_id] = totals.get(line.product_id, 0) + (line.quantity or 0)
    return totals


class StockReconciler:
    """Plans and applies the stock side effects of sale mutations."""

    def __init__(self, products: ProductStore):
        self._products = products

    async def _load_products(self, owner_id: str, lines: List[SaleLine]) -> Dict[str, ProductInDB]:
        products: Dict[str, ProductInDB] = {}
        for line in lines:
            if line.product_id in products:
                continue
            product = await self._products.get_by_id(owner_id, line.product_id)
            if product is None:
                raise NotFoundError(
                    f"Product with ID {line.product_id} not found",
                    data={'productId': line.product_id},
                )
            products[line.product_id] = product
        return products

    @staticmethod
    def _price_lines(lines: List[SaleLine], products: Dict[str, ProductInDB]) -> List[SaleLine]:
        # Cost price is frozen at sale time so historical profit stays stable
        priced = []
        for line in lines:
            product = products[line.product_id]
            priced.append(SaleLine(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_sale_price=line.unit_sale_price,
                unit_cost_price=product.costPrice or 0,
                product_name=line.product_name or product.name,
            ))
        return priced

    async def plan_create(self, owner_id: str, lines: List[SaleLine]) -> Tuple[List[SaleLine], List[StockDelta]]:
        """
        Validate a new sale against current stock.

        Returns:
            Tuple of (priced_lines, deltas)

        Raises:
            NotFoundError: If a product does not exist
            InsufficientStockError: If any product cannot cover the requested quantity
        """
        products = await self._load_products(owner_id, lines)

        requested = _quantities_by_product(lines)
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.stock < quantity:
                raise InsufficientStockError(product_id, product.name, product.stock, quantity)

        deltas = [StockDelta(product_id, -quantity) for product_id, quantity in requested.items()]
        return self._price_lines(lines, products), deltas

    async def plan_update(self, owner_id: str, old_lines: List[SaleLine],
                          new_lines: List[SaleLine]) -> Tuple[List[SaleLine], List[StockDelta]]:
        """
        Validate an edited sale as if its old quantities had been returned first.

        For each product, available = current stock + old quantity and the
        applied delta is old quantity - new quantity. A line that moved to a
        different product yields two independent deltas.

        Returns:
            Tuple of (priced_new_lines, deltas)
        """
        products = await self._load_products(owner_id, new_lines)

        old_quantities = _quantities_by_product(old_lines)
        new_quantities = _quantities_by_product(new_lines)

        for product_id, quantity in new_quantities.items():
            product = products[product_id]
            available = product.stock + old_quantities.get(product_id, 0)
            if quantity > available:
                raise InsufficientStockError(product_id, product.name, available, quantity)

        deltas = []
        for product_id in list(old_quantities) + [p for p in new_quantities if p not in old_quantities]:
            delta = old_quantities.get(product_id, 0) - new_quantities.get(product_id, 0)
            if delta:
                deltas.append(StockDelta(product_id, delta))

        return self._price_lines(new_lines, products), deltas

    @staticmethod
    def plan_delete(lines: List[SaleLine]) -> List[StockDelta]:
        """Full restoration of every line; unusable product references are skipped."""
        return [
            StockDelta(product_id, quantity)
            for product_id, quantity in _quantities_by_product(lines).items()
            if quantity
        ]

    async def apply(self, deltas: List[StockDelta], floor: Optional[int] = None) -> ReconciliationReport:
        """
        Apply deltas one product at a time.

        A failure on one product does not stop the others; it is recorded in
        the report for the caller to surface.

        Args:
            deltas: Stock deltas to apply
            floor: Minimum stock allowed after a decrement
        """
        report = ReconciliationReport()
        for item in deltas:
            try:
                new_stock = await self._products.adjust_stock(
                    item.product_id, item.delta, floor=floor if item.delta < 0 else None
                )
            except (InsufficientStockError, StoreUnavailableError) as exc:
                logger.error("stock_adjust_failed", product_id=item.product_id, delta=item.delta, reason=exc.detail)
                report.failed[item.product_id] = exc.detail
                continue

            if new_stock is None:
                report.skipped.append(item.product_id)
            else:
                report.applied[item.product_id] = new_stock
        return report
