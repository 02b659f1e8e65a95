"""
This module contains the business logic for sale lifecycle operations.

Recording, editing and deleting a sale touches the sale document and one or
more product documents. Firestore gives no transaction spanning all of them
here, so each operation runs as a short saga:

1. validate everything that can be validated and read the products,
2. write the sale document,
3. apply the stock deltas one product at a time.

Failures in steps 1 and 2 leave nothing behind. Failures in step 3 are
reported as a partial success: the sale change stays committed and the
unreconciled products are logged for manual follow-up.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from google.cloud.firestore import DELETE_FIELD

from api.common.config import Settings, get_settings
from api.common.errors import ConflictError, ForbiddenError, NotFoundError, SaleValidationError
from api.common.logging import get_logger
from api.common.scope import resolve_scope
from api.common.utils import is_valid_document_id, paginate
from api.products.services import ProductStore
from api.sales.reconciler import (
    ReconciliationReport, SaleLine, SaleTotals, StockReconciler, compute_totals, sale_lines
)
from api.sales.repository import SaleRepository
from api.sales.schemas import (
    LedgerStatus, ReconciliationData, SaleExpenseDetail, SaleInDB, SaleMutationData, SalesData
)

logger = get_logger(__name__)

SINGLE_ITEM_FIELDS = ('productId', 'productName', 'quantity', 'unitSalePrice', 'unitCostPrice')


@dataclass
class LedgerResult:
    """Outcome of a sale mutation."""
    sale_id: str
    status: LedgerStatus
    reconciliation: ReconciliationReport
    totals: Optional[SaleTotals] = None
    item_count: Optional[int] = None

    @property
    def is_partial(self) -> bool:
        return self.status == LedgerStatus.PARTIAL_SUCCESS

    def to_data(self) -> SaleMutationData:
        return SaleMutationData(
            saleId=self.sale_id,
            status=self.status,
            totalSales=self.totals.total_sales if self.totals else None,
            totalProfit=self.totals.total_profit if self.totals else None,
            itemCount=self.item_count,
            reconciliation=ReconciliationData(
                applied=self.reconciliation.applied,
                skipped=self.reconciliation.skipped,
                failed=self.reconciliation.failed,
            ),
        )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _validate_lines(lines: List[SaleLine]) -> None:
    if not lines:
        raise SaleValidationError("At least one product item is required")

    for line in lines:
        if not line.product_id or line.quantity is None or line.unit_sale_price is None:
            raise SaleValidationError("Each item must have productId, quantity, and unitSalePrice")
        if not is_valid_document_id(line.product_id):
            raise SaleValidationError(
                f"Invalid product ID: {line.product_id}", data={'productId': line.product_id}
            )
        if line.quantity <= 0 or line.unit_sale_price <= 0:
            raise SaleValidationError("Quantity and price must be positive numbers")


def _resolve_expenses(sale_expenses: Optional[float], details: Optional[List[Any]]) -> tuple[float, List[Dict]]:
    """Return (total, details); the total defaults to the sum of the itemized amounts."""
    detail_dicts = []
    for detail in details or []:
        if isinstance(detail, SaleExpenseDetail):
            detail = detail.model_dump()
        detail_dicts.append(dict(detail))

    if sale_expenses is None:
        sale_expenses = sum(float(d.get('amount') or 0) for d in detail_dicts)
    if sale_expenses < 0:
        raise SaleValidationError("Sale expenses cannot be negative")
    return float(sale_expenses), detail_dicts


def _shape_fields(lines: List[SaleLine], single_item: bool, clear_other: bool = False) -> Dict[str, Any]:
    """Persisted line fields in the single-item or multi-item shape."""
    if single_item and len(lines) == 1:
        line = lines[0]
        fields = {
            'productId': line.product_id,
            'productName': line.product_name,
            'quantity': line.quantity,
            'unitSalePrice': line.unit_sale_price,
            'unitCostPrice': line.unit_cost_price,
        }
        if clear_other:
            fields['items'] = DELETE_FIELD
        return fields

    fields = {'items': [line.to_item() for line in lines]}
    if clear_other:
        for name in SINGLE_ITEM_FIELDS:
            fields[name] = DELETE_FIELD
    return fields


class SaleLedger:
    """Entry points for the sale lifecycle."""

    def __init__(self, sales: SaleRepository, products: ProductStore, settings: Optional[Settings] = None):
        self._sales = sales
        self._reconciler = StockReconciler(products)
        self._settings = settings or get_settings()

    async def _load_owned(self, owner_id: str, sale_id: str) -> Tuple[Dict[str, Any], Any]:
        """Load a sale the caller owns, with the update time to write against."""
        if not is_valid_document_id(sale_id):
            raise SaleValidationError("Invalid sale ID")

        found = await self._sales.find_versioned(sale_id)
        if found is None:
            raise NotFoundError("Sale not found")

        sale, version = found
        if sale.get('userId') != owner_id:
            if self._settings.hide_foreign_sales:
                raise NotFoundError("Sale not found")
            raise ForbiddenError("Access denied: sale belongs to another account")
        return sale, version

    def _result(self, sale_id: str, report: ReconciliationReport, log,
                totals: Optional[SaleTotals] = None, item_count: Optional[int] = None) -> LedgerResult:
        if report.ok:
            status = LedgerStatus.SUCCESS
            log.info("sale_mutation_completed", sale_id=sale_id, applied=report.applied, skipped=report.skipped)
        else:
            status = LedgerStatus.PARTIAL_SUCCESS
            log.warning(
                "sale_stock_reconciliation_incomplete",
                sale_id=sale_id,
                failed=report.failed,
                applied=report.applied,
            )
        return LedgerResult(sale_id, status, report, totals=totals, item_count=item_count)

    async def record_sale(self, owner_id: str, business_scope: Optional[str], lines: List[SaleLine],
                          sale_expenses: Optional[float] = None, notes: Optional[str] = None, *,
                          customer_name: Optional[str] = None, sale_date: Optional[datetime] = None,
                          sale_expense_details: Optional[List[Any]] = None,
                          single_item: bool = False) -> LedgerResult:
        """
        Record a sale and take its quantities out of stock.

        Args:
            owner_id: The account recording the sale
            business_scope: Business the sale belongs to; empty means the default business
            lines: Sale lines (product, quantity, unit sale price)
            sale_expenses: Total ancillary cost; defaults to the sum of the itemized details
            notes: Free-form notes
            customer_name: Optional customer name
            sale_date: Date of the sale; defaults to now
            sale_expense_details: Itemized ancillary costs
            single_item: Store a one-line sale in the single-item shape

        Returns:
            LedgerResult with the new sale ID

        Raises:
            SaleValidationError, NotFoundError, InsufficientStockError: Nothing was written
            StoreUnavailableError: The store failed before the sale was written
        """
        log = logger.bind(operation="record_sale", owner_id=owner_id)
        _validate_lines(lines)
        expenses, details = _resolve_expenses(sale_expenses, sale_expense_details)
        scope = resolve_scope(business_scope)

        priced, deltas = await self._reconciler.plan_create(owner_id, lines)
        totals = compute_totals(priced, expenses)

        now = datetime.now(timezone.utc)
        document = {
            'userId': owner_id,
            'businessId': scope.business_id_for_write(),
            'customerName': customer_name or None,
            'saleDate': sale_date or now,
            'saleExpenses': totals.sale_expenses,
            'saleExpenseDetails': details,
            'totalSales': totals.total_sales,
            'totalCogs': totals.total_cogs,
            'totalProfit': totals.total_profit,
            'notes': notes or "",
            'createdAt': now,
            'updatedAt': now,
        }
        document.update(_shape_fields(priced, single_item))

        sale_id = await self._sales.insert(document)
        log.debug("sale_inserted", sale_id=sale_id, business_id=scope.business_id)

        report = await self._reconciler.apply(deltas, floor=0)
        return self._result(sale_id, report, log, totals=totals, item_count=len(priced))

    async def edit_sale(self, owner_id: str, sale_id: str, lines: List[SaleLine],
                        sale_expenses: Optional[float] = None, notes: Optional[str] = None, *,
                        customer_name: Optional[str] = None, sale_date: Optional[datetime] = None,
                        sale_expense_details: Optional[List[Any]] = None,
                        single_item: bool = False) -> LedgerResult:
        """
        Replace the lines of a sale and move stock by the difference.

        The stored totals and cost price snapshots are recomputed. The
        business of the sale is never changed. If another request changed
        the sale since it was read, ConflictError is raised and no stock moves.
        """
        log = logger.bind(operation="edit_sale", owner_id=owner_id, sale_id=sale_id)
        _validate_lines(lines)
        expenses, details = _resolve_expenses(sale_expenses, sale_expense_details)

        existing, version = await self._load_owned(owner_id, sale_id)
        priced, deltas = await self._reconciler.plan_update(owner_id, sale_lines(existing), lines)
        totals = compute_totals(priced, expenses)

        fields = {
            'saleExpenses': totals.sale_expenses,
            'saleExpenseDetails': details,
            'totalSales': totals.total_sales,
            'totalCogs': totals.total_cogs,
            'totalProfit': totals.total_profit,
            'notes': notes or "",
            'updatedAt': datetime.now(timezone.utc),
        }
        if customer_name is not None:
            fields['customerName'] = customer_name or None
        if sale_date is not None:
            fields['saleDate'] = sale_date
        fields.update(_shape_fields(priced, single_item, clear_other=True))

        # Deltas were computed from this version of the sale, so only write over it
        await self._sales.update_fields(sale_id, fields, expected_update_time=version)

        report = await self._reconciler.apply(deltas, floor=0)
        return self._result(sale_id, report, log, totals=totals, item_count=len(priced))

    async def delete_sale(self, owner_id: str, sale_id: str) -> LedgerResult:
        """
        Delete a sale and return its quantities to stock.

        Only the request that actually removes the sale document restores
        stock; a concurrent delete of the same sale gets NotFoundError.
        Lines pointing at products that no longer exist are skipped.
        """
        log = logger.bind(operation="delete_sale", owner_id=owner_id, sale_id=sale_id)
        existing, version = await self._load_owned(owner_id, sale_id)

        try:
            await self._sales.delete(sale_id, expected_update_time=version)
        except ConflictError:
            if await self._sales.find_by_id(sale_id) is None:
                log.info("sale_already_deleted")
                raise NotFoundError("Sale not found")
            raise

        deltas = self._reconciler.plan_delete(sale_lines(existing))
        report = await self._reconciler.apply(deltas)
        return self._result(sale_id, report, log)

    async def get_sale(self, owner_id: str, sale_id: str) -> SaleInDB:
        sale, _ = await self._load_owned(owner_id, sale_id)
        return SaleInDB(**sale)

    async def list_sales(self, owner_id: str, business_scope: Optional[str] = None,
                         start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                         product_id: Optional[str] = None, page: int = 1, size: int = 50) -> SalesData:
        """
        List the sales of one business, newest first.

        Args:
            owner_id: The account owning the sales
            business_scope: Business to list; empty means the default business
            start_date: Only sales on or after this moment
            end_date: Only sales on or before this moment
            product_id: Only sales with a line for this product
            page: Page number (starts at 1)
            size: Number of sales per page

        Returns:
            SalesData with pagination information
        """
        scope = resolve_scope(business_scope)
        documents = await self._sales.list_for_owner(owner_id, scope)

        start_date, end_date = _as_utc(start_date), _as_utc(end_date)
        filtered = []
        for sale in documents:
            sale_date = _as_utc(sale.get('saleDate'))
            if start_date and (sale_date is None or sale_date < start_date):
                continue
            if end_date and (sale_date is None or sale_date > end_date):
                continue
            if product_id and all(line.product_id != product_id for line in sale_lines(sale)):
                continue
            filtered.append(sale)

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        filtered.sort(key=lambda s: _as_utc(s.get('saleDate')) or epoch, reverse=True)

        page_items, pages = paginate(filtered, page, size)
        return SalesData(
            items=[SaleInDB(**sale) for sale in page_items],
            total=len(filtered),
            page=page,
            size=size,
            pages=pages,
        )


def get_sale_ledger() -> SaleLedger:
    """Dependency provider for the sale ledger."""
    return SaleLedger(SaleRepository(), ProductStore())
