"""
This module defines the Pydantic models used for sales management.
These models are used for request and response validation and serialization.

Line level checks (positive quantity and price, required fields) are made by
the sale ledger so that every caller gets the same validation errors.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from api.common.schemas import PaginationResponse, JSendResponse, TimestampMixin
from api.sales.reconciler import SaleLine


class LedgerStatus(str, Enum):
    """Outcome of a ledger mutation."""
    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


class SaleExpenseDetail(BaseModel):
    """Itemized ancillary cost of a sale (shipping, packaging, fees...)."""
    category: str
    amount: float = Field(..., ge=0)
    description: str = ""


class SaleItemIn(BaseModel):
    """One line of a multi-item sale request."""
    productId: Optional[str] = None
    quantity: Optional[int] = None
    unitSalePrice: Optional[float] = None


class SaleCreate(BaseModel):
    """
    Request body for recording or editing a sale.

    Either `items` (multi-item sale) or the single-item fields
    `productId`, `quantitySold` and `unitPrice` are used. A non-empty
    `items` list takes precedence.
    """
    items: Optional[List[SaleItemIn]] = None
    productId: Optional[str] = None
    productName: Optional[str] = None
    quantitySold: Optional[int] = None
    unitPrice: Optional[float] = None
    customerName: Optional[str] = None
    saleDate: Optional[datetime] = None
    notes: Optional[str] = None
    saleExpenses: Optional[float] = None
    saleExpenseDetails: List[SaleExpenseDetail] = []

    @property
    def is_multi_item(self) -> bool:
        return bool(self.items)

    def to_lines(self) -> List[SaleLine]:
        """Convert the request into ledger lines."""
        if self.is_multi_item:
            return [
                SaleLine(
                    product_id=item.productId,
                    quantity=item.quantity,
                    unit_sale_price=item.unitSalePrice,
                )
                for item in self.items
            ]

        if not self.productId and not self.quantitySold and not self.unitPrice:
            return []

        return [SaleLine(
            product_id=self.productId,
            quantity=self.quantitySold,
            unit_sale_price=self.unitPrice,
            product_name=self.productName,
        )]


class SaleItem(BaseModel):
    """A stored sale line."""
    productId: Optional[str] = None
    productName: Optional[str] = None
    quantity: int = 0
    unitSalePrice: float = 0
    unitCostPrice: float = 0
    lineTotal: float = 0
    lineProfit: float = 0


class SaleInDB(BaseModel, TimestampMixin):
    """
    A sale as stored in the database.

    Single-item sales carry the product fields at the top level and no
    `items`; multi-item sales carry a non-empty `items` list.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    userId: str
    businessId: Optional[str] = None
    productId: Optional[str] = None
    productName: Optional[str] = None
    quantity: Optional[int] = None
    unitSalePrice: Optional[float] = None
    unitCostPrice: Optional[float] = None
    items: List[SaleItem] = []
    customerName: Optional[str] = None
    saleDate: Optional[datetime] = None
    saleExpenses: float = 0
    saleExpenseDetails: List[SaleExpenseDetail] = []
    totalSales: float = 0
    totalCogs: float = 0
    totalProfit: float = 0
    notes: str = ""

    @field_validator('items', 'saleExpenseDetails', mode='before')
    @classmethod
    def default_missing_list(cls, value):
        return value or []

    @field_validator('saleExpenses', 'totalSales', 'totalCogs', 'totalProfit', mode='before')
    @classmethod
    def default_missing_amount(cls, value):
        return 0 if value is None else value

    @field_validator('notes', mode='before')
    @classmethod
    def default_missing_notes(cls, value):
        return value or ""


class ReconciliationData(BaseModel):
    """Stock adjustments made for a sale mutation."""
    applied: Dict[str, int] = {}
    skipped: List[str] = []
    failed: Dict[str, str] = {}


class SaleMutationData(BaseModel):
    """Result of recording, editing or deleting a sale."""
    saleId: str
    status: LedgerStatus
    totalSales: Optional[float] = None
    totalProfit: Optional[float] = None
    itemCount: Optional[int] = None
    reconciliation: ReconciliationData


class SaleDetailData(BaseModel):
    """
    Container for a single sale.
    """
    item: SaleInDB


class SalesData(PaginationResponse[SaleInDB]):
    """
    Represents a paginated list of sales.
    """
    pass


class SaleMutationResponse(JSendResponse[SaleMutationData]):
    """Response model for sale mutations."""
    pass


class SaleResponse(JSendResponse[SaleDetailData]):
    """Response model for a single sale."""
    pass


class SalesListResponse(JSendResponse[SalesData]):
    """Response model for sale listings."""
    pass
