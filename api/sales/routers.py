"""
This module contains the FastAPI routers for sales endpoints.
"""
import calendar
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Path, Depends
from fastapi.responses import JSONResponse
from starlette import status

from api.auth.dependencies import get_current_user_id, get_business_id
from api.common.errors import error_response
from api.common.logging import get_logger
from api.common.schemas import JSendResponse
from api.sales.schemas import (
    SaleCreate, SaleDetailData, SaleMutationResponse, SaleResponse, SalesListResponse
)
from api.sales.services import LedgerResult, SaleLedger, get_sale_ledger

logger = get_logger(__name__)

router = APIRouter()


def parse_flexible_date(date_str: Optional[str], is_end_date: bool = False) -> Optional[datetime]:
    """
    Parse flexible date formats:
    - "2025" -> January 1, 2025 00:00:00 (start) or December 31, 2025 23:59:59.999999 (end)
    - "2025-07" -> July 1, 2025 00:00:00 (start) or July 31, 2025 23:59:59.999999 (end)
    - "2025-07-16" -> July 16, 2025 00:00:00 (start) or July 16, 2025 23:59:59.999999 (end)

    Args:
        date_str: The date string to parse
        is_end_date: If True, returns end of period; if False, returns start of period
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    try:
        # Year only (e.g., "2025")
        if len(date_str) == 4 and date_str.isdigit():
            year = int(date_str)
            if is_end_date:
                return datetime(year, 12, 31, 23, 59, 59, 999999)
            return datetime(year, 1, 1)

        # Year-Month (e.g., "2025-07")
        if len(date_str) == 7 and date_str.count('-') == 1:
            year, month = map(int, date_str.split('-'))
            if is_end_date:
                last_day = calendar.monthrange(year, month)[1]
                return datetime(year, month, last_day, 23, 59, 59, 999999)
            return datetime(year, month, 1)

        # Full date (e.g., "2025-07-16")
        if len(date_str) == 10 and date_str.count('-') == 2:
            parsed_date = datetime.strptime(date_str, "%Y-%m-%d")
            if is_end_date:
                return parsed_date.replace(hour=23, minute=59, second=59, microsecond=999999)
            return parsed_date
    except ValueError:
        pass

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid date format: {date_str}. Supported formats: YYYY, YYYY-MM, YYYY-MM-DD"
    )


def mutation_response(result: LedgerResult, success_status: int = status.HTTP_200_OK,
                      message: Optional[str] = None) -> JSONResponse:
    """
    Render a ledger result. A partial success is reported with 207 so clients
    can tell it apart from both success and failure.
    """
    if result.is_partial:
        body = JSendResponse.success(
            result.to_data(),
            message="Sale saved but stock could not be fully reconciled",
        )
        return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=body.model_dump(mode="json"))

    body = JSendResponse.success(result.to_data(), message=message)
    return JSONResponse(status_code=success_status, content=body.model_dump(mode="json"))


@router.get("", response_model=SalesListResponse)
async def list_sales(
        page: int = Query(1, ge=1, description="Page number"),
        size: int = Query(50, ge=1, le=500, description="Items per page"),
        start_date: Optional[str] = Query(None, alias="startDate", description="YYYY, YYYY-MM, or YYYY-MM-DD"),
        end_date: Optional[str] = Query(None, alias="endDate", description="YYYY, YYYY-MM, or YYYY-MM-DD"),
        product_id: Optional[str] = Query(None, alias="productId", description="Only sales of this product"),
        user_id: str = Depends(get_current_user_id),
        business_id: str = Depends(get_business_id),
        ledger: SaleLedger = Depends(get_sale_ledger)
):
    """
    Get the sales of the selected business, newest first.

    Returns:
        JSendResponse containing sales data and pagination info
    """
    try:
        sales_data = await ledger.list_sales(
            user_id,
            business_id,
            start_date=parse_flexible_date(start_date),
            end_date=parse_flexible_date(end_date, is_end_date=True),
            product_id=product_id,
            page=page,
            size=size,
        )
        return JSendResponse.success(sales_data)
    except HTTPException as e:
        return error_response(e)


@router.get("/{sale_id}", response_model=SaleResponse)
async def get_sale(
        sale_id: str = Path(..., description="The ID of the sale to retrieve"),
        user_id: str = Depends(get_current_user_id),
        ledger: SaleLedger = Depends(get_sale_ledger)
):
    """
    Get a single sale owned by the current user.
    """
    try:
        sale = await ledger.get_sale(user_id, sale_id)
        return JSendResponse.success(SaleDetailData(item=sale))
    except HTTPException as e:
        return error_response(e)


@router.post("", response_model=SaleMutationResponse, status_code=status.HTTP_201_CREATED)
async def record_sale(
        sale: SaleCreate,
        user_id: str = Depends(get_current_user_id),
        business_id: str = Depends(get_business_id),
        ledger: SaleLedger = Depends(get_sale_ledger)
):
    """
    Record a single-item or multi-item sale and take its quantities out of stock.

    Returns:
        201 with the new sale ID and totals, or 207 if the sale was saved
        but stock could not be fully reconciled
    """
    try:
        result = await ledger.record_sale(
            user_id,
            business_id,
            sale.to_lines(),
            sale.saleExpenses,
            sale.notes,
            customer_name=sale.customerName,
            sale_date=sale.saleDate,
            sale_expense_details=sale.saleExpenseDetails,
            single_item=not sale.is_multi_item,
        )
        message = "Multi-product sale recorded successfully" if sale.is_multi_item else "Sale recorded successfully"
        return mutation_response(result, status.HTTP_201_CREATED, message)
    except HTTPException as e:
        return error_response(e)


@router.put("/{sale_id}", response_model=SaleMutationResponse)
async def edit_sale(
        sale: SaleCreate,
        sale_id: str = Path(..., description="The ID of the sale to edit"),
        user_id: str = Depends(get_current_user_id),
        ledger: SaleLedger = Depends(get_sale_ledger)
):
    """
    Edit a sale; stock moves by the difference between old and new quantities.
    """
    try:
        result = await ledger.edit_sale(
            user_id,
            sale_id,
            sale.to_lines(),
            sale.saleExpenses,
            sale.notes,
            customer_name=sale.customerName,
            sale_date=sale.saleDate,
            sale_expense_details=sale.saleExpenseDetails,
            single_item=not sale.is_multi_item,
        )
        return mutation_response(result, message="Sale updated successfully")
    except HTTPException as e:
        return error_response(e)


@router.delete("/{sale_id}", response_model=SaleMutationResponse)
async def delete_sale(
        sale_id: str = Path(..., description="The ID of the sale to delete"),
        user_id: str = Depends(get_current_user_id),
        ledger: SaleLedger = Depends(get_sale_ledger)
):
    """
    Delete a sale and return its quantities to stock.
    """
    try:
        result = await ledger.delete_sale(user_id, sale_id)
        return mutation_response(result, message="Sale deleted successfully")
    except HTTPException as e:
        return error_response(e)
