from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Path, Depends

from api.auth.dependencies import get_current_user_id, get_business_id
from api.common.errors import NotFoundError, error_response
from api.common.schemas import JSendResponse
from api.common.scope import resolve_scope
from api.common.utils import paginate
from api.products.schemas import ProductDetailData, ProductsData, ProductResponse, ProductListResponse
from api.products.services import ProductStore, get_product_store

router = APIRouter()


@router.get("", response_model=ProductListResponse)
async def list_products(
        page: int = Query(1, ge=1, description="Page number"),
        size: int = Query(100, ge=1, le=1000, description="Items per page"),
        search: Optional[str] = Query(None, description="Matches name, SKU or category"),
        category: Optional[str] = Query(None, description="Category filter ('all' for every category)"),
        low_stock: bool = Query(False, alias="lowStock", description="Only products running low"),
        user_id: str = Depends(get_current_user_id),
        business_id: str = Depends(get_business_id),
        products: ProductStore = Depends(get_product_store)
):
    """
    Get the products of the selected business with their current stock.

    Returns:
        JSendResponse containing products data and pagination info
    """
    try:
        items = await products.list_products(
            user_id, resolve_scope(business_id), search=search, category=category, low_stock=low_stock
        )
        page_items, pages = paginate(items, page, size)
        return JSendResponse.success(ProductsData(
            items=page_items,
            total=len(items),
            page=page,
            size=size,
            pages=pages
        ))
    except HTTPException as e:
        return error_response(e)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
        product_id: str = Path(..., description="The ID of the product to retrieve"),
        user_id: str = Depends(get_current_user_id),
        products: ProductStore = Depends(get_product_store)
):
    """
    Get a product by ID.
    """
    try:
        product = await products.get_by_id(user_id, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        return JSendResponse.success(ProductDetailData(item=product))
    except HTTPException as e:
        return error_response(e)
