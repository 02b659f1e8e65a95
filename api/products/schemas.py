"""
This module defines the Pydantic models used for product data.
These models are used for response validation and serialization.
"""

from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, field_validator

from api.common.schemas import TimestampMixin, PaginationResponse, JSendResponse


class ProductBase(BaseModel):
    """
    Base model for product data that is common to stored and response models.
    """
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    category: str = ""
    sku: Optional[str] = None
    costPrice: float = 0
    salePrice: float = 0
    currentStock: Optional[int] = None  # Legacy documents may hold null or omit it
    customFields: Dict[str, Any] = {}

    @field_validator('costPrice', 'salePrice', mode='before')
    @classmethod
    def default_missing_price(cls, value):
        """Treat null prices as zero."""
        return 0 if value is None else value

    @field_validator('name', 'category', mode='before')
    @classmethod
    def default_missing_text(cls, value):
        return value or ""

    @field_validator('customFields', mode='before')
    @classmethod
    def default_missing_fields(cls, value):
        return value or {}

    @property
    def stock(self) -> int:
        """Current stock with missing values counted as zero."""
        return self.currentStock or 0


class ProductInDB(ProductBase, TimestampMixin):
    """
    Represents a product as stored in the database, including all metadata.
    """
    id: str
    userId: str
    businessId: Optional[str] = None


class ProductDetailData(BaseModel):
    """
    Container for a single product item.
    """
    item: ProductInDB


class ProductsData(PaginationResponse[ProductInDB]):
    """
    Represents a paginated list of products for response.
    """
    pass


class ProductResponse(JSendResponse[ProductDetailData]):
    """Response model for single product operations."""
    pass


class ProductListResponse(JSendResponse[ProductsData]):
    """Response model for product list operations."""
    pass
