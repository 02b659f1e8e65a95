"""
Typed failures raised by the ledger and the stores behind it.

Every failure is an HTTPException so routers can report it through the
JSend error envelope without translating it again.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from google.api_core import exceptions as google_exceptions

from api.common.schemas import JSendResponse


class LedgerError(HTTPException):
    """Base class for sale ledger failures."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "LEDGER_ERROR"

    def __init__(self, detail: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.data = data or {}


class SaleValidationError(LedgerError):
    """User-correctable input problem; nothing was written."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ForbiddenError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class InsufficientStockError(LedgerError):
    """Requested quantity exceeds the stock available for a product."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, product_name: Optional[str], available: int, requested: int):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for product {label}. Available: {available}, Requested: {requested}",
            data={
                "productId": product_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class StoreUnavailableError(LedgerError):
    """Transient infrastructure failure; the caller may retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"


class ConflictError(LedgerError):
    """The document changed after it was read; nothing was written."""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


TRANSIENT_STORE_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.Aborted,
    google_exceptions.RetryError,
    asyncio.TimeoutError,
)


@asynccontextmanager
async def store_errors(action: str, not_found: str = "Document not found"):
    """
    Translate document store failures into typed ledger errors.

    A missing document becomes NotFoundError, a failed write precondition
    becomes ConflictError and transport failures become StoreUnavailableError.
    Anything else (bad arguments, permissions) propagates unchanged.

    Args:
        action: Short description of the store call, used in the message
        not_found: Message used when the target document does not exist
    """
    try:
        yield
    except google_exceptions.NotFound as exc:
        raise NotFoundError(not_found) from exc
    except google_exceptions.FailedPrecondition as exc:
        raise ConflictError(
            f"Cannot {action}: it was changed by another request. Please reload and try again.",
            data={"reason": str(exc)},
        ) from exc
    except TRANSIENT_STORE_ERRORS as exc:
        raise StoreUnavailableError(
            f"Cannot {action}: database unavailable. Please try again later.",
            data={"reason": str(exc)},
        ) from exc


def error_response(exc: HTTPException) -> JSONResponse:
    """Render an HTTPException as a JSend error envelope with its status code."""
    body = JSendResponse.error(
        message=str(exc.detail),
        code=exc.status_code,
        data=getattr(exc, 'data', None) or None,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))
