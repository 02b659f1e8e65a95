"""
Authentication dependencies for FastAPI endpoints.
"""
from typing import Optional

from fastapi import HTTPException, Header, Query
from firebase_admin import auth

from api.common.config import get_settings
from api.common.logging import get_logger

logger = get_logger(__name__)

LOCAL_USER_ID = "local-test-user-id"


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify user ID from Firebase ID token.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        str: User ID from verified token

    Raises:
        HTTPException: If token is invalid or missing
    """
    # Only bypass authentication for local development if no authorization header is provided
    if get_settings().is_local and not authorization:
        logger.debug("auth_bypassed_local")
        return LOCAL_USER_ID

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header is required"
        )

    try:
        # Extract token from "Bearer <token>" format
        token = authorization.replace("Bearer ", "")
        decoded_token = auth.verify_id_token(token)
        return decoded_token["uid"]
    except Exception as e:
        logger.info("token_verification_failed", error=str(e))
        raise HTTPException(
            status_code=401,
            detail=f"Invalid authentication token: {str(e)}"
        )


async def get_business_id(
        business_id: Optional[str] = Query(None, alias="businessId", description="Business to work in")
) -> str:
    """
    Business selected by the client; the default business when omitted.
    """
    return business_id or get_settings().default_business_id
