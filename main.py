import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.common.config import get_settings
from api.common.database import init_firebase
from api.common.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_firebase()
    logger.info("app_started", env=get_settings().env)
    yield


app = FastAPI(title="Entrepreneur Tracker API", lifespan=lifespan)

from api.products.routers import router as products_router
from api.sales.routers import router as sales_router

app.include_router(products_router, prefix="/products", tags=["products"])
app.include_router(sales_router, prefix="/sales", tags=["sales"])


@app.get("/")
def read_root():
    """Root endpoint for the API.
    Returns:
        A simple message indicating the API is running.
    """
    return {"message": "Entrepreneur Tracker API"}


if __name__ == "__main__":
    # Set port from environment variable or default to 8000
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
