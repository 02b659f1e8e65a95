"""
Application settings loaded from environment variables.

A local `.env` file is honoured for development; hosted environments
(e.g. Render) set the variables directly.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the API."""
    env: str = "production"
    firebase_credentials_json: Optional[str] = None
    firebase_credentials_file: Optional[str] = None
    products_collection: str = "products"
    sales_collection: str = "sales"
    default_business_id: str = "default"
    low_stock_threshold: int = 5
    hide_foreign_sales: bool = True
    log_level: str = "INFO"
    log_format: str = "console"

    @property
    def is_local(self) -> bool:
        return self.env == "local"


def load_settings() -> Settings:
    """Build settings from the current process environment."""
    load_dotenv()
    return Settings(
        env=os.environ.get("ENV", "production"),
        firebase_credentials_json=os.environ.get("FIREBASE_CREDENTIALS_JSON_CONTENT"),
        firebase_credentials_file=os.environ.get("FIREBASE_CREDENTIALS_FILE"),
        products_collection=os.environ.get("PRODUCTS_COLLECTION", "products"),
        sales_collection=os.environ.get("SALES_COLLECTION", "sales"),
        default_business_id=os.environ.get("DEFAULT_BUSINESS_ID", "default"),
        low_stock_threshold=int(os.environ.get("LOW_STOCK_THRESHOLD", 5)),
        hide_foreign_sales=_env_bool("HIDE_FOREIGN_SALES", True),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        log_format=os.environ.get("LOG_FORMAT", "console"),
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return load_settings()
