"""
Firebase initialization and Firestore client access.
"""
import json

import firebase_admin
from firebase_admin import credentials, firestore_async

from api.common.config import get_settings
from api.common.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CREDENTIALS_FILE = "firebase-adminsdk.json"


def init_firebase() -> None:
    """
    Initialize the default Firebase app once per process.

    Priority: FIREBASE_CREDENTIALS_JSON_CONTENT env var (for production),
    then a local service account key file (for local development).
    """
    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    settings = get_settings()
    if settings.firebase_credentials_json:
        try:
            cred = credentials.Certificate(json.loads(settings.firebase_credentials_json))
        except json.JSONDecodeError as e:
            logger.critical("firebase_credentials_invalid_json", error=str(e))
            raise
        logger.info("firebase_initialized", source="env")
    else:
        local_cred_file = settings.firebase_credentials_file or DEFAULT_CREDENTIALS_FILE
        try:
            cred = credentials.Certificate(local_cred_file)
        except FileNotFoundError:
            logger.critical("firebase_credentials_missing", file=local_cred_file)
            raise
        logger.info("firebase_initialized", source="file", file=local_cred_file)

    firebase_admin.initialize_app(cred)


def get_firestore_client():
    """Get the async Firestore client bound to the default Firebase app."""
    return firestore_async.client()
