import json

import firebase_admin
import structlog
from firebase_admin import credentials
from google.cloud.firestore_v1.async_client import AsyncClient

from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


def _load_credentials(settings: Settings):
    if settings.firebase_admin_sdk_json:
        try:
            return credentials.Certificate(json.loads(settings.firebase_admin_sdk_json))
        except json.JSONDecodeError:
            logger.error("PEPPER_FIREBASE_ADMIN_SDK_JSON is not valid JSON")
            raise
    if settings.firebase_admin_sdk_path:
        return credentials.Certificate(settings.firebase_admin_sdk_path)
    return None


def initialize_firebase_app() -> None:
    """
    Set up the Firebase Admin SDK once per process.

    Service account JSON (inline or file) wins; without it the SDK falls
    back to application default credentials or the emulator.
    """
    if firebase_admin._apps:
        return

    cred = _load_credentials(get_settings())
    if cred is None:
        logger.warning("No Firebase credentials configured, using application default credentials")
    try:
        firebase_admin.initialize_app(cred)
    except ValueError:
        # Another caller won the race
        pass


def get_firestore_async_client(settings: Settings | None = None) -> AsyncClient:
    """Async Firestore client for the configured project and database."""
    settings = settings or get_settings()
    initialize_firebase_app()
    return AsyncClient(project=settings.firestore_project, database=settings.firestore_database)
