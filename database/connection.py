"""
Firestore connection management.

Initializes the Firebase Admin SDK once per process and hands out the async
Firestore client used by every service.

Usage:
    from database.connection import get_firestore_client

    db = get_firestore_client()
    snapshot = await db.collection("branches").document(branch_id).get()
"""

import logging
from functools import lru_cache

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.cloud.firestore import AsyncClient

from shared.config import get_settings

logger = logging.getLogger(__name__)


def _initialize_firebase_app() -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    settings = get_settings()
    options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None

    if settings.FIREBASE_CREDENTIALS_JSON:
        cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_JSON)
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase Admin initialized with service account credentials")
    else:
        cred = credentials.ApplicationDefault()
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase Admin initialized with application default credentials")

    return app


@lru_cache
def get_firestore_client() -> AsyncClient:
    """
    Get the process-wide async Firestore client.

    Returns:
        google.cloud.firestore.AsyncClient bound to the default Firebase app
    """
    app = _initialize_firebase_app()
    return firestore_async.client(app)
