"""
Firestore client for the document-backed event store
"""

from __future__ import annotations

import base64
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import firebase_admin
from firebase_admin import credentials, firestore

from app.core.config import settings

logger = logging.getLogger(__name__)

ServiceAccount = Dict[str, Any]


def _from_json(raw: str) -> ServiceAccount:
    return json.loads(raw)


def _from_base64(raw: str) -> ServiceAccount:
    return json.loads(base64.b64decode(raw).decode("utf-8"))


def _from_file(path: str) -> Optional[ServiceAccount]:
    source = Path(path)
    if not source.is_file():
        logger.warning(f"Firebase credentials file {path} does not exist")
        return None
    return json.loads(source.read_text(encoding="utf-8"))


# First configured source that yields a service account wins
CREDENTIAL_SOURCES: Tuple[Tuple[str, Callable[[str], Optional[ServiceAccount]]], ...] = (
    ("FIREBASE_CREDENTIALS_JSON", _from_json),
    ("FIREBASE_CREDENTIALS_B64", _from_base64),
    ("FIREBASE_CREDENTIALS_FILE", _from_file),
)


def service_account_info() -> Optional[ServiceAccount]:
    for setting, load in CREDENTIAL_SOURCES:
        raw = getattr(settings, setting)
        if not raw:
            continue
        info = load(raw)
        if info:
            logger.info(f"Firebase service account loaded from {setting}")
            return info
    return None


@lru_cache(maxsize=1)
def get_firestore_client():
    """Firestore client holding the events and users collections.

    Returns None while events are kept in the SQL database.
    """
    if not settings.USE_FIREBASE:
        return None

    if not firebase_admin._apps:
        info = service_account_info()
        if info is None:
            names = ", ".join(setting for setting, _ in CREDENTIAL_SOURCES)
            raise RuntimeError(f"USE_FIREBASE is set but no Firebase credentials were found. Set one of {names}")
        firebase_admin.initialize_app(credentials.Certificate(info))

    return firestore.client()
