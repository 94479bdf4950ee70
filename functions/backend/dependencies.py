"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.auth import (
    CurrentUser,
    FirebaseIdentityVerifier,
    IdentityVerifier,
    InvalidTokenError,
    StaticIdentityVerifier,
)
from backend.config import get_settings
from backend.db import DbClient, FirestoreDbClient, InMemoryDbClient, PostgresDbClient
from backend.drafts import InMemoryDraftStore, OfferDraftStore, RedisDraftStore
from backend.firebase import ensure_firebase_app
from backend.storage import CosStorageClient, InMemoryStorageClient, StorageClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_draft_store: OfferDraftStore | None = None
_identity_verifier: IdentityVerifier | None = None

_bearer = HTTPBearer(auto_error=False)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so documents persist across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _db_client = InMemoryDbClient()
    elif settings.firestore_project_id:
        _db_client = FirestoreDbClient(
            project_id=settings.firestore_project_id,
            credentials_path=settings.firebase_credentials_path,
        )
    elif settings.database_url:
        _db_client = PostgresDbClient(settings.database_url)
    else:
        logger.warning("No database configured; using in-memory documents")
        _db_client = InMemoryDbClient()
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cos_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_draft_store() -> OfferDraftStore:
    """
    Return a singleton store for offer drafts awaiting preview/commit.
    """
    global _draft_store
    if _draft_store:
        return _draft_store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _draft_store = RedisDraftStore(
            url=settings.redis_url,
            prefix=settings.redis_draft_prefix,
            ttl_seconds=settings.draft_ttl_seconds,
        )
    else:
        _draft_store = InMemoryDraftStore(ttl_seconds=settings.draft_ttl_seconds)
    return _draft_store


def get_identity_verifier() -> IdentityVerifier:
    global _identity_verifier
    if _identity_verifier:
        return _identity_verifier

    settings = get_settings()
    if settings.resolved_auth_backend == "firebase":
        app = ensure_firebase_app(
            settings.firestore_project_id, settings.firebase_credentials_path
        )
        _identity_verifier = FirebaseIdentityVerifier(app=app)
    else:
        logger.warning("Using static identity verifier; tokens are taken as uids")
        _identity_verifier = StaticIdentityVerifier()
    return _identity_verifier


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verifier.verify(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("Rejected bearer token: %s", e)
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
