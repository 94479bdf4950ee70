"""
Document database abstraction: Firestore, SQL (via SQLAlchemy) and an
in-memory test implementation.

Documents are plain dicts with camelCase keys. Every document read back
carries its id under "id"; the owner is stored under "userId".
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from typing import Dict, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, func, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend.errors import PermissionDeniedError
from backend.events import PERMISSION_ERROR, emitter
from backend.firebase import ensure_firebase_app
from shared.json_utils import encode_json_safe

logger = logging.getLogger(__name__)

OWNER_KEY = "userId"

SCHEMES_COLLECTION = "registration_schemas"
OFFERS_COLLECTION = "training_offers"
MODULES_COLLECTION = "modules"
TEMPLATES_COLLECTION = "offer_templates"


class DbClient(Protocol):
    """Interface for document access."""

    def add_document(self, collection: str, data: dict) -> str:
        ...

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        ...

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def query_by_owner(self, collection: str, owner_id: str) -> list[dict]:
        ...

    def count_by_owner(self, collection: str, owner_id: str) -> int:
        ...

    def delete_document(self, collection: str, doc_id: str) -> bool:
        ...


def _with_id(doc_id: str, data: dict) -> dict:
    document = dict(data)
    document["id"] = doc_id
    return document


def _strip_id(data: dict) -> dict:
    return {k: v for k, v in data.items() if k != "id"}


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def add_document(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(collection)[doc_id] = copy.deepcopy(_strip_id(data))
        return doc_id

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        docs = self._collection(collection)
        payload = copy.deepcopy(_strip_id(data))
        if merge and doc_id in docs:
            docs[doc_id].update(payload)
        else:
            docs[doc_id] = payload

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        stored = self._collection(collection).get(doc_id)
        if stored is None:
            return None
        return _with_id(doc_id, copy.deepcopy(stored))

    def query_by_owner(self, collection: str, owner_id: str) -> list[dict]:
        return [
            _with_id(doc_id, copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
            if data.get(OWNER_KEY) == owner_id
        ]

    def count_by_owner(self, collection: str, owner_id: str) -> int:
        return sum(
            1
            for data in self._collection(collection).values()
            if data.get(OWNER_KEY) == owner_id
        )

    def delete_document(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()


class FirestoreDbClient:
    """
    Firestore-backed implementation using the firebase_admin SDK.

    Permission failures are published on the process-wide emitter before
    being raised as PermissionDeniedError.
    """

    def __init__(
        self,
        project_id: str | None = None,
        credentials_path: str | None = None,
        client=None,
    ):
        if client is not None:
            self._client = client
            return

        ensure_firebase_app(project_id, credentials_path)
        self._client = firestore.client()

    def _guard(self, operation: str, collection: str, fn):
        try:
            return fn()
        except google_exceptions.PermissionDenied as e:
            logger.warning("Permission denied on %s in %s: %s", operation, collection, e)
            context = {"operation": operation, "collection": collection, "error": str(e)}
            emitter.emit(PERMISSION_ERROR, context)
            raise PermissionDeniedError(
                f"Missing permission to {operation} in {collection}"
            ) from e

    def add_document(self, collection: str, data: dict) -> str:
        def _add():
            _, doc_ref = self._client.collection(collection).add(_strip_id(data))
            return doc_ref.id

        return self._guard("create", collection, _add)

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        doc_ref = self._client.collection(collection).document(doc_id)
        self._guard(
            "write", collection, lambda: doc_ref.set(_strip_id(data), merge=merge)
        )

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        doc_ref = self._client.collection(collection).document(doc_id)
        snapshot = self._guard("read", collection, doc_ref.get)
        if not snapshot.exists:
            return None
        return _with_id(snapshot.id, snapshot.to_dict() or {})

    def _owner_query(self, collection: str, owner_id: str):
        return self._client.collection(collection).where(
            filter=FieldFilter(OWNER_KEY, "==", owner_id)
        )

    def query_by_owner(self, collection: str, owner_id: str) -> list[dict]:
        query = self._owner_query(collection, owner_id)
        snapshots = self._guard("list", collection, lambda: list(query.stream()))
        return [_with_id(s.id, s.to_dict() or {}) for s in snapshots]

    def count_by_owner(self, collection: str, owner_id: str) -> int:
        query = self._owner_query(collection, owner_id)
        result = self._guard("count", collection, lambda: query.count().get())
        # Aggregation results come back as [[AggregationResult(value=...)]].
        return int(result[0][0].value)

    def delete_document(self, collection: str, doc_id: str) -> bool:
        doc_ref = self._client.collection(collection).document(doc_id)
        snapshot = self._guard("read", collection, doc_ref.get)
        if not snapshot.exists:
            return False
        self._guard("delete", collection, doc_ref.delete)
        return True


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def add_document(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        payload = encode_json_safe(_strip_id(data))
        now = time.time()
        with self.Session() as session:
            session.add(
                DocumentRow(
                    collection=collection,
                    id=doc_id,
                    user_id=payload.get(OWNER_KEY),
                    data=payload,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()
        return doc_id

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = True
    ) -> None:
        payload = encode_json_safe(_strip_id(data))
        now = time.time()
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                # Reassign so SQLAlchemy sees the JSON column change.
                row.data = {**row.data, **payload} if merge else payload
                row.user_id = row.data.get(OWNER_KEY)
                row.updated_at = now
            else:
                session.add(
                    DocumentRow(
                        collection=collection,
                        id=doc_id,
                        user_id=payload.get(OWNER_KEY),
                        data=payload,
                        created_at=now,
                        updated_at=now,
                    )
                )
            session.commit()

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if not row:
                return None
            return _with_id(row.id, row.data)

    def query_by_owner(self, collection: str, owner_id: str) -> list[dict]:
        with self.Session() as session:
            stmt = (
                select(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.user_id == owner_id,
                )
                .order_by(DocumentRow.created_at.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [_with_id(row.id, row.data) for row in rows]

    def count_by_owner(self, collection: str, owner_id: str) -> int:
        with self.Session() as session:
            stmt = select(func.count()).select_from(DocumentRow).where(
                DocumentRow.collection == collection,
                DocumentRow.user_id == owner_id,
            )
            return int(session.execute(stmt).scalar_one())

    def delete_document(self, collection: str, doc_id: str) -> bool:
        with self.Session() as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    data = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
