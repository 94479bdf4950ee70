"""
Owner-scoped access to the four document collections.

Records are dataclasses from shared.types; documents are stored with
camelCase keys.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any, Generic, Type, TypeVar

from backend.db import (
    MODULES_COLLECTION,
    OFFERS_COLLECTION,
    OWNER_KEY,
    SCHEMES_COLLECTION,
    TEMPLATES_COLLECTION,
    DbClient,
)
from backend.errors import NotFoundError
from shared.json_utils import encode_dates, convert_keys, record_from_document
from shared.types import Module, Offer, OfferTemplate, Scheme

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fields a client update can never overwrite.
PROTECTED_FIELDS = {"id", "user_id", "created_at"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Repository(Generic[T]):
    def __init__(
        self, db: DbClient, collection: str, record_type: Type[T], label: str
    ):
        self.db = db
        self.collection = collection
        self.record_type = record_type
        self.label = label
        self._field_names = {f.name for f in dataclasses.fields(record_type)}

    def _to_document(self, fields: dict) -> dict:
        return convert_keys(encode_dates(fields), "snake_to_camel")

    def _from_document(self, document: dict) -> T:
        return record_from_document(self.record_type, document)

    def _load_owned(self, doc_id: str, user_id: str) -> dict:
        document = self.db.get_document(self.collection, doc_id)
        if document is None or document.get(OWNER_KEY) != user_id:
            raise NotFoundError(f"{self.label} not found")
        return document

    def create(self, user_id: str, fields: dict[str, Any]) -> T:
        now = _utcnow()
        payload = {
            k: v for k, v in fields.items() if k not in PROTECTED_FIELDS
        }
        payload["user_id"] = user_id
        payload["created_at"] = now
        if "updated_at" in self._field_names:
            payload["updated_at"] = now

        document = self._to_document(payload)
        doc_id = self.db.add_document(self.collection, document)
        logger.info("Created %s %s/%s", self.label, self.collection, doc_id)
        return self._from_document({**document, "id": doc_id})

    def get(self, doc_id: str, user_id: str) -> T:
        return self._from_document(self._load_owned(doc_id, user_id))

    def find(self, doc_id: str, user_id: str) -> T | None:
        try:
            return self.get(doc_id, user_id)
        except NotFoundError:
            return None

    def list(self, user_id: str) -> list[T]:
        records = [
            self._from_document(document)
            for document in self.db.query_by_owner(self.collection, user_id)
        ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def count(self, user_id: str) -> int:
        return self.db.count_by_owner(self.collection, user_id)

    def update(self, doc_id: str, user_id: str, changes: dict[str, Any]) -> T:
        self._load_owned(doc_id, user_id)
        payload = {
            k: v
            for k, v in changes.items()
            if k not in PROTECTED_FIELDS and k in self._field_names
        }
        if "updated_at" in self._field_names:
            payload["updated_at"] = _utcnow()
        if payload:
            self.db.set_document(
                self.collection, doc_id, self._to_document(payload), merge=True
            )
            logger.info(
                "Updated %s %s/%s (%s)",
                self.label,
                self.collection,
                doc_id,
                ", ".join(sorted(payload)),
            )
        return self.get(doc_id, user_id)

    def delete(self, doc_id: str, user_id: str) -> None:
        self._load_owned(doc_id, user_id)
        self.db.delete_document(self.collection, doc_id)
        logger.info("Deleted %s %s/%s", self.label, self.collection, doc_id)


def scheme_repository(db: DbClient) -> Repository[Scheme]:
    return Repository(db, SCHEMES_COLLECTION, Scheme, "Scheme")


def offer_repository(db: DbClient) -> Repository[Offer]:
    return Repository(db, OFFERS_COLLECTION, Offer, "Offer")


def module_repository(db: DbClient) -> Repository[Module]:
    return Repository(db, MODULES_COLLECTION, Module, "Module")


def template_repository(db: DbClient) -> Repository[OfferTemplate]:
    return Repository(db, TEMPLATES_COLLECTION, OfferTemplate, "Template")
