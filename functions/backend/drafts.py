"""
Transient storage for offer drafts.

A draft is built from the offer form, previewed, and only then committed to
the offers collection. Drafts expire on their own; nothing else cleans them up.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Tuple

import redis
from redis import exceptions as redis_exceptions

from shared.json_utils import (
    encode_json_safe,
    record_from_document,
    record_to_document,
)
from shared.types import OfferDraft


class OfferDraftStore(Protocol):
    """Minimal interface for holding drafts between build and commit."""

    def save(self, draft: OfferDraft) -> None:
        ...

    def load(self, draft_id: str) -> Optional[OfferDraft]:
        ...

    def discard(self, draft_id: str) -> bool:
        ...


def _encode(draft: OfferDraft) -> dict:
    return encode_json_safe(record_to_document(draft))


def _decode(payload: dict) -> OfferDraft:
    return record_from_document(OfferDraft, payload)


@dataclass
class InMemoryDraftStore:
    """Dict-backed store with per-entry expiry."""

    ttl_seconds: int = 3600
    items: Dict[str, Tuple[float, dict]] = field(default_factory=dict)

    def save(self, draft: OfferDraft) -> None:
        now = time.time()
        for draft_id in [k for k, (expires_at, _) in self.items.items() if expires_at <= now]:
            del self.items[draft_id]
        self.items[draft.draft_id] = (now + self.ttl_seconds, _encode(draft))

    def load(self, draft_id: str) -> Optional[OfferDraft]:
        entry = self.items.get(draft_id)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= time.time():
            self.items.pop(draft_id, None)
            return None
        return _decode(payload)

    def discard(self, draft_id: str) -> bool:
        return self.items.pop(draft_id, None) is not None

    def reset(self) -> None:
        self.items.clear()


@dataclass
class RedisDraftStore:
    """Redis-backed store; each draft is a JSON string with a TTL."""

    url: str
    prefix: str = "greenskill:drafts"
    ttl_seconds: int = 3600

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, draft_id: str) -> str:
        return f"{self.prefix}:{draft_id}"

    def _call(self, method: str, *args):
        try:
            return getattr(self.client, method)(*args)
        except redis_exceptions.ConnectionError:
            # Connection resets can happen on managed Redis; reconnect once.
            self.client = redis.Redis.from_url(self.url)
            return getattr(self.client, method)(*args)

    def save(self, draft: OfferDraft) -> None:
        self._call(
            "setex",
            self._key(draft.draft_id),
            self.ttl_seconds,
            json.dumps(_encode(draft)),
        )

    def load(self, draft_id: str) -> Optional[OfferDraft]:
        raw = self._call("get", self._key(draft_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return _decode(json.loads(raw))

    def discard(self, draft_id: str) -> bool:
        return bool(self._call("delete", self._key(draft_id)))
