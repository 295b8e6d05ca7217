"""Document store used for every durable HOA entity.

Records are JSON bodies addressed by ``(collection, key)`` with a
server-assigned timestamp pair. ``DocumentStore`` is the contract the rest of
the app codes against; ``SqlDocumentStore`` keeps the documents in a single
SQLAlchemy table.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import DocumentRecord, utcnow

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """The store was unreachable or rejected the operation."""


class DocumentNotFound(DocumentStoreError):
    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"{collection}/{key} does not exist.")
        self.collection = collection
        self.key = key


class DocumentAlreadyExists(DocumentStoreError):
    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"{collection}/{key} already exists.")
        self.collection = collection
        self.key = key


@dataclass
class Document:
    collection: str
    key: str
    data: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self.data)
        payload.update(id=self.key, created_at=self.created_at, updated_at=self.updated_at)
        return payload


def _matches(data: Mapping[str, Any], where: Optional[Mapping[str, Any]]) -> bool:
    if not where:
        return True
    return all(data.get(name) == value for name, value in where.items())


@dataclass(eq=False)
class Subscription:
    """A live query: the snapshot at subscribe time plus every later one."""

    collection: str
    where: Optional[Dict[str, Any]]
    snapshot: List[Document]
    _hub: "SubscriptionHub" = field(repr=False)
    _pending: "queue.Queue[List[Document]]" = field(default_factory=queue.Queue, repr=False)
    active: bool = True

    def push(self, documents: List[Document]) -> None:
        if not self.active:
            return
        self.snapshot = documents
        self._pending.put(documents)

    def next_snapshot(self, timeout: Optional[float] = None) -> Optional[List[Document]]:
        """Return the next pushed snapshot, or None when none arrives in time."""
        try:
            if timeout == 0:
                return self._pending.get_nowait()
            return self._pending.get(timeout=timeout)
        except queue.Empty:
            return None

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._hub.remove(self)


class SubscriptionHub:
    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def add(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions[subscription.collection].append(subscription)
        logger.debug("Subscribed to %s where=%s", subscription.collection, subscription.where)

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            listeners = self._subscriptions.get(subscription.collection, [])
            if subscription in listeners:
                listeners.remove(subscription)
            if not listeners:
                self._subscriptions.pop(subscription.collection, None)

    def listeners(self, collection: str) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.get(collection, []))


subscription_hub = SubscriptionHub()


class DocumentStore(ABC):
    @abstractmethod
    def exists(self, collection: str, key: str) -> bool:
        pass

    @abstractmethod
    def find(self, collection: str, key: str) -> Optional[Document]:
        pass

    def get(self, collection: str, key: str) -> Document:
        document = self.find(collection, key)
        if document is None:
            raise DocumentNotFound(collection, key)
        return document

    @abstractmethod
    def put(self, collection: str, key: str, data: Mapping[str, Any]) -> Document:
        """Create or replace; both timestamps are reset."""

    @abstractmethod
    def create(self, collection: str, key: str, data: Mapping[str, Any]) -> Document:
        """Create only if absent, else raise DocumentAlreadyExists."""

    def add(self, collection: str, data: Mapping[str, Any]) -> Document:
        return self.create(collection, uuid.uuid4().hex, data)

    @abstractmethod
    def update(self, collection: str, key: str, changes: Mapping[str, Any]) -> Document:
        """Merge changes into an existing document."""

    @abstractmethod
    def delete(self, collection: str, key: str) -> None:
        pass

    @abstractmethod
    def query(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> List[Document]:
        pass

    @abstractmethod
    def subscribe(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> Subscription:
        pass


class SqlDocumentStore(DocumentStore):
    def __init__(self, session: Session, hub: SubscriptionHub = subscription_hub) -> None:
        self.session = session
        self.hub = hub

    @staticmethod
    def _to_document(record: DocumentRecord) -> Document:
        return Document(
            collection=record.collection,
            key=record.key,
            data=dict(record.data or {}),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def _load(self, collection: str, key: str) -> Optional[DocumentRecord]:
        return self.session.get(DocumentRecord, (collection, key))

    def _commit(self, collection: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self._publish(collection)

    def _publish(self, collection: str) -> None:
        for subscription in self.hub.listeners(collection):
            try:
                subscription.push(self.query(collection, subscription.where))
            except DocumentStoreError:
                logger.exception("Failed to refresh live query on %s", collection)

    def exists(self, collection: str, key: str) -> bool:
        return self.find(collection, key) is not None

    def find(self, collection: str, key: str) -> Optional[Document]:
        try:
            record = self._load(collection, key)
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to read {collection}/{key}.") from exc
        return self._to_document(record) if record else None

    def put(self, collection: str, key: str, data: Mapping[str, Any]) -> Document:
        now = utcnow()
        try:
            record = self._load(collection, key)
            if record is None:
                record = DocumentRecord(collection=collection, key=key)
                self.session.add(record)
            record.data = dict(data)
            record.created_at = now
            record.updated_at = now
            self._commit(collection)
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to write {collection}/{key}.") from exc
        return self._to_document(record)

    def create(self, collection: str, key: str, data: Mapping[str, Any]) -> Document:
        now = utcnow()
        record = DocumentRecord(collection=collection, key=key, data=dict(data), created_at=now, updated_at=now)
        try:
            if self._load(collection, key) is not None:
                raise DocumentAlreadyExists(collection, key)
            self.session.add(record)
            self._commit(collection)
        except IntegrityError as exc:
            raise DocumentAlreadyExists(collection, key) from exc
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to create {collection}/{key}.") from exc
        return self._to_document(record)

    def update(self, collection: str, key: str, changes: Mapping[str, Any]) -> Document:
        try:
            record = self._load(collection, key)
            if record is None:
                raise DocumentNotFound(collection, key)
            merged = dict(record.data or {})
            merged.update(changes)
            record.data = merged
            record.updated_at = utcnow()
            self._commit(collection)
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to update {collection}/{key}.") from exc
        return self._to_document(record)

    def delete(self, collection: str, key: str) -> None:
        try:
            record = self._load(collection, key)
            if record is None:
                return
            self.session.delete(record)
            self._commit(collection)
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to delete {collection}/{key}.") from exc

    def query(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> List[Document]:
        # Equality filters are applied to the decoded JSON bodies.
        try:
            records = (
                self.session.query(DocumentRecord)
                .filter(DocumentRecord.collection == collection)
                .order_by(DocumentRecord.created_at.asc(), DocumentRecord.key.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"Failed to query {collection}.") from exc
        return [self._to_document(record) for record in records if _matches(record.data or {}, where)]

    def subscribe(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> Subscription:
        filters = dict(where) if where else None
        subscription = Subscription(
            collection=collection,
            where=filters,
            snapshot=self.query(collection, filters),
            _hub=self.hub,
        )
        self.hub.add(subscription)
        return subscription
