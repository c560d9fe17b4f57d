import itertools
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_json
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .exceptions import StoredValueError, WriteConflict

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _adapter(tp):
    return TypeAdapter(tp)


@dataclass(frozen=True)
class Subscription:
    id: int
    callback: Callable[[str], None]
    keys: Optional[frozenset] = None

    def wants(self, key: str) -> bool:
        return self.keys is None or key in self.keys


class StorageBus:
    """
    Shared key-value store plus change notification.

    Each key is one document in a Mongo collection holding the JSON-encoded
    value and a version counter. Every write notifies the subscribers of that
    key in this process; subscribers re-read whatever keys they care about.

    Args:
        collection: pymongo (or compatible) collection used as the store.
    """

    def __init__(self, collection):
        self.collection = collection
        self._subscriptions = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # ---------- writes ----------
    def put(self, key: str, value: Any, expected_version: Optional[int] = None) -> int:
        """
        Encode and store a value, then notify subscribers.

        Without expected_version the write is last-write-wins. With it, the
        write only lands if the stored version still matches (0 = absent),
        otherwise WriteConflict is raised and nothing is notified.

        Returns the new version of the key.
        """
        encoded = to_json(value).decode("utf-8")
        update = {
            "$set": {"value": encoded, "updated_at": datetime.now(timezone.utc)},
            "$inc": {"version": 1},
        }

        if expected_version is None:
            doc = self.collection.find_one_and_update(
                {"_id": key}, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        elif expected_version == 0:
            try:
                self.collection.insert_one({
                    "_id": key,
                    "value": encoded,
                    "version": 1,
                    "updated_at": datetime.now(timezone.utc),
                })
            except DuplicateKeyError:
                raise WriteConflict(key, expected_version, self.version(key))
            doc = {"version": 1}
        else:
            doc = self.collection.find_one_and_update(
                {"_id": key, "version": expected_version}, update,
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                raise WriteConflict(key, expected_version, self.version(key))

        logger.debug(f"Stored '{key}' (version {doc['version']})")
        self._notify(key)
        return doc["version"]

    # ---------- reads ----------
    def version(self, key: str) -> int:
        doc = self.collection.find_one({"_id": key}, {"version": 1})
        return doc.get("version", 0) if doc else 0

    def get(self, key: str) -> Any:
        """Decoded JSON stored under key, or None when the key is absent."""
        doc = self.collection.find_one({"_id": key})
        if doc is None or doc.get("value") is None:
            return None
        try:
            return json.loads(doc["value"])
        except (TypeError, ValueError) as e:
            raise StoredValueError(key, e)

    def load(self, key: str, tp) -> Any:
        """Stored value validated against tp (a pydantic model or type), None when absent."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return _adapter(tp).validate_python(raw)
        except ValidationError as e:
            raise StoredValueError(key, e)

    def read_or_default(self, key: str, tp, default: Any = None) -> Any:
        try:
            value = self.load(key, tp)
        except StoredValueError as e:
            logger.warning(f"[✗] {e}; using default")
            return default
        return default if value is None else value

    # ---------- notifications ----------
    def subscribe(self, callback: Callable[[str], None], keys: Optional[Iterable[str]] = None) -> Subscription:
        subscription = Subscription(
            id=next(self._ids),
            callback=callback,
            keys=frozenset(keys) if keys is not None else None,
        )
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)

    def _notify(self, key: str) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.wants(key)]
        for subscription in targets:
            try:
                subscription.callback(key)
            except Exception:
                logger.exception(f"[✗] Subscriber {subscription.id} failed handling '{key}'")
