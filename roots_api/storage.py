from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .config import FIRESTORE_DATABASE, FIRESTORE_PROJECT

PROFILES = "profiles"
FRIENDS = "chat_friends"
MESSAGES = "chat_messages"
TRAVEL_LOGS = "travel_logs"
TASKS = "verification_tasks"
COUPONS = "coupons"
REDEEMED_COUPONS = "redeemed_coupons"
CACHED_NEWS = "cached_news"
FAVORITES = "favorite_attractions"

_client: Optional[firestore.Client] = None


def _get_client() -> firestore.Client:
    global _client
    if _client is None:
        _client = firestore.Client(project=FIRESTORE_PROJECT, database=FIRESTORE_DATABASE)
    return _client


def collection(name: str) -> firestore.CollectionReference:
    return _get_client().collection(name)


def new_id() -> str:
    return uuid4().hex


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_dict(snapshot) -> dict[str, Any]:
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data


def _query(name: str, filters: Optional[dict[str, Any]] = None):
    query = collection(name)
    for field, value in (filters or {}).items():
        query = query.where(filter=FieldFilter(field, "==", value))
    return query


def get_document(name: str, doc_id: str) -> dict[str, Any] | None:
    snapshot = collection(name).document(doc_id).get()
    if snapshot.exists:
        return _as_dict(snapshot)
    return None


def find_many(
    name: str,
    filters: Optional[dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> list[dict[str, Any]]:
    # Ordering happens here rather than in the query so equality filters
    # never need a composite index.
    docs = [_as_dict(snapshot) for snapshot in _query(name, filters).stream()]
    if order_by:
        # Documents missing the field go last in either direction.
        docs.sort(
            key=lambda doc: ((doc.get(order_by) is None) != descending, doc.get(order_by) or ""),
            reverse=descending,
        )
    if limit is not None:
        docs = docs[:limit]
    return docs


def find_one(name: str, filters: dict[str, Any]) -> dict[str, Any] | None:
    for snapshot in _query(name, filters).limit(1).stream():
        return _as_dict(snapshot)
    return None


def count_documents(name: str, filters: Optional[dict[str, Any]] = None) -> int:
    return sum(1 for _ in _query(name, filters).stream())


def insert_document(name: str, payload: dict[str, Any], doc_id: Optional[str] = None) -> str:
    doc_id = doc_id or new_id()
    collection(name).document(doc_id).set(payload)
    return doc_id


def set_document(name: str, doc_id: str, payload: dict[str, Any], merge: bool = True) -> None:
    collection(name).document(doc_id).set(payload, merge=merge)


def update_document(name: str, doc_id: str, fields: dict[str, Any]) -> None:
    collection(name).document(doc_id).update(fields)


def increment(value: int) -> firestore.Increment:
    return firestore.Increment(value)


def delete_document(name: str, doc_id: str) -> None:
    collection(name).document(doc_id).delete()
