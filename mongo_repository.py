"""MongoDB implementations of the repository interfaces."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from database import MongoConnection
from repositories import (
    DuplicateEmailError,
    OrderRepository,
    PaymentRepository,
    Record,
    UserRepository,
    clean_user_changes,
    generate_tracking_number,
    isoformat_utc,
    utcnow,
)
from schemas import Order, OrderStatus, Payment, PaymentStatus, User

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def to_object_id(value: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Record]:
    if not doc:
        return None
    doc["id"] = str(doc.pop("_id"))
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = isoformat_utc(v)
    return doc


class _MongoRepository:
    collection_name = ""

    def __init__(self, connection: MongoConnection):
        self.connection = connection

    @property
    def collection(self) -> Collection:
        return self.connection.db[self.collection_name]

    def _insert(self, data: Dict[str, Any]) -> Record:
        # BSON dates hold milliseconds; truncate so the returned record matches what is stored.
        now = utcnow()
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)
        doc = {**data, "created_at": now, "updated_at": now}
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        return serialize_doc(doc)

    def _find_one(self, record_id: str) -> Optional[Record]:
        oid = to_object_id(record_id)
        if oid is None:
            return None
        return serialize_doc(self.collection.find_one({"_id": oid}))

    def _find(self, query: Dict[str, Any]) -> List[Record]:
        return [serialize_doc(doc) for doc in self.collection.find(query).sort(NEWEST_FIRST)]

    def _set(self, record_id: str, updates: Dict[str, Any]) -> bool:
        oid = to_object_id(record_id)
        if oid is None:
            return False
        updates = {**updates, "updated_at": utcnow()}
        result = self.collection.update_one({"_id": oid}, {"$set": updates})
        return result.matched_count > 0


class MongoUserRepository(_MongoRepository, UserRepository):
    collection_name = "users"

    def prepare(self) -> None:
        self.collection.create_index([("email", ASCENDING)], unique=True)

    def create(self, user: User) -> Record:
        try:
            return self._insert(user.model_dump(mode="json"))
        except DuplicateKeyError as exc:
            raise DuplicateEmailError(user.email) from exc

    def find_by_email(self, email: str) -> Optional[Record]:
        return serialize_doc(self.collection.find_one({"email": email}))

    def find_by_id(self, user_id: str) -> Optional[Record]:
        return self._find_one(user_id)

    def update(self, user_id: str, changes: Dict[str, Any]) -> bool:
        return self._set(user_id, clean_user_changes(changes))


class MongoOrderRepository(_MongoRepository, OrderRepository):
    collection_name = "orders"

    def prepare(self) -> None:
        self.collection.create_index([("customer_id", ASCENDING)])
        self.collection.create_index([("status", ASCENDING)])

    def create(self, order: Order) -> Record:
        return self._insert(order.model_dump(mode="json"))

    def find(self, customer_id: Optional[str] = None) -> List[Record]:
        query = {"customer_id": customer_id} if customer_id else {}
        return self._find(query)

    def find_by_id(self, order_id: str) -> Optional[Record]:
        return self._find_one(order_id)

    def update_status(self, order_id: str, status: OrderStatus) -> bool:
        status = OrderStatus(status)
        updates: Dict[str, Any] = {"status": status.value}
        if status is OrderStatus.SHIPPED:
            updates["tracking_number"] = generate_tracking_number()
        return self._set(order_id, updates)


class MongoPaymentRepository(_MongoRepository, PaymentRepository):
    collection_name = "payments"

    def prepare(self) -> None:
        self.collection.create_index([("order_id", ASCENDING)])
        self.collection.create_index([("customer_id", ASCENDING)])

    def create(self, payment: Payment) -> Record:
        return self._insert(payment.model_dump(mode="json"))

    def find(self, customer_id: Optional[str] = None) -> List[Record]:
        query = {"customer_id": customer_id} if customer_id else {}
        return self._find(query)

    def update_status(self, payment_id: str, status: PaymentStatus, transaction_id: Optional[str] = None) -> bool:
        updates: Dict[str, Any] = {"status": PaymentStatus(status).value}
        if transaction_id:
            updates["transaction_id"] = transaction_id
        return self._set(payment_id, updates)
