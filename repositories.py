"""
Repository interfaces shared by the MongoDB and PostgreSQL backends.

Records cross this boundary as plain dicts: ``id`` is always a string,
timestamps are ISO-8601 strings in UTC and enum fields hold their values.
Lists are returned newest first.
"""
import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from schemas import Order, OrderStatus, Payment, PaymentStatus, User, UserRole

Record = Dict[str, Any]

USER_UPDATABLE_FIELDS = frozenset({"name", "phone", "password_hash", "role", "is_verified"})


class DuplicateEmailError(Exception):
    """Raised when a user with the same email is already stored."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    # Drivers hand back naive datetimes that are already UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def generate_tracking_number() -> str:
    return f"TRK{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


def clean_user_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - USER_UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update user fields: {', '.join(sorted(unknown))}")
    cleaned = dict(changes)
    if "role" in cleaned:
        cleaned["role"] = UserRole(cleaned["role"]).value
    if "is_verified" in cleaned:
        cleaned["is_verified"] = bool(cleaned["is_verified"])
    return cleaned


class UserRepository(ABC):
    def prepare(self) -> None:
        """Create indexes or tables the repository relies on."""

    @abstractmethod
    def create(self, user: User) -> Record:
        ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[Record]:
        ...

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def update(self, user_id: str, changes: Dict[str, Any]) -> bool:
        """Apply ``changes`` and bump ``updated_at``; False when no user matched."""


class OrderRepository(ABC):
    def prepare(self) -> None:
        """Create indexes or tables the repository relies on."""

    @abstractmethod
    def create(self, order: Order) -> Record:
        ...

    @abstractmethod
    def find(self, customer_id: Optional[str] = None) -> List[Record]:
        """All orders, or only the customer's when ``customer_id`` is given."""

    @abstractmethod
    def find_by_id(self, order_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def update_status(self, order_id: str, status: OrderStatus) -> bool:
        """Set the status; moving to ``shipped`` also assigns a tracking number."""


class PaymentRepository(ABC):
    def prepare(self) -> None:
        """Create indexes or tables the repository relies on."""

    @abstractmethod
    def create(self, payment: Payment) -> Record:
        ...

    @abstractmethod
    def find(self, customer_id: Optional[str] = None) -> List[Record]:
        ...

    @abstractmethod
    def update_status(self, payment_id: str, status: PaymentStatus, transaction_id: Optional[str] = None) -> bool:
        """Set the status, keeping the stored transaction id unless a new one is given."""
