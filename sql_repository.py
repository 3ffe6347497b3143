"""PostgreSQL implementations of the repository interfaces (SQLAlchemy Core)."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

from database import SQLConnection
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
from schemas import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus, User, UserRole

metadata = MetaData()


def _one_of(column: str, enum: Type[Enum], table: str) -> CheckConstraint:
    allowed = ", ".join(f"'{member.value}'" for member in enum)
    return CheckConstraint(f"{column} IN ({allowed})", name=f"ck_{table}_{column}")


def _timestamps() -> List[Column]:
    return [
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
    ]


users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("phone", String(32)),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(16), nullable=False, default=UserRole.USER.value),
    Column("is_verified", Boolean, nullable=False, default=False),
    *_timestamps(),
    _one_of("role", UserRole, "users"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("customer_id", String(64), nullable=False, index=True),
    Column("customer_name", String(255), nullable=False),
    Column("customer_email", String(255), nullable=False),
    Column("items", JSON, nullable=False),
    Column("total", Numeric(10, 2, asdecimal=False), nullable=False),
    Column("status", String(16), nullable=False, index=True),
    Column("shipping_address", String(1024), nullable=False),
    Column("tracking_number", String(64)),
    *_timestamps(),
    _one_of("status", OrderStatus, "orders"),
)

payments = Table(
    "payments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String(64), nullable=False, index=True),
    Column("customer_id", String(64), index=True),
    Column("customer_email", String(255), nullable=False),
    Column("amount", Numeric(10, 2, asdecimal=False), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("method", String(16), nullable=False),
    Column("status", String(16), nullable=False),
    Column("transaction_id", String(128)),
    *_timestamps(),
    _one_of("method", PaymentMethod, "payments"),
    _one_of("status", PaymentStatus, "payments"),
)


def to_primary_key(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def serialize_row(row: Mapping[str, Any]) -> Record:
    record = dict(row)
    record["id"] = str(record["id"])
    for k, v in list(record.items()):
        if isinstance(v, datetime):
            record[k] = isoformat_utc(v)
    return record


class _SQLRepository:
    table: Table

    def __init__(self, connection: SQLConnection):
        self.connection = connection

    def prepare(self) -> None:
        self.table.create(self.connection.engine, checkfirst=True)

    def _insert(self, data: Dict[str, Any]) -> Record:
        now = utcnow()
        values = {**data, "created_at": now, "updated_at": now}
        with self.connection.engine.begin() as conn:
            result = conn.execute(insert(self.table).values(**values))
            values["id"] = result.inserted_primary_key[0]
        return serialize_row(values)

    def _find_one(self, record_id: str) -> Optional[Record]:
        pk = to_primary_key(record_id)
        if pk is None:
            return None
        return self._first(self.table.c.id == pk)

    def _first(self, condition) -> Optional[Record]:
        with self.connection.engine.connect() as conn:
            row = conn.execute(select(self.table).where(condition)).mappings().first()
        return serialize_row(row) if row else None

    def _find(self, customer_id: Optional[str]) -> List[Record]:
        stmt = select(self.table).order_by(self.table.c.created_at.desc(), self.table.c.id.desc())
        if customer_id:
            stmt = stmt.where(self.table.c.customer_id == customer_id)
        with self.connection.engine.connect() as conn:
            return [serialize_row(row) for row in conn.execute(stmt).mappings()]

    def _set(self, record_id: str, values: Dict[str, Any]) -> bool:
        pk = to_primary_key(record_id)
        if pk is None:
            return False
        stmt = update(self.table).where(self.table.c.id == pk).values(**values, updated_at=utcnow())
        with self.connection.engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0


class SQLUserRepository(_SQLRepository, UserRepository):
    table = users

    def create(self, user: User) -> Record:
        try:
            return self._insert(user.model_dump(mode="json"))
        except IntegrityError as exc:
            if self.find_by_email(user.email) is not None:
                raise DuplicateEmailError(user.email) from exc
            raise

    def find_by_email(self, email: str) -> Optional[Record]:
        return self._first(users.c.email == email)

    def find_by_id(self, user_id: str) -> Optional[Record]:
        return self._find_one(user_id)

    def update(self, user_id: str, changes: Dict[str, Any]) -> bool:
        return self._set(user_id, clean_user_changes(changes))


class SQLOrderRepository(_SQLRepository, OrderRepository):
    table = orders

    def create(self, order: Order) -> Record:
        return self._insert(order.model_dump(mode="json"))

    def find(self, customer_id: Optional[str] = None) -> List[Record]:
        return self._find(customer_id)

    def find_by_id(self, order_id: str) -> Optional[Record]:
        return self._find_one(order_id)

    def update_status(self, order_id: str, status: OrderStatus) -> bool:
        status = OrderStatus(status)
        values: Dict[str, Any] = {"status": status.value}
        if status is OrderStatus.SHIPPED:
            values["tracking_number"] = generate_tracking_number()
        return self._set(order_id, values)


class SQLPaymentRepository(_SQLRepository, PaymentRepository):
    table = payments

    def create(self, payment: Payment) -> Record:
        return self._insert(payment.model_dump(mode="json"))

    def find(self, customer_id: Optional[str] = None) -> List[Record]:
        return self._find(customer_id)

    def update_status(self, payment_id: str, status: PaymentStatus, transaction_id: Optional[str] = None) -> bool:
        values: Dict[str, Any] = {"status": PaymentStatus(status).value}
        if transaction_id:
            values["transaction_id"] = transaction_id
        return self._set(payment_id, values)
