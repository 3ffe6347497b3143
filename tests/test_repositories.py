from datetime import datetime, timedelta, timezone

import pytest

import mongo_repository
import sql_repository
from conftest import build_mongo_repositories, build_sql_repositories, make_user
from repositories import DuplicateEmailError, generate_tracking_number, isoformat_utc
from schemas import Order, OrderItem, OrderStatus, Payment, PaymentMethod, PaymentStatus


def _order(customer_id: str, total: float = 20.0) -> Order:
    return Order(
        customer_id=customer_id,
        customer_name="Carol",
        customer_email="carol@example.com",
        items=[OrderItem(name="Widget", quantity=2, price=total / 2)],
        total=total,
        shipping_address="1 Main St",
    )


def _payment(customer_id: str, order_id: str = "order-1", amount: float = 20.0) -> Payment:
    return Payment(
        order_id=order_id,
        customer_id=customer_id,
        customer_email="carol@example.com",
        amount=amount,
        currency="USD",
        method=PaymentMethod.STRIPE,
        status=PaymentStatus.PENDING,
    )


@pytest.fixture()
def advance_clock(monkeypatch):
    """Return a callable that moves the repositories' clock one hour ahead."""

    def advance():
        future = (datetime.now(timezone.utc) + timedelta(hours=1)).replace(microsecond=0)
        monkeypatch.setattr(mongo_repository, "utcnow", lambda: future)
        monkeypatch.setattr(sql_repository, "utcnow", lambda: future)
        return future

    return advance


def test_create_user_returns_string_id_and_timestamps(repositories):
    user = make_user(repositories, "dave@example.com", verified=False)
    assert isinstance(user["id"], str)
    assert user["created_at"] == user["updated_at"]
    assert user["is_verified"] is False
    assert user["role"] == "user"

    found = repositories.users.find_by_id(user["id"])
    assert found["email"] == "dave@example.com"
    assert found["id"] == user["id"]


def test_created_timestamps_match_stored_record(repositories):
    order = repositories.orders.create(_order("alice"))
    stored = repositories.orders.find_by_id(order["id"])
    assert stored["created_at"] == order["created_at"]
    assert stored["updated_at"] == order["updated_at"]

    user = make_user(repositories, "erin@example.com")
    assert repositories.users.find_by_id(user["id"])["created_at"] == user["created_at"]


def test_money_amounts_are_stored_exactly(repositories):
    order = repositories.orders.create(_order("alice", total=34.98))
    stored = repositories.orders.find_by_id(order["id"])
    assert isinstance(stored["total"], float)
    assert stored["total"] == 34.98

    repositories.payments.create(_payment("alice", amount=19.99))
    (payment,) = repositories.payments.find("alice")
    assert isinstance(payment["amount"], float)
    assert payment["amount"] == 19.99


def test_duplicate_email_is_rejected(repositories):
    make_user(repositories, "dave@example.com")
    with pytest.raises(DuplicateEmailError):
        make_user(repositories, "dave@example.com")


def test_find_user_by_unknown_or_malformed_id(repositories):
    assert repositories.users.find_by_id("not-an-id") is None
    assert repositories.users.find_by_email("nobody@example.com") is None


def test_update_user_bumps_updated_at(repositories, advance_clock):
    user = make_user(repositories, "dave@example.com", verified=False)
    later = advance_clock()

    assert repositories.users.update(user["id"], {"is_verified": True}) is True

    found = repositories.users.find_by_id(user["id"])
    assert found["is_verified"] is True
    assert found["updated_at"] == isoformat_utc(later)
    assert found["created_at"] != found["updated_at"]


def test_update_user_rejects_unknown_fields_and_roles(repositories):
    user = make_user(repositories, "dave@example.com")
    with pytest.raises(ValueError):
        repositories.users.update(user["id"], {"email": "other@example.com"})
    with pytest.raises(ValueError):
        repositories.users.update(user["id"], {"role": "superuser"})
    assert repositories.users.update("missing", {"name": "X"}) is False


def test_orders_are_listed_newest_first_and_filtered(repositories):
    first = repositories.orders.create(_order("alice", 10.0))
    second = repositories.orders.create(_order("bob", 30.0))
    third = repositories.orders.create(_order("alice", 50.0))

    assert [o["id"] for o in repositories.orders.find()] == [third["id"], second["id"], first["id"]]
    assert [o["id"] for o in repositories.orders.find("alice")] == [third["id"], first["id"]]
    assert repositories.orders.find("nobody") == []


def test_order_items_round_trip(repositories):
    created = repositories.orders.create(_order("alice", 20.0))
    found = repositories.orders.find_by_id(created["id"])
    assert found["items"] == [{"name": "Widget", "quantity": 2, "price": 10.0}]
    assert found["status"] == "pending"
    assert found["tracking_number"] is None


def test_shipping_assigns_tracking_number(repositories):
    order = repositories.orders.create(_order("alice"))

    assert repositories.orders.update_status(order["id"], OrderStatus.PROCESSING) is True
    assert repositories.orders.find_by_id(order["id"])["tracking_number"] is None

    assert repositories.orders.update_status(order["id"], OrderStatus.SHIPPED) is True
    shipped = repositories.orders.find_by_id(order["id"])
    assert shipped["status"] == "shipped"
    assert shipped["tracking_number"].startswith("TRK")


def test_later_transition_keeps_tracking_number(repositories):
    order = repositories.orders.create(_order("alice"))
    repositories.orders.update_status(order["id"], "shipped")
    tracking = repositories.orders.find_by_id(order["id"])["tracking_number"]

    repositories.orders.update_status(order["id"], "delivered")
    delivered = repositories.orders.find_by_id(order["id"])
    assert delivered["status"] == "delivered"
    assert delivered["tracking_number"] == tracking


def test_order_status_outside_enum_is_rejected(repositories):
    order = repositories.orders.create(_order("alice"))
    with pytest.raises(ValueError):
        repositories.orders.update_status(order["id"], "lost")
    assert repositories.orders.find_by_id(order["id"])["status"] == "pending"


def test_update_status_of_missing_order(repositories):
    assert repositories.orders.update_status("12345", OrderStatus.CANCELLED) is False
    assert repositories.orders.update_status("000000000000000000000000", OrderStatus.CANCELLED) is False


def test_payments_filter_by_customer(repositories):
    mine = repositories.payments.create(_payment("alice"))
    repositories.payments.create(_payment("bob"))

    assert [p["id"] for p in repositories.payments.find("alice")] == [mine["id"]]
    assert len(repositories.payments.find()) == 2


def test_payment_status_keeps_transaction_id(repositories):
    payment = repositories.payments.create(_payment("alice"))

    assert repositories.payments.update_status(payment["id"], PaymentStatus.COMPLETED, "txn_1") is True
    assert repositories.payments.update_status(payment["id"], PaymentStatus.REFUNDED) is True

    (stored,) = repositories.payments.find("alice")
    assert stored["status"] == "refunded"
    assert stored["transaction_id"] == "txn_1"

    with pytest.raises(ValueError):
        repositories.payments.update_status(payment["id"], "chargeback")


def test_backends_list_equivalent_orders():
    sql, mongo = build_sql_repositories(), build_mongo_repositories()
    try:
        listings = []
        for repos in (sql, mongo):
            ids = [repos.orders.create(_order("alice", total))["id"] for total in (10.0, 25.5, 40.0)]
            repos.orders.update_status(ids[1], OrderStatus.SHIPPED)
            listed = repos.orders.find("alice")
            assert [o["id"] for o in listed] == list(reversed(ids))
            for record in listed:
                assert repos.orders.find_by_id(record["id"])["id"] == record["id"]
            listings.append([(o["status"], o["total"]) for o in listed])
        assert listings[0] == listings[1]
    finally:
        sql.close()
        mongo.close()


def test_tracking_numbers_differ():
    assert generate_tracking_number() != generate_tracking_number()
