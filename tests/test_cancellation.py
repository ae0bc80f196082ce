from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from canteen_engine.db.base import Base
from canteen_engine.models import CreditAccount, LedgerEntry, Order, PenaltySettings, Restaurant, User
from canteen_engine.services.cancellation import cancel_order, quote_cancellation, quote_order_cancellation, refund_for_cancellation
from canteen_engine.services.errors import AlreadyTerminal, NotFound, PenaltyConfirmationRequired, Unauthorized
from canteen_engine.services.order_service import confirm_collection
from canteen_engine.services.penalty import PenaltyPolicy

NOW = datetime(2024, 1, 15, 8, 0)
POLICY = PenaltyPolicy(enabled=True, penalty_rate=Decimal("10"), time_threshold_hours=6, allow_negative_balance=False)


def _order(total: str = "200.00", hours_ahead: float = 4) -> Order:
    return Order(total=Decimal(total), collection_time=NOW + timedelta(hours=hours_ahead), status="PENDING")


def _prepare_db(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'cancellation.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _seed(session_local, hours_ahead: float = 4, penalty_rate: str = "10") -> dict[str, int]:
    with session_local() as db:
        restaurant = Restaurant(name="Bistro", is_active=True)
        db.add(restaurant)
        db.flush()
        db.add(
            PenaltySettings(
                restaurant_id=restaurant.id,
                enabled=True,
                penalty_rate=Decimal(penalty_rate),
                time_threshold_hours=6,
                allow_negative_balance=False,
            )
        )
        customer = User(username="customer", role="CUSTOMER")
        stranger = User(username="stranger", role="CUSTOMER")
        staff = User(username="staff", role="STAFF", restaurant_id=restaurant.id)
        db.add_all([customer, stranger, staff])
        db.flush()
        db.add(CreditAccount(customer_id=customer.id, balance=Decimal("0.00")))
        order = Order(
            customer_id=customer.id,
            restaurant_id=restaurant.id,
            total=Decimal("200.00"),
            collection_time=NOW + timedelta(hours=hours_ahead),
            status="PENDING",
            created_at=NOW - timedelta(days=1),
        )
        db.add(order)
        db.commit()
        return {"order": order.id, "customer": customer.id, "stranger": stranger.id, "staff": staff.id}


def _balance(db, customer_id: int) -> Decimal:
    return db.scalar(select(CreditAccount.balance).where(CreditAccount.customer_id == customer_id))


def test_late_cancellation_is_penalised() -> None:
    assert refund_for_cancellation(_order(hours_ahead=4), POLICY, NOW) == Decimal("180.00")
    assert refund_for_cancellation(_order(hours_ahead=8), POLICY, NOW) == Decimal("200.00")


def test_threshold_is_inclusive() -> None:
    assert refund_for_cancellation(_order(hours_ahead=6), POLICY, NOW) == Decimal("200.00")
    assert refund_for_cancellation(_order(hours_ahead=5.99), POLICY, NOW) == Decimal("180.00")


def test_disabled_policy_refunds_in_full() -> None:
    policy = PenaltyPolicy(enabled=False, penalty_rate=Decimal("50"), time_threshold_hours=6, allow_negative_balance=False)

    assert refund_for_cancellation(_order(hours_ahead=1), policy, NOW) == Decimal("200.00")


def test_refund_rounds_half_up_and_never_negative() -> None:
    odd = PenaltyPolicy(enabled=True, penalty_rate=Decimal("12.5"), time_threshold_hours=6, allow_negative_balance=False)
    full = PenaltyPolicy(enabled=True, penalty_rate=Decimal("100"), time_threshold_hours=6, allow_negative_balance=False)

    # 10.10 * 0.875 = 8.8375
    assert refund_for_cancellation(_order(total="10.10", hours_ahead=1), odd, NOW) == Decimal("8.84")
    assert refund_for_cancellation(_order(hours_ahead=1), full, NOW) == Decimal("0.00")


def test_refund_never_shrinks_as_notice_grows() -> None:
    refunds = [refund_for_cancellation(_order(hours_ahead=hours), POLICY, NOW) for hours in range(-2, 12)]

    assert refunds == sorted(refunds)
    assert all(Decimal("0") <= refund <= Decimal("200.00") for refund in refunds)


def test_quote_reports_penalty() -> None:
    quote = quote_cancellation(_order(hours_ahead=4), POLICY, NOW)

    assert quote.refund_amount == Decimal("180.00")
    assert quote.penalty_amount == Decimal("20.00")
    assert quote.requires_penalty is True
    assert quote.hours_until_collection == 4.0


def test_cancel_credits_refund_once(tmp_path: Path) -> None:
    session_local = _prepare_db(tmp_path)
    ids = _seed(session_local)

    with session_local() as db:
        customer = db.get(User, ids["customer"])
        order, refund = cancel_order(db, ids["order"], actor=customer, now=NOW, confirm_penalty=True)

        assert order.status == "CANCELLED"
        assert order.refund_amount == Decimal("180.00")
        assert refund == Decimal("180.00")
        assert _balance(db, ids["customer"]) == Decimal("180.00")

        with pytest.raises(AlreadyTerminal):
            cancel_order(db, ids["order"], actor=customer, now=NOW, confirm_penalty=True)
        assert _balance(db, ids["customer"]) == Decimal("180.00")
        entry = db.scalars(select(LedgerEntry)).one()
        assert (entry.reason, entry.order_id) == ("REFUND", ids["order"])


def test_full_penalty_leaves_balance_untouched(tmp_path: Path) -> None:
    session_local = _prepare_db(tmp_path)
    ids = _seed(session_local, penalty_rate="100")

    with session_local() as db:
        _, refund = cancel_order(db, ids["order"], actor=db.get(User, ids["staff"]), now=NOW, confirm_penalty=True)

        assert refund == Decimal("0.00")
        assert db.scalars(select(LedgerEntry)).all() == []


def test_other_customers_cannot_see_or_cancel(tmp_path: Path) -> None:
    session_local = _prepare_db(tmp_path)
    ids = _seed(session_local)

    with session_local() as db:
        stranger = db.get(User, ids["stranger"])
        with pytest.raises(NotFound):
            cancel_order(db, ids["order"], actor=stranger, now=NOW)
        with pytest.raises(NotFound):
            quote_order_cancellation(db, ids["order"], actor=stranger, now=NOW)
        assert db.get(Order, ids["order"]).status == "PENDING"


def test_collected_order_cannot_be_cancelled(tmp_path: Path) -> None:
    session_local = _prepare_db(tmp_path)
    ids = _seed(session_local)

    with session_local() as db:
        customer = db.get(User, ids["customer"])
        with pytest.raises(Unauthorized):
            confirm_collection(db, ids["order"], actor=customer, now=NOW)

        order = confirm_collection(db, ids["order"], actor=db.get(User, ids["staff"]), now=NOW)
        assert order.status == "SUCCESS"
        assert order.collected_at == NOW

        with pytest.raises(AlreadyTerminal):
            cancel_order(db, ids["order"], actor=customer, now=NOW)
        with pytest.raises(AlreadyTerminal):
            confirm_collection(db, ids["order"], actor=db.get(User, ids["staff"]), now=NOW)


def test_late_cancellation_waits_for_penalty_confirmation(tmp_path: Path) -> None:
    session_local = _prepare_db(tmp_path)
    ids = _seed(session_local)

    with session_local() as db:
        customer = db.get(User, ids["customer"])
        with pytest.raises(PenaltyConfirmationRequired) as exc_info:
            cancel_order(db, ids["order"], actor=customer, now=NOW)

        details = exc_info.value.details()
        assert details["requires_penalty"] is True
        assert Decimal(details["refund_amount"]) == Decimal("180.00")
        assert Decimal(details["penalty_amount"]) == Decimal("20.00")
        assert Decimal(details["penalty_rate"]) == Decimal("10")
        assert details["hours_until_collection"] == 4.0
        assert db.get(Order, ids["order"]).status == "PENDING"
        assert _balance(db, ids["customer"]) == Decimal("0.00")

        order, refund = cancel_order(db, ids["order"], actor=customer, now=NOW, confirm_penalty=True)
        assert order.status == "CANCELLED"
        assert refund == Decimal("180.00")


def test_early_cancellation_needs_no_confirmation(tmp_path: Path) -> None:
    session_local = _prepare_db(tmp_path)
    ids = _seed(session_local, hours_ahead=8)

    with session_local() as db:
        order, refund = cancel_order(db, ids["order"], actor=db.get(User, ids["customer"]), now=NOW)

        assert order.status == "CANCELLED"
        assert refund == Decimal("200.00")
        assert _balance(db, ids["customer"]) == Decimal("200.00")
