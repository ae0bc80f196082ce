from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from canteen_engine import main as main_module
from canteen_engine.core.security import create_access_token
from canteen_engine.db import session as db_session
from canteen_engine.db.base import Base
from canteen_engine.main import app
from canteen_engine.models import CreditAccount, MenuItem, PenaltySettings, Restaurant, RestaurantOpeningHours, User
from canteen_engine.services.clock import FixedClock, get_clock

# Monday 08:00; the restaurant is open Monday to Friday 9-17.
NOW = datetime(2024, 1, 15, 8, 0)
PICKUP = "2024-01-15T12:00:00"


def _prepare_db(tmp_path: Path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'api.db'}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "SessionLocal", testing_session_local)
    monkeypatch.setattr(main_module, "engine", engine)
    monkeypatch.setattr(main_module, "SessionLocal", testing_session_local)
    return testing_session_local


def _seed(session_local, balance: str = "50.00") -> dict[str, int]:
    with session_local() as db:
        restaurant = Restaurant(name="Bistro", is_active=True)
        db.add(restaurant)
        db.flush()
        for weekday in range(1, 6):
            db.add(RestaurantOpeningHours(restaurant_id=restaurant.id, weekday=weekday, is_open=True, start_hour=9, end_hour=17))
        customer = User(username="customer", role="CUSTOMER")
        other = User(username="other", role="CUSTOMER")
        owner = User(username="owner", role="OWNER", restaurant_id=restaurant.id)
        staff = User(username="staff", role="STAFF", restaurant_id=restaurant.id, topup_access=True)
        db.add_all([customer, other, owner, staff])
        db.flush()
        lunch = MenuItem(restaurant_id=restaurant.id, name="Lunch set", base_price=Decimal("80.00"), is_active=True)
        soup = MenuItem(
            restaurant_id=restaurant.id,
            name="Soup",
            base_price=Decimal("10.00"),
            discount_percentage=Decimal("20"),
            discount_valid_until=NOW + timedelta(hours=1),
            is_active=True,
        )
        db.add_all([lunch, soup])
        db.add(CreditAccount(customer_id=customer.id, balance=Decimal(balance)))
        db.commit()
        return {
            "restaurant": restaurant.id,
            "customer": customer.id,
            "other": other.id,
            "owner": owner.id,
            "staff": staff.id,
            "lunch": lunch.id,
            "soup": soup.id,
        }


def _auth(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


def _client(clock: FixedClock) -> TestClient:
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)


def test_validate_collection_time(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local)

    try:
        with _client(FixedClock(NOW)) as client:
            ok = client.get(f"/api/v1/schedule/{ids['restaurant']}/validate", params={"candidate": "2024-01-15T10:00:00"})
            late = client.get(f"/api/v1/schedule/{ids['restaurant']}/validate", params={"candidate": "2024-01-15T18:00:00"})
            missing = client.get("/api/v1/schedule/999/validate", params={"candidate": "2024-01-15T10:00:00"})
    finally:
        app.dependency_overrides.clear()

    assert ok.status_code == 200
    assert ok.json()["ok"] is True
    assert ok.json()["min_date"] == "2024-01-15"
    body = late.json()
    assert body["ok"] is False
    assert body["reason"] == "outside hours, open 9-17"
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"] == "NotFound"


def test_price_cart_applies_discount(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local)

    try:
        with _client(FixedClock(NOW)) as client:
            response = client.post(
                "/api/v1/cart/price",
                json={"items": [{"menu_item_id": ids["soup"], "quantity": 3}, {"menu_item_id": ids["lunch"]}]},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert body["restaurant_id"] == ids["restaurant"]
    assert Decimal(body["lines"][0]["effective_price"]) == Decimal("8.00")
    assert Decimal(body["total"]) == Decimal("104.00")


def test_escalated_checkout_loan_and_cancellation(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local)
    clock = FixedClock(NOW)

    try:
        with _client(clock) as client:
            checkout = client.post(
                "/api/v1/orders",
                json={"items": [{"menu_item_id": ids["lunch"], "quantity": 1}], "collection_time": PICKUP},
                headers=_auth(ids["customer"]),
            )
            assert checkout.status_code == 202
            escalation = checkout.json()
            assert Decimal(escalation["shortfall"]) == Decimal("30.00")

            denied = client.post(
                "/api/v1/loans/approve",
                json={"escalation_id": escalation["escalation_id"]},
                headers=_auth(ids["customer"]),
            )
            assert denied.status_code == 403

            approved = client.post(
                "/api/v1/loans/approve",
                json={"escalation_id": escalation["escalation_id"]},
                headers=_auth(ids["staff"]),
            )
            assert approved.status_code == 201
            loan = approved.json()
            assert Decimal(loan["loan_amount"]) == Decimal("30.00")
            assert loan["status"] == "ACTIVE"

            balance = client.get("/api/v1/accounts/me", headers=_auth(ids["customer"]))
            assert Decimal(balance.json()["balance"]) == Decimal("-30.00")

            clock.advance(minutes=45)
            too_soon = client.put(
                f"/api/v1/loans/{loan['id']}/status",
                json={"status": "CANCELLED"},
                headers=_auth(ids["staff"]),
            )
            assert too_soon.status_code == 409
            assert too_soon.json()["detail"] == {
                "message": "15 minutes remaining",
                "error": "TooSoonToCancel",
                "remaining_minutes": 15,
            }

            clock.advance(minutes=16)
            cancelled = client.put(
                f"/api/v1/loans/{loan['id']}/status",
                json={"status": "CANCELLED", "notes": "Order disputed"},
                headers=_auth(ids["staff"]),
            )
            assert cancelled.status_code == 200
            assert cancelled.json()["status"] == "CANCELLED"

            again = client.put(
                f"/api/v1/loans/{loan['id']}/status",
                json={"status": "PAID"},
                headers=_auth(ids["staff"]),
            )
            assert again.status_code == 409
            assert again.json()["detail"]["current_status"] == "CANCELLED"

            balance = client.get("/api/v1/accounts/me", headers=_auth(ids["customer"]))
            assert Decimal(balance.json()["balance"]) == Decimal("0.00")
    finally:
        app.dependency_overrides.clear()


def test_covered_checkout_cancel_and_access(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local, balance="100.00")

    try:
        with _client(FixedClock(NOW)) as client:
            created = client.post(
                "/api/v1/orders",
                json={"items": [{"menu_item_id": ids["lunch"], "quantity": 1}], "collection_time": PICKUP},
                headers=_auth(ids["customer"]),
            )
            assert created.status_code == 201
            order = created.json()
            assert order["status"] == "PENDING"
            assert order["items"][0]["name"] == "Lunch set"

            hidden = client.get(f"/api/v1/orders/{order['id']}", headers=_auth(ids["other"]))
            assert hidden.status_code == 404

            mine = client.get("/api/v1/orders/me", headers=_auth(ids["customer"]))
            assert [row["id"] for row in mine.json()] == [order["id"]]

            quote = client.get(f"/api/v1/orders/{order['id']}/cancellation-quote", headers=_auth(ids["customer"]))
            assert Decimal(quote.json()["refund_amount"]) == Decimal("80.00")

            cancelled = client.post(f"/api/v1/orders/{order['id']}/cancel", headers=_auth(ids["customer"]))
            assert cancelled.status_code == 200
            assert cancelled.json()["status"] == "CANCELLED"
            assert Decimal(cancelled.json()["refund_amount"]) == Decimal("80.00")

            twice = client.post(f"/api/v1/orders/{order['id']}/cancel", headers=_auth(ids["customer"]))
            assert twice.status_code == 409

            balance = client.get("/api/v1/accounts/me", headers=_auth(ids["customer"]))
            assert Decimal(balance.json()["balance"]) == Decimal("100.00")
    finally:
        app.dependency_overrides.clear()


def test_late_cancel_requires_confirmed_penalty(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local, balance="100.00")
    with session_local() as db:
        db.add(
            PenaltySettings(
                restaurant_id=ids["restaurant"], enabled=True, penalty_rate=Decimal("10"), time_threshold_hours=6
            )
        )
        db.commit()

    try:
        with _client(FixedClock(NOW)) as client:
            created = client.post(
                "/api/v1/orders",
                json={"items": [{"menu_item_id": ids["lunch"], "quantity": 1}], "collection_time": PICKUP},
                headers=_auth(ids["customer"]),
            )
            order_id = created.json()["id"]

            unconfirmed = client.post(f"/api/v1/orders/{order_id}/cancel", headers=_auth(ids["customer"]))
            assert unconfirmed.status_code == 409
            detail = unconfirmed.json()["detail"]
            assert detail["error"] == "PenaltyConfirmationRequired"
            assert detail["requires_penalty"] is True
            assert Decimal(detail["refund_amount"]) == Decimal("72.00")
            assert Decimal(detail["penalty_amount"]) == Decimal("8.00")

            still_pending = client.get(f"/api/v1/orders/{order_id}", headers=_auth(ids["customer"]))
            assert still_pending.json()["status"] == "PENDING"

            confirmed = client.post(
                f"/api/v1/orders/{order_id}/cancel",
                json={"confirm_penalty": True},
                headers=_auth(ids["customer"]),
            )
            assert confirmed.status_code == 200
            assert confirmed.json()["status"] == "CANCELLED"
            assert Decimal(confirmed.json()["refund_amount"]) == Decimal("72.00")

            balance = client.get("/api/v1/accounts/me", headers=_auth(ids["customer"]))
            assert Decimal(balance.json()["balance"]) == Decimal("92.00")
    finally:
        app.dependency_overrides.clear()


def test_past_collection_time_is_rejected(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local, balance="100.00")

    try:
        with _client(FixedClock(NOW)) as client:
            response = client.post(
                "/api/v1/orders",
                json={"items": [{"menu_item_id": ids["lunch"], "quantity": 1}], "collection_time": "2024-01-15T07:00:00"},
                headers=_auth(ids["customer"]),
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "ScheduleViolation"


def test_top_up_and_ledger(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local)

    try:
        with _client(FixedClock(NOW)) as client:
            forbidden = client.post(
                f"/api/v1/accounts/{ids['customer']}/topups",
                json={"amount": "25.00"},
                headers=_auth(ids["customer"]),
            )
            invalid = client.post(
                f"/api/v1/accounts/{ids['customer']}/topups",
                json={"amount": "-5"},
                headers=_auth(ids["staff"]),
            )
            created = client.post(
                f"/api/v1/accounts/{ids['customer']}/topups",
                json={"amount": "25.00"},
                headers=_auth(ids["staff"]),
            )
            history = client.get(f"/api/v1/accounts/{ids['customer']}/ledger", headers=_auth(ids["staff"]))
            snooping = client.get(f"/api/v1/accounts/{ids['customer']}/ledger", headers=_auth(ids["other"]))
    finally:
        app.dependency_overrides.clear()

    assert forbidden.status_code == 403
    assert invalid.status_code == 422
    assert created.status_code == 201
    assert Decimal(created.json()["balance_after"]) == Decimal("75.00")
    assert [entry["reason"] for entry in history.json()] == ["TOPUP"]
    assert snooping.status_code == 403


def test_restaurant_settings_require_owner(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local)
    url = f"/api/v1/restaurants/{ids['restaurant']}"
    saturday = {"days": [{"weekday": 6, "open": True, "start_hour": 10, "end_hour": 14}]}

    try:
        with _client(FixedClock(NOW)) as client:
            by_staff = client.put(f"{url}/opening-hours", json=saturday, headers=_auth(ids["staff"]))
            inverted = client.put(
                f"{url}/opening-hours",
                json={"days": [{"weekday": 6, "open": True, "start_hour": 14, "end_hour": 10}]},
                headers=_auth(ids["owner"]),
            )
            by_owner = client.put(f"{url}/opening-hours", json=saturday, headers=_auth(ids["owner"]))
            hours = client.get(f"{url}/opening-hours")

            penalty = client.put(
                f"{url}/penalty-settings",
                json={"enabled": True, "penalty_rate": "15", "time_threshold_hours": 4, "allow_negative_balance": False},
                headers=_auth(ids["owner"]),
            )
            current = client.get(f"{url}/penalty-settings")
    finally:
        app.dependency_overrides.clear()

    assert by_staff.status_code == 403
    assert inverted.status_code == 422
    assert by_owner.status_code == 200
    days = {day["weekday"]: day for day in hours.json()["days"]}
    assert days[6] == {"weekday": 6, "open": True, "start_hour": 10, "end_hour": 14}
    assert days[0]["open"] is False
    assert days[1]["start_hour"] == 9
    assert penalty.status_code == 200
    assert current.json()["enabled"] is True
    assert current.json()["time_threshold_hours"] == 4
    assert Decimal(current.json()["penalty_rate"]) == Decimal("15")


def test_loan_listing_is_scoped(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    ids = _seed(session_local)
    order = {"items": [{"menu_item_id": ids["lunch"], "quantity": 1}], "collection_time": PICKUP}

    try:
        with _client(FixedClock(NOW)) as client:
            escalation = client.post("/api/v1/orders", json=order, headers=_auth(ids["customer"])).json()
            loan = client.post(
                "/api/v1/loans/approve",
                json={"escalation_id": escalation["escalation_id"]},
                headers=_auth(ids["owner"]),
            ).json()
            note = client.post(
                f"/api/v1/loans/{loan['id']}/notes",
                json={"channel": "PHONE", "text": "Will pay on Friday"},
                headers=_auth(ids["staff"]),
            )

            own = client.get("/api/v1/loans", headers=_auth(ids["customer"]))
            foreign = client.get("/api/v1/loans", headers=_auth(ids["other"]))
            stats = client.get("/api/v1/loans/stats", headers=_auth(ids["staff"]))
            settled = client.post(
                "/api/v1/loans/settle",
                json={"loan_ids": [loan["id"]], "payment_method": "CASH"},
                headers=_auth(ids["staff"]),
            )
            detail = client.get(f"/api/v1/loans/{loan['id']}", headers=_auth(ids["customer"]))
            hidden = client.get(f"/api/v1/loans/{loan['id']}", headers=_auth(ids["other"]))
    finally:
        app.dependency_overrides.clear()

    assert note.status_code == 201
    assert own.json()["total"] == 1
    assert foreign.json()["total"] == 0
    assert stats.json()["active"]["count"] == 1
    assert settled.status_code == 200
    assert settled.json()["settled_loans"] == 1
    assert Decimal(settled.json()["new_balance"]) == Decimal("-30.00")
    assert detail.json()["status"] == "PAID"
    assert [entry["channel"] for entry in detail.json()["notes"]] == ["SYSTEM", "PHONE", "PAYMENT"]
    assert hidden.status_code == 404


def test_health(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
