from __future__ import annotations

from datetime import datetime, timezone

import pytest

from common.eventbus.core import Event
from common.eventbus.topics import TOPIC_ORDER
from common.events.order import OrderEventType, OrderType
from ledger_service.app.errors import ErrorCode, LedgerError
from ledger_service.app.event_handlers import order_handler
from ledger_service.app.models.package import PlanType

from ledger_service.tests.fakes import LedgerFixture, build_fixture, make_package


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeKafkaEventBus:
    instances: list["FakeKafkaEventBus"] = []
    next_event: Event | None = None

    def __init__(self, brokers: str) -> None:
        self.brokers = brokers
        self.subscribe_calls: list[dict] = []
        self.closed = False
        self.__class__.instances.append(self)

    def subscribe(self, *, group_id, topic, handler, stop_flag) -> None:
        self.subscribe_calls.append(
            {
                "group_id": group_id,
                "topic": topic,
                "handler": handler,
                "stop_flag": stop_flag,
            }
        )
        if self.__class__.next_event is not None:
            handler(self.__class__.next_event)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_fake_kafka_event_bus_state() -> None:
    FakeKafkaEventBus.instances = []
    FakeKafkaEventBus.next_event = None


def _paid_payload(**overrides) -> dict:
    payload = {
        "id": "order-evt-1",
        "type": OrderEventType.ORDER_PAID,
        "timestamp": "2025-03-01T12:00:00Z",
        "source": "order-service",
        "version": "1.0",
        "order_ref": "ord-1",
        "user_id": "user-1",
        "order_type": OrderType.CREDITS,
        "credits": 500,
    }
    payload.update(overrides)
    return payload


def _refund_payload(**overrides) -> dict:
    payload = {
        "id": "order-evt-2",
        "type": OrderEventType.ORDER_REFUNDED,
        "timestamp": "2025-03-02T12:00:00Z",
        "source": "order-service",
        "version": "1.0",
        "order_ref": "ord-1",
        "user_id": "user-1",
        "bucket": "independent",
        "amount": 200,
    }
    payload.update(overrides)
    return payload


def _handle(fixture: LedgerFixture, payload) -> None:
    order_handler.handle_order_event(
        Event(id="order-evt", payload=payload),
        fulfillment=fixture.services.order_fulfillment,
        clock=lambda: NOW,
    )


def test_paid_credit_order_is_applied_once() -> None:
    fixture = build_fixture()

    _handle(fixture, _paid_payload())
    _handle(fixture, _paid_payload())

    assert fixture.wallet("user-1").independent_tokens == 500
    rows = fixture.db.rows_for("user-1")
    assert len(rows) == 1
    assert rows[0].meta == {"source": "order", "event_id": "order-evt-1"}


def test_paid_package_order_assigns_package() -> None:
    fixture = build_fixture()
    fixture.package_repo.add(
        make_package("pkg-pro", PlanType.PRO, daily_points=3000, now=NOW)
    )

    _handle(
        fixture,
        _paid_payload(order_type=OrderType.PACKAGE, credits=None, package_id="pkg-pro"),
    )

    [active] = fixture.user_package_repo.active_rows("user-1")
    assert active.package_id == "pkg-pro"
    assert active.order_ref == "ord-1"
    assert fixture.wallet("user-1").package_tokens_remaining == 3000


def test_refund_revokes_granted_credits() -> None:
    fixture = build_fixture()
    _handle(fixture, _paid_payload())

    _handle(fixture, _refund_payload())

    assert fixture.wallet("user-1").independent_tokens == 300


def test_rejected_order_is_logged_not_retried(caplog: pytest.LogCaptureFixture) -> None:
    fixture = build_fixture()

    with caplog.at_level("ERROR"):
        _handle(
            fixture,
            _paid_payload(order_type=OrderType.PACKAGE, package_id="pkg-missing"),
        )

    assert "PACKAGE_NOT_FOUND" in caplog.text
    assert "user-1" not in fixture.db.wallets


def test_conflict_is_raised_for_redelivery() -> None:
    fixture = build_fixture()

    def racing_writer(user_id: str) -> None:
        current = fixture.db.wallets[user_id]
        fixture.db.wallets[user_id] = current.model_copy(
            update={"version": current.version + 1}
        )

    fixture.wallet_repo.before_update = racing_writer

    with pytest.raises(LedgerError) as exc_info:
        _handle(fixture, _paid_payload())

    assert exc_info.value.code == ErrorCode.CONFLICT
    assert fixture.db.rows_for("user-1") == []


def test_non_dict_payload_and_unknown_type_are_ignored() -> None:
    fixture = build_fixture()

    _handle(fixture, "not-a-dict")
    _handle(fixture, _paid_payload(type="order.created"))

    assert fixture.db.wallets == {}


def test_invalid_payload_schema_raises() -> None:
    fixture = build_fixture()

    with pytest.raises(KeyError):
        _handle(fixture, {"type": OrderEventType.ORDER_PAID})


def test_run_order_consumer_subscribes_to_order_topic(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    fixture = build_fixture()
    FakeKafkaEventBus.next_event = Event(id="order-evt", payload=_paid_payload())
    monkeypatch.setattr(order_handler, "get_brokers", lambda: "kafka:9092")
    monkeypatch.setattr(order_handler, "get_order_group_id", lambda: "ledger-group-order")
    monkeypatch.setattr(order_handler, "KafkaEventBus", FakeKafkaEventBus)

    stop_flag = [False]
    order_handler.run_order_consumer(stop_flag, fixture.services.order_fulfillment)

    [bus] = FakeKafkaEventBus.instances
    [call] = bus.subscribe_calls
    assert call["group_id"] == "ledger-group-order"
    assert call["topic"].base == TOPIC_ORDER.base
    assert call["stop_flag"] is stop_flag
    assert bus.closed is True
    assert fixture.wallet("user-1").independent_tokens == 500
