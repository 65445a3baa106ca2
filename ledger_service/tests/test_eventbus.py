from __future__ import annotations

import json

import pytest

from common.eventbus import kafka
from common.eventbus.config import get_order_group_id
from common.eventbus.core import Event, RetryDelays
from common.eventbus.helpers import decode_event, encode_event
from common.eventbus.topics import TOPIC_ORDER


CLOCK = 1_700_000_000.0


class FakeMessage:
    def __init__(self, topic: str, event: Event, *, partition: int = 0, offset: int = 0) -> None:
        self._topic = topic
        self._value = encode_event(event)
        self._partition = partition
        self._offset = offset

    def error(self) -> None:
        return None

    def topic(self) -> str:
        return self._topic

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset

    def value(self) -> bytes:
        return self._value


class FakeProducer:
    fail_produce = False

    def __init__(self, config: dict) -> None:
        self.config = config
        self.produced: list[tuple[str, dict]] = []

    def produce(self, *, topic, value, key, callback) -> None:
        if self.__class__.fail_produce:
            raise BufferError("local queue full")
        self.produced.append((topic, json.loads(value)))

    def poll(self, timeout: float) -> None:
        return None

    def flush(self) -> None:
        return None


class FakeConsumer:
    messages: list[FakeMessage] = []
    instances: list["FakeConsumer"] = []
    stop_flag: list[bool] | None = None

    def __init__(self, config: dict) -> None:
        self.config = config
        self.subscribed: list[str] = []
        self.committed: list[FakeMessage] = []
        self.paused: list[tuple[str, int, int]] = []
        self.seeks: list[tuple[str, int, int]] = []
        self.closed = False
        self._queue = list(self.__class__.messages)
        self.__class__.instances.append(self)

    def subscribe(self, topics: list[str]) -> None:
        self.subscribed = topics

    def poll(self, timeout: float) -> FakeMessage | None:
        if not self._queue:
            assert self.__class__.stop_flag is not None
            self.__class__.stop_flag[0] = True
            return None
        return self._queue.pop(0)

    def commit(self, *, message, asynchronous) -> None:
        self.committed.append(message)

    def pause(self, partitions) -> None:
        self.paused.extend((p.topic, p.partition, p.offset) for p in partitions)

    def seek(self, partition) -> None:
        self.seeks.append((partition.topic, partition.partition, partition.offset))

    def resume(self, partitions) -> None:
        return None

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def patch_confluent(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeConsumer.messages = []
    FakeConsumer.instances = []
    FakeProducer.fail_produce = False
    monkeypatch.delenv("KAFKA_MESSAGE_MAX_BYTES", raising=False)
    monkeypatch.setattr(kafka, "Producer", FakeProducer)
    monkeypatch.setattr(kafka, "Consumer", FakeConsumer)


def _consume(messages: list[FakeMessage], handler) -> tuple[FakeConsumer, FakeProducer]:
    FakeConsumer.messages = messages
    bus = kafka.KafkaEventBus("kafka:9092", clock=lambda: CLOCK)
    stop_flag = [False]
    FakeConsumer.stop_flag = stop_flag

    bus.subscribe("ledger-group-order", TOPIC_ORDER, handler, stop_flag=stop_flag)

    [consumer] = FakeConsumer.instances
    return consumer, bus._producer  # type: ignore[return-value]


def test_topic_names() -> None:
    assert TOPIC_ORDER.dlq() == "credit-ledger.order.dlq"
    assert TOPIC_ORDER.subscription()[0] == "credit-ledger.order"
    assert TOPIC_ORDER.subscription()[-1] == f"credit-ledger.order.retry.{len(RetryDelays)}"


def test_event_codec_keeps_retry_metadata() -> None:
    event = Event(id="order-evt-1", payload={"id": "order-evt-1", "type": "order.paid"})
    event.retry = 2
    event.not_before = CLOCK + 5

    decoded = decode_event(json.loads(encode_event(event)))

    assert decoded == event
    assert decoded.id == "order-evt-1"


def test_successful_event_is_committed() -> None:
    handled: list[str] = []
    message = FakeMessage(TOPIC_ORDER.base, Event(id="e-1", payload={"id": "e-1"}))

    consumer, producer = _consume([message], lambda evt: handled.append(evt.id))

    assert handled == ["e-1"]
    assert consumer.committed == [message]
    assert consumer.subscribed == TOPIC_ORDER.subscription()
    assert producer.produced == []
    assert consumer.closed


def test_failed_event_is_scheduled_on_retry_topic() -> None:
    def handler(evt: Event) -> None:
        raise RuntimeError("wallet version conflict")

    message = FakeMessage(TOPIC_ORDER.base, Event(id="e-1", payload={"id": "e-1"}))
    consumer, producer = _consume([message], handler)

    [(topic, raw)] = producer.produced
    assert topic == "credit-ledger.order.retry.1"
    assert raw["retry"] == 1
    assert raw["not_before"] == CLOCK + RetryDelays[0]
    assert raw["last_error"] == "wallet version conflict"
    assert consumer.committed == [message]


def test_event_past_max_retry_goes_to_dlq() -> None:
    event = Event(id="e-1", payload={"id": "e-1"}, max_retry=2)
    event.retry = 2

    def handler(evt: Event) -> None:
        raise RuntimeError("still failing")

    _, producer = _consume([FakeMessage("credit-ledger.order.retry.2", event)], handler)

    [(topic, raw)] = producer.produced
    assert topic == TOPIC_ORDER.dlq()
    assert raw["not_before"] is None


def test_retry_not_yet_due_pauses_partition() -> None:
    event = Event(id="e-1", payload={"id": "e-1"})
    event.retry = 1
    event.not_before = CLOCK + 30
    handled: list[str] = []
    message = FakeMessage("credit-ledger.order.retry.1", event, partition=3, offset=42)

    consumer, _ = _consume([message], lambda evt: handled.append(evt.id))

    assert handled == []
    assert consumer.committed == []
    assert consumer.paused == [("credit-ledger.order.retry.1", 3, 42)]
    assert consumer.seeks == [("credit-ledger.order.retry.1", 3, 42)]


def test_order_group_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KAFKA_GROUP_ID", "ledger-service")

    assert get_order_group_id() == "ledger-service-order"


def test_failed_reroute_rewinds_without_commit() -> None:
    FakeProducer.fail_produce = True

    def handler(evt: Event) -> None:
        raise RuntimeError("wallet version conflict")

    message = FakeMessage(
        TOPIC_ORDER.base, Event(id="e-1", payload={"id": "e-1"}), partition=1, offset=7
    )
    consumer, producer = _consume([message], handler)

    assert producer.produced == []
    assert consumer.committed == []
    assert consumer.paused == []
    assert consumer.seeks == [(TOPIC_ORDER.base, 1, 7)]
