from __future__ import annotations

import json
import logging
import time
from typing import Callable

from confluent_kafka import Consumer, KafkaError, Producer, TopicPartition

from .config import get_message_max_bytes
from .core import Event, MaxRetryExceededError, RetryDelays, Topic
from .helpers import decode_event, encode_event

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 EventBus 구현.

    - 핸들러가 예외를 던지면 retry.N 토픽으로 재발행하고, max_retry 를 넘기면 DLQ 로 보낸다.
    - 재발행된 이벤트에는 not_before 가 찍힌다. 아직 때가 안 된 메시지를 받으면 해당
      파티션을 그 오프셋으로 되감고 not_before 까지 pause 한다.
    - 기본 토픽과 retry 토픽을 함께 구독하므로 핸들러는 order_ref 등으로 멱등해야 한다.
    """

    def __init__(self, brokers: str, *, clock: Callable[[], float] = time.time) -> None:
        producer_config: dict[str, object] = {"bootstrap.servers": brokers}
        max_bytes = get_message_max_bytes()
        if max_bytes is not None:
            producer_config["message.max.bytes"] = max_bytes
        self._producer = Producer(producer_config)
        self._brokers = brokers
        self._clock = clock

    def close(self) -> None:
        self._producer.flush()

    # 발행 -----------------------------------------------------------------
    def publish(self, topic: str, event: Event) -> None:
        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=encode_event(event),
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)

    # 구독 -----------------------------------------------------------------
    def subscribe(
        self,
        group_id: str,
        topic: Topic,
        handler: Callable[[Event], None],
        *,
        poll_timeout: float = 0.1,
        stop_flag: list[bool] | None = None,
    ) -> None:
        consumer = Consumer(
            {
                "bootstrap.servers": self._brokers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
            }
        )
        consumer.subscribe(topic.subscription())
        # (topic, partition) -> resume 시각
        paused: dict[tuple[str, int], float] = {}

        try:
            logger.info(
                "Kafka consumer started. group_id=%s topic=%s (+%d retry topics)",
                group_id,
                topic.base,
                len(RetryDelays),
            )
            while not (stop_flag and stop_flag[0]):
                self._resume_due(consumer, paused)

                msg = consumer.poll(poll_timeout)
                if msg is None:
                    continue
                if msg.error():
                    if msg.error().code() == KafkaError._PARTITION_EOF:
                        continue
                    logger.error("consumer error: %s", msg.error())
                    continue

                try:
                    evt = decode_event(json.loads(msg.value()))
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "invalid event payload on topic %s: %s", msg.topic(), exc
                    )
                    consumer.commit(message=msg, asynchronous=False)
                    continue

                if not evt.is_due(self._clock()):
                    self._defer(consumer, msg, evt, paused)
                    continue

                if not self._dispatch(evt, topic, handler):
                    # 커밋하지 않고 이 오프셋으로 되감아 다음 poll 에서 다시 받는다.
                    self._rewind(consumer, msg)
                    continue

                try:
                    consumer.commit(message=msg, asynchronous=False)
                except Exception as exc:  # noqa: BLE001
                    logger.error("offset commit error: %s", exc)
        finally:
            consumer.close()

    # 내부 util -------------------------------------------------------------
    def _dispatch(
        self, evt: Event, topic: Topic, handler: Callable[[Event], None]
    ) -> bool:
        """핸들러를 실행한다. 오프셋을 커밋해도 되면 True."""
        try:
            handler(evt)
            return True
        except Exception as exc:  # noqa: BLE001
            return self._reroute(evt, topic, exc)

    def _reroute(self, evt: Event, topic: Topic, exc: Exception) -> bool:
        """실패한 이벤트를 다음 retry 토픽이나 DLQ 로 보낸다. 발행에 성공하면 True."""
        evt.last_error = str(exc)
        next_retry = evt.retry + 1

        try:
            if next_retry > evt.max_retry:
                raise MaxRetryExceededError()
            next_topic = topic.get_retry_topic(next_retry)
        except MaxRetryExceededError:
            logger.error(
                "event %s exceeded max retry, sending to DLQ %s: %s",
                evt.id,
                topic.dlq(),
                exc,
                extra={"event_id": evt.id},
            )
            evt.not_before = None
            next_topic = topic.dlq()
        else:
            evt.retry = next_retry
            evt.not_before = self._clock() + RetryDelays[next_retry - 1]
            logger.warning(
                "event %s failed, scheduling retry %d/%d to %s",
                evt.id,
                evt.retry,
                evt.max_retry,
                next_topic,
                extra={"event_id": evt.id},
            )

        try:
            self.publish(next_topic, evt)
        except Exception as pub_exc:  # noqa: BLE001
            logger.error(
                "failed to publish event %s to %s: %s", evt.id, next_topic, pub_exc
            )
            return False
        return True

    def _rewind(self, consumer: Consumer, msg) -> None:  # type: ignore[no-untyped-def]
        consumer.seek(TopicPartition(msg.topic(), msg.partition(), msg.offset()))

    def _defer(
        self,
        consumer: Consumer,
        msg,  # type: ignore[no-untyped-def]
        evt: Event,
        paused: dict[tuple[str, int], float],
    ) -> None:
        consumer.pause([TopicPartition(msg.topic(), msg.partition(), msg.offset())])
        self._rewind(consumer, msg)
        paused[(msg.topic(), msg.partition())] = evt.not_before or self._clock()
        logger.debug(
            "event %s not due yet, pausing %s[%d] until %.3f",
            evt.id,
            msg.topic(),
            msg.partition(),
            paused[(msg.topic(), msg.partition())],
        )

    def _resume_due(
        self, consumer: Consumer, paused: dict[tuple[str, int], float]
    ) -> None:
        if not paused:
            return
        now = self._clock()
        due = [key for key, resume_at in paused.items() if resume_at <= now]
        if not due:
            return
        consumer.resume([TopicPartition(name, partition) for name, partition in due])
        for key in due:
            del paused[key]
