"""Synchronous produce and blocking consume helpers for tests."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Iterable, Optional, Union

import pulsar
from pulsar.schema import Schema

from pulsarkit.runtime.client import BrokerClient

logger = logging.getLogger(__name__)

# Quiet period used when draining with a negative count
DRAIN_TIMEOUT = timedelta(minutes=1)

Timeout = Union[timedelta, float, int]


def _timeout_millis(timeout: Timeout) -> int:
    if isinstance(timeout, timedelta):
        return int(timeout.total_seconds() * 1000)
    return int(timeout * 1000)


class MessageExchanger:
    """Sends and receives messages on a topic through the shared subscription.

    Every call opens its own producer or consumer and closes it before
    returning. Consumers all attach to the same exclusive subscription, so two
    receive calls on the same topic must not run at the same time.
    """

    def __init__(self, broker: BrokerClient) -> None:
        self.broker = broker

    def send(
        self,
        topic: str,
        schema: Schema,
        messages: Iterable[Any],
        key: Optional[str] = None,
        **producer_options: Any,
    ) -> list[pulsar.MessageId]:
        """Send messages in order and return their ids once acknowledged."""
        with self.broker.producer(topic, schema, **producer_options) as producer:
            message_ids = []
            for message in messages:
                if key:
                    message_id = producer.send(message, partition_key=key)
                else:
                    message_id = producer.send(message)
                message_ids.append(message_id)
            producer.flush()

        logger.debug(f"Sent {len(message_ids)} messages to '{topic}'")
        return message_ids

    def send_one(
        self,
        topic: str,
        schema: Schema,
        message: Any,
        key: Optional[str] = None,
    ) -> pulsar.MessageId:
        (message_id,) = self.send(topic, schema, [message], key=key)
        return message_id

    def receive_one(
        self,
        topic: str,
        schema: Schema,
        timeout: Optional[Timeout] = None,
    ) -> Optional[pulsar.Message]:
        """Receive and acknowledge one message.

        Without a timeout this blocks until a message arrives. With a timeout
        it returns None if nothing arrived in time.
        """
        with self.broker.consumer(topic, schema) as consumer:
            if timeout is None:
                message = consumer.receive()
            else:
                try:
                    message = consumer.receive(timeout_millis=_timeout_millis(timeout))
                except pulsar.Timeout:
                    return None
            consumer.acknowledge(message)
            return message

    def receive_n(self, topic: str, schema: Schema, count: int) -> list[pulsar.Message]:
        """Receive exactly ``count`` messages, blocking until they all arrive.

        A zero count returns immediately; a negative count drains the topic.
        """
        if count == 0:
            return []
        if count < 0:
            return self.receive_all(topic, schema, DRAIN_TIMEOUT)
        if count == 1:
            return [self.receive_one(topic, schema)]

        messages = []
        with self.broker.consumer(topic, schema) as consumer:
            for _ in range(count):
                message = consumer.receive()
                messages.append(message)
                consumer.acknowledge(message)
        return messages

    def receive_all(self, topic: str, schema: Schema, timeout: Timeout) -> list[pulsar.Message]:
        """Drain the topic until no message shows up within ``timeout``.

        The end of the stream is only detected by a quiet period, so call this
        after every producer has finished.
        """
        messages = []
        message = self.receive_one(topic, schema, timeout)
        while message is not None:
            messages.append(message)
            message = self.receive_one(topic, schema, timeout)

        logger.debug(f"Drained {len(messages)} messages from '{topic}'")
        return messages
