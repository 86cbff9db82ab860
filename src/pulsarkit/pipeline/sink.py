"""Pulsar sink for the local pipeline engine."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional

import pulsar
from pulsar.schema import Schema

from pulsarkit.core.models import DeliveryGuarantee
from pulsarkit.errors import InvalidArgumentError, PulsarkitError, TransactionTimeoutError
from pulsarkit.runtime.config import (
    DEFAULT_SEND_TIMEOUT_MS,
    DEFAULT_TRANSACTION_TIMEOUT,
    PULSAR_ADMIN_URL,
    PULSAR_ENABLE_TRANSACTION,
    PULSAR_SEND_TIMEOUT_MS,
    PULSAR_SERVICE_URL,
    PULSAR_WRITE_DELIVERY_GUARANTEE,
    PULSAR_WRITE_TRANSACTION_TIMEOUT,
    Configuration,
)
from pulsarkit.runtime.naming import topic_name

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Configuration], Any]


def create_client(config: Configuration) -> pulsar.Client:
    return pulsar.Client(config[PULSAR_SERVICE_URL])


class TopicRouter:
    """Spreads records over the sink's topics in round-robin order."""

    def __init__(self, topics: list[str]) -> None:
        self.topics = topics
        self._next = 0

    def route(self, record: Any) -> str:
        topic = self.topics[self._next % len(self.topics)]
        self._next += 1
        return topic


class ProducerRegister:
    """Lazily opened producers, one per topic, shared by writer and committer."""

    def __init__(self, client: Any, schema: Schema, send_timeout_ms: int) -> None:
        self.client = client
        self.schema = schema
        self.send_timeout_ms = send_timeout_ms
        self.producers: dict[str, Any] = {}

    def producer(self, topic: str) -> Any:
        if topic not in self.producers:
            self.producers[topic] = self.client.create_producer(
                topic,
                schema=self.schema,
                send_timeout_millis=self.send_timeout_ms,
                batching_enabled=False,
            )
        return self.producers[topic]

    def flush(self) -> None:
        for producer in self.producers.values():
            producer.flush()

    def close(self) -> None:
        try:
            for producer in self.producers.values():
                producer.close()
        finally:
            self.producers.clear()
            self.client.close()


@dataclass
class StagedTransaction:
    """Records held back until their checkpoint completes."""

    checkpoint: int
    started_at: float = field(default_factory=time.monotonic)
    records: list[tuple[str, Any]] = field(default_factory=list)


class PulsarWriter:
    """Writes records according to the sink's delivery guarantee.

    ``NONE`` sends asynchronously and only flushes when closed.
    ``AT_LEAST_ONCE`` also flushes on every checkpoint. ``EXACTLY_ONCE``
    stages records and leaves publishing to the committer.
    """

    def __init__(self, sink: "PulsarSink") -> None:
        self.guarantee = sink.guarantee
        self.router = TopicRouter(sink.topics)
        self.register = ProducerRegister(
            sink.client_factory(sink.config),
            sink.schema,
            int(sink.config.get(PULSAR_SEND_TIMEOUT_MS, DEFAULT_SEND_TIMEOUT_MS)),
        )
        self._errors: list[str] = []
        self._checkpoints = 0
        self._staged = StagedTransaction(checkpoint=1)

    def write(self, record: Any) -> None:
        topic = self.router.route(record)
        if self.guarantee == DeliveryGuarantee.EXACTLY_ONCE:
            self._staged.records.append((topic, record))
            return
        self.register.producer(topic).send_async(record, self._on_sent)

    def _on_sent(self, result: Any, message_id: Any) -> None:
        if result != pulsar.Result.Ok:
            self._errors.append(str(result))

    def _check_errors(self) -> None:
        if self._errors:
            errors, self._errors = self._errors, []
            raise PulsarkitError(f"Failed to send {len(errors)} records: {errors[0]}")

    def flush(self, end_of_input: bool) -> None:
        if self.guarantee != DeliveryGuarantee.EXACTLY_ONCE:
            self.register.flush()
            self._check_errors()

    def prepare_commit(self) -> list[StagedTransaction]:
        self._checkpoints += 1
        if self.guarantee == DeliveryGuarantee.AT_LEAST_ONCE:
            self.register.flush()
            self._check_errors()
            return []
        if self.guarantee == DeliveryGuarantee.EXACTLY_ONCE:
            staged = self._staged
            self._staged = StagedTransaction(checkpoint=self._checkpoints + 1)
            return [staged] if staged.records else []
        return []

    def abort(self) -> None:
        if self._staged.records:
            logger.warning(
                f"Aborting {len(self._staged.records)} uncommitted records "
                f"of checkpoint {self._staged.checkpoint}"
            )
        self._staged = StagedTransaction(checkpoint=self._checkpoints + 1)

    def close(self) -> None:
        try:
            if self.guarantee == DeliveryGuarantee.NONE:
                self.register.flush()
        finally:
            self.register.close()


class PulsarCommitter:
    """Publishes staged transactions once their checkpoint is complete."""

    def __init__(self, register: ProducerRegister, transaction_timeout: timedelta) -> None:
        self.register = register
        self.transaction_timeout = transaction_timeout

    def commit(self, committables: list[StagedTransaction]) -> None:
        for staged in committables:
            age = time.monotonic() - staged.started_at
            if age > self.transaction_timeout.total_seconds():
                raise TransactionTimeoutError(
                    f"Transaction of checkpoint {staged.checkpoint} was open for {age:.1f}s, "
                    f"longer than the {self.transaction_timeout} timeout"
                )
            for topic, record in staged.records:
                self.register.producer(topic).send(record)
            self.register.flush()
            logger.debug(
                f"Committed {len(staged.records)} records of checkpoint {staged.checkpoint}"
            )


class PulsarSink:
    """Sink writing records to one or more Pulsar topics.

    Build it with :meth:`builder`:

        sink = (
            PulsarSink.builder()
            .set_service_url(service_url)
            .set_admin_url(admin_url)
            .set_delivery_guarantee(DeliveryGuarantee.EXACTLY_ONCE)
            .set_topics("orders")
            .set_serialization_schema(StringSchema())
            .build()
        )
    """

    def __init__(
        self,
        config: Configuration,
        topics: list[str],
        schema: Schema,
        client_factory: ClientFactory = create_client,
    ) -> None:
        self.config = config
        self.topics = topics
        self.schema = schema
        self.client_factory = client_factory

    @staticmethod
    def builder() -> "PulsarSinkBuilder":
        return PulsarSinkBuilder()

    @property
    def guarantee(self) -> DeliveryGuarantee:
        return DeliveryGuarantee.parse(
            self.config.get(PULSAR_WRITE_DELIVERY_GUARANTEE, DeliveryGuarantee.NONE)
        )

    @property
    def transaction_timeout(self) -> timedelta:
        millis = self.config.get(PULSAR_WRITE_TRANSACTION_TIMEOUT)
        if millis is None:
            return DEFAULT_TRANSACTION_TIMEOUT
        return timedelta(milliseconds=int(millis))

    def create_writer(self) -> PulsarWriter:
        return PulsarWriter(self)

    def create_committer(self, writer: PulsarWriter) -> PulsarCommitter:
        return PulsarCommitter(writer.register, self.transaction_timeout)


class PulsarSinkBuilder:
    """Builder for :class:`PulsarSink`."""

    def __init__(self) -> None:
        self._options: dict[str, Any] = {}
        self._topics: list[str] = []
        self._schema: Optional[Schema] = None
        self._client_factory: ClientFactory = create_client

    def set_service_url(self, service_url: str) -> "PulsarSinkBuilder":
        self._options[PULSAR_SERVICE_URL] = service_url
        return self

    def set_admin_url(self, admin_url: str) -> "PulsarSinkBuilder":
        self._options[PULSAR_ADMIN_URL] = admin_url
        return self

    def set_delivery_guarantee(self, guarantee: DeliveryGuarantee) -> "PulsarSinkBuilder":
        self._options[PULSAR_WRITE_DELIVERY_GUARANTEE] = DeliveryGuarantee.parse(guarantee)
        return self

    def set_topics(self, *topics: str) -> "PulsarSinkBuilder":
        self._topics = [topic_name(topic) for topic in topics]
        return self

    def set_serialization_schema(self, schema: Schema) -> "PulsarSinkBuilder":
        self._schema = schema
        return self

    def set_config(self, key: str, value: Any) -> "PulsarSinkBuilder":
        self._options[key] = value
        return self

    def set_all_config(self, config: Configuration) -> "PulsarSinkBuilder":
        self._options.update(config)
        return self

    def set_client_factory(self, factory: ClientFactory) -> "PulsarSinkBuilder":
        self._client_factory = factory
        return self

    def build(self) -> PulsarSink:
        if not self._options.get(PULSAR_SERVICE_URL):
            raise InvalidArgumentError("The service URL must be set")
        if not self._options.get(PULSAR_ADMIN_URL):
            raise InvalidArgumentError("The admin URL must be set")
        if not self._topics:
            raise InvalidArgumentError("At least one topic must be set")
        if self._schema is None:
            raise InvalidArgumentError("The serialization schema must be set")

        options = dict(self._options)
        guarantee = DeliveryGuarantee.parse(
            options.setdefault(PULSAR_WRITE_DELIVERY_GUARANTEE, DeliveryGuarantee.NONE)
        )
        if guarantee == DeliveryGuarantee.EXACTLY_ONCE:
            options[PULSAR_ENABLE_TRANSACTION] = True
            options[PULSAR_SEND_TIMEOUT_MS] = 0
            if PULSAR_WRITE_TRANSACTION_TIMEOUT not in options:
                logger.warning(
                    "Exactly-once delivery without a transaction timeout, "
                    f"using {DEFAULT_TRANSACTION_TIMEOUT}"
                )

        return PulsarSink(Configuration(options), list(self._topics), self._schema, self._client_factory)
