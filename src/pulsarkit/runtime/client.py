"""Adapter over the Pulsar client and admin handles."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import pulsar
from pulsar.schema import Schema

from pulsarkit.runtime.admin import PulsarAdmin, TransactionCoordinatorAdmin

logger = logging.getLogger(__name__)

SUBSCRIPTION_NAME = "PulsarRuntimeOperator"


def schema_payload(schema: Schema) -> dict[str, Any]:
    """Render a client schema as the admin API's schema upload body."""
    info = schema.schema_info()
    return {
        "type": info.schema_type().name,
        "schema": info.schema(),
        "properties": {},
    }


class BrokerClient:
    """One Pulsar client plus one admin handle, shared for a whole test run.

    Producers and consumers are only handed out through context managers so
    none of them outlives the call that opened it:

        with broker.producer(topic, schema) as producer:
            producer.send(value)
    """

    def __init__(self, client: Any, admin: Any) -> None:
        self.client = client
        self.admin = admin
        self._closed = False

    @classmethod
    def connect(
        cls,
        service_url: str,
        admin_url: str,
        operation_timeout_seconds: int = 30,
        token: Optional[str] = None,
    ) -> "BrokerClient":
        """Open a client and an admin handle against a running broker."""
        authentication = pulsar.AuthenticationToken(token) if token else None
        client = pulsar.Client(
            service_url,
            authentication=authentication,
            operation_timeout_seconds=operation_timeout_seconds,
        )
        admin = PulsarAdmin(admin_url, token=token)
        logger.info(f"Connected to Pulsar at {service_url} (admin {admin_url})")
        return cls(client, admin)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the client first, then the admin handle."""
        if self._closed:
            return
        self._closed = True
        try:
            if self.client is not None:
                self.client.close()
        finally:
            if self.admin is not None:
                self.admin.close()

    @contextmanager
    def producer(self, topic: str, schema: Schema, **options: Any) -> Iterator[Any]:
        """Open a non-batching, shared-access producer for the duration of the block."""
        options.setdefault("batching_enabled", False)
        options.setdefault("access_mode", pulsar.ProducerAccessMode.Shared)
        producer = self.client.create_producer(topic, schema=schema, **options)
        try:
            yield producer
        finally:
            producer.close()

    @contextmanager
    def consumer(
        self,
        topic: str,
        schema: Schema,
        subscription_name: str = SUBSCRIPTION_NAME,
    ) -> Iterator[Any]:
        """Open an exclusive consumer on the shared durable subscription."""
        self.ensure_subscription(topic, subscription_name)
        consumer = self.client.subscribe(
            topic,
            subscription_name,
            consumer_type=pulsar.ConsumerType.Exclusive,
            schema=schema,
        )
        try:
            yield consumer
        finally:
            consumer.close()

    def ensure_subscription(self, topic: str, subscription_name: str = SUBSCRIPTION_NAME) -> None:
        """Create the subscription at the earliest position if it is missing."""
        subscriptions = self.admin.get_subscriptions(topic)
        if subscription_name not in subscriptions:
            logger.debug(f"Creating subscription '{subscription_name}' on '{topic}'")
            self.admin.create_subscription(topic, subscription_name)

    def partitions_for_topic(self, topic: str) -> list[str]:
        return list(self.client.get_topic_partitions(topic))

    def coordinator_client(self) -> TransactionCoordinatorAdmin:
        return self.admin.transactions()
