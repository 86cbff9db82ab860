"""Operator for driving a Pulsar instance from tests."""

from __future__ import annotations

import logging
import random
import string
from typing import Any, Callable, Iterable, Optional

import pulsar
from pulsar.schema import Schema, StringSchema

from pulsarkit.core.models import DeliveryGuarantee, PulsarConfig
from pulsarkit.runtime.admin import TransactionCoordinatorAdmin
from pulsarkit.runtime.client import SUBSCRIPTION_NAME, BrokerClient
from pulsarkit.runtime.config import Configuration, ConfigurationAssembler
from pulsarkit.runtime.exchanger import MessageExchanger, Timeout
from pulsarkit.runtime.naming import TopicPartition, topic_name, topic_name_with_partition
from pulsarkit.runtime.provisioner import TopicProvisioner

logger = logging.getLogger(__name__)

DEFAULT_PARTITIONS = 10
NUM_RECORDS_PER_PARTITION = 20


def random_alphanumeric(length: int, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "".join(rng.choices(string.ascii_letters + string.digits, k=length))


class PulsarRuntimeOperator:
    """Operates a running Pulsar instance for tests.

    Holds one client and one admin connection for its whole lifetime. Use it
    as a context manager, or call :meth:`close` on teardown:

        with PulsarRuntimeOperator("pulsar://localhost:6650", "http://localhost:8080") as op:
            op.create_topic("orders", 4)
            op.send_messages("orders", StringSchema(), ["a", "b"])

    ``container_service_url`` and ``container_admin_url`` are the addresses
    handed to pipelines that reach the broker over a different network than
    the test process (e.g. from inside Docker). They default to the URLs used
    by the operator itself.
    """

    def __init__(
        self,
        service_url: str,
        admin_url: str,
        container_service_url: Optional[str] = None,
        container_admin_url: Optional[str] = None,
        broker: Optional[BrokerClient] = None,
        **client_options: Any,
    ) -> None:
        self._service_url = container_service_url or service_url
        self._admin_url = container_admin_url or admin_url
        self.broker = broker or BrokerClient.connect(service_url, admin_url, **client_options)
        self.provisioner = TopicProvisioner(self.broker)
        self.exchanger = MessageExchanger(self.broker)
        self.assembler = ConfigurationAssembler(self._service_url, self._admin_url)

    @classmethod
    def from_config(cls, config: PulsarConfig) -> "PulsarRuntimeOperator":
        return cls(
            config.service_url,
            config.admin_url,
            container_service_url=config.container_service_url,
            container_admin_url=config.container_admin_url,
            operation_timeout_seconds=config.operation_timeout_seconds,
            token=config.token,
        )

    def __enter__(self) -> "PulsarRuntimeOperator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.broker.close()

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_tenant(self, tenant: str) -> None:
        self.provisioner.create_tenant(tenant)

    def create_namespace(self, namespace: str) -> None:
        self.provisioner.create_namespace(namespace)

    def create_topic(self, topic: str, partitions: int) -> None:
        self.provisioner.create_topic(topic, partitions)

    def create_schema(self, topic: str, schema: Schema) -> None:
        self.provisioner.create_schema(topic, schema)

    def increase_topic_partitions(self, topic: str, new_partitions: int) -> None:
        self.provisioner.increase_topic_partitions(topic, new_partitions)

    def delete_topic(self, topic: str) -> None:
        self.provisioner.delete_topic(topic)

    def topic_info(self, topic: str) -> list[TopicPartition]:
        return self.provisioner.topic_partitions(topic)

    def setup_topic(
        self,
        topic: str,
        schema: Optional[Schema] = None,
        supplier: Optional[Callable[[], Any]] = None,
        num_records_per_split: int = NUM_RECORDS_PER_PARTITION,
    ) -> None:
        """Create ``topic`` with the default partitions and fill every partition.

        Without a schema and supplier, random alphanumeric strings are sent.
        """
        if schema is None:
            rng = random.Random()
            schema = StringSchema()

            def supplier() -> str:
                return random_alphanumeric(10 + rng.randrange(20), rng)

        elif supplier is None:
            raise ValueError("A supplier is required when a schema is given")

        self.create_topic(topic_name(topic), DEFAULT_PARTITIONS)
        for index in range(DEFAULT_PARTITIONS):
            messages = [supplier() for _ in range(num_records_per_split)]
            self.send_messages(topic_name_with_partition(topic, index), schema, messages)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def send_message(
        self,
        topic: str,
        schema: Schema,
        message: Any,
        key: Optional[str] = None,
    ) -> pulsar.MessageId:
        return self.exchanger.send_one(topic, schema, message, key=key)

    def send_messages(
        self,
        topic: str,
        schema: Schema,
        messages: Iterable[Any],
        key: Optional[str] = None,
    ) -> list[pulsar.MessageId]:
        return self.exchanger.send(topic, schema, messages, key=key)

    def receive_message(
        self,
        topic: str,
        schema: Schema,
        timeout: Optional[Timeout] = None,
    ) -> Optional[pulsar.Message]:
        return self.exchanger.receive_one(topic, schema, timeout)

    def receive_messages(self, topic: str, schema: Schema, counts: int) -> list[pulsar.Message]:
        return self.exchanger.receive_n(topic, schema, counts)

    def receive_all_messages(
        self, topic: str, schema: Schema, timeout: Timeout
    ) -> list[pulsar.Message]:
        return self.exchanger.receive_all(topic, schema, timeout)

    # ------------------------------------------------------------------
    # Connection details
    # ------------------------------------------------------------------

    @property
    def service_url(self) -> str:
        """Broker URL for pipelines; tests talk to the broker through :attr:`client`."""
        return self._service_url

    @property
    def admin_url(self) -> str:
        """Admin URL for pipelines; tests use :attr:`admin`."""
        return self._admin_url

    @property
    def client(self) -> Any:
        return self.broker.client

    @property
    def admin(self) -> Any:
        return self.broker.admin

    @property
    def subscription_name(self) -> str:
        return SUBSCRIPTION_NAME

    def coordinator_client(self) -> TransactionCoordinatorAdmin:
        return self.broker.coordinator_client()

    def config(self) -> Configuration:
        return self.assembler.connection_config()

    def sink_config(self, guarantee: DeliveryGuarantee) -> Configuration:
        return self.assembler.sink_config(guarantee)
