"""Idempotent provisioning of tenants, namespaces and topics."""

from __future__ import annotations

import logging

from pulsar.schema import Schema

from pulsarkit.errors import ConflictError, InvalidArgumentError, NotFoundError
from pulsarkit.runtime.client import BrokerClient, schema_payload
from pulsarkit.runtime.naming import (
    TopicName,
    TopicPartition,
    base_topic_name,
    partition_index,
    topic_name,
)

logger = logging.getLogger(__name__)

# Reasons the broker gives when a topic creation hits an existing topic
TOPIC_EXISTS_REASONS = frozenset(
    {
        "This topic already exists",
        "Partitioned topic already exists",
    }
)


def _is_topic_exists(error: ConflictError) -> bool:
    return error.reason in TOPIC_EXISTS_REASONS


class TopicProvisioner:
    """Creates and deletes broker resources without failing on repeats.

    Tenants and namespaces are checked by listing before creating. Topics are
    created directly and the broker's "already exists" conflict is treated as
    success.
    """

    def __init__(self, broker: BrokerClient) -> None:
        self.broker = broker

    @property
    def admin(self):
        return self.broker.admin

    def create_tenant(self, tenant: str) -> None:
        """Create a tenant if it doesn't exist, allowed on every known cluster."""
        if tenant in self.admin.list_tenants():
            return
        clusters = self.admin.list_clusters()
        logger.info(f"Creating tenant '{tenant}' on clusters {clusters}")
        self.admin.create_tenant(tenant, clusters)

    def create_namespace(self, namespace: str) -> None:
        """Create a namespace (and its tenant) if it doesn't exist."""
        tenant = namespace.split("/", 1)[0]
        self.create_tenant(tenant)
        if namespace in self.admin.list_namespaces(tenant):
            return
        logger.info(f"Creating namespace '{namespace}'")
        self.admin.create_namespace(namespace)

    def create_topic(self, topic: str, partitions: int) -> None:
        """Create a topic; zero partitions means a non-partitioned topic.

        An existing topic is left untouched, even if its partition count
        differs from the requested one.
        """
        if partitions < 0:
            raise InvalidArgumentError(
                f"Number of partitions must not be negative, got {partitions}"
            )

        name = topic_name(topic)
        try:
            if partitions == 0:
                self.admin.create_non_partitioned_topic(name)
            else:
                self.admin.create_partitioned_topic(name, partitions)
            logger.info(f"Created topic '{name}' with {partitions} partitions")
        except ConflictError as e:
            if not _is_topic_exists(e):
                raise
            logger.debug(f"Topic '{name}' already exists")

    def create_schema(self, topic: str, schema: Schema) -> None:
        self.admin.create_schema(topic_name(topic), schema_payload(schema))

    def topic_metadata(self, topic: str) -> int:
        """Return the partition count of a topic, 0 if it is non-partitioned."""
        return self.admin.get_partitioned_topic_metadata(topic_name(topic))

    def increase_topic_partitions(self, topic: str, new_partitions: int) -> None:
        """Grow a partitioned topic; the new size must exceed the current one."""
        current = self.topic_metadata(topic)
        if new_partitions <= current:
            raise InvalidArgumentError(
                f"The new partition size {new_partitions} should be greater than "
                f"the current size {current}"
            )
        logger.info(f"Increasing partitions of '{topic}' from {current} to {new_partitions}")
        self.admin.update_partitioned_topic(topic_name(topic), new_partitions)

    def delete_topic(self, topic: str) -> None:
        """Delete a topic; a missing topic is treated as already deleted."""
        name = topic_name(topic)
        try:
            partitions = self.admin.get_partitioned_topic_metadata(name)
        except NotFoundError:
            logger.debug(f"Topic '{name}' doesn't exist, skipping deletion")
            return

        if partitions == 0:
            self.admin.delete_topic(name)
        else:
            self.admin.delete_partitioned_topic(name)
        logger.info(f"Deleted topic '{name}'")

    def topic_partitions(self, topic: str) -> list[TopicPartition]:
        """List the partitions the broker currently assigns to a topic."""
        name = topic_name(topic)
        result = []
        for physical in self.broker.partitions_for_topic(name):
            index = partition_index(physical)
            logical = base_topic_name(physical) if index >= 0 else physical
            result.append(TopicPartition(str(TopicName.parse(logical)), index))
        return sorted(result, key=lambda p: p.partition_id)
