"""Topic naming rules shared by the provisioner and the exchanger."""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_DOMAIN = "persistent"
DEFAULT_TENANT = "public"
DEFAULT_NAMESPACE = "default"

PARTITION_SUFFIX = "-partition-"
NON_PARTITION_ID = -1

_PARTITION_PATTERN = re.compile(r"^(?P<base>.+)-partition-(?P<index>\d+)$")


@dataclass(frozen=True)
class TopicName:
    """A fully-qualified Pulsar topic name.

    Short names are expanded the same way the broker does it:

        "orders"              -> persistent://public/default/orders
        "acme/sales/orders"   -> persistent://acme/sales/orders
    """

    domain: str
    tenant: str
    namespace: str
    local_name: str

    @classmethod
    def parse(cls, topic: str) -> "TopicName":
        if not topic:
            raise ValueError("Topic name must not be empty")

        domain = DEFAULT_DOMAIN
        rest = topic
        if "://" in topic:
            domain, rest = topic.split("://", 1)
            if domain not in ("persistent", "non-persistent"):
                raise ValueError(f"Invalid topic domain '{domain}' in '{topic}'")

        parts = rest.split("/")
        if len(parts) == 1:
            return cls(domain, DEFAULT_TENANT, DEFAULT_NAMESPACE, parts[0])
        if len(parts) == 3 and all(parts):
            return cls(domain, parts[0], parts[1], parts[2])
        raise ValueError(f"Invalid topic name '{topic}'")

    @property
    def namespace_name(self) -> str:
        return f"{self.tenant}/{self.namespace}"

    @property
    def rest_path(self) -> str:
        """Path segment used by the admin REST API."""
        return f"{self.domain}/{self.tenant}/{self.namespace}/{self.local_name}"

    def __str__(self) -> str:
        return f"{self.domain}://{self.tenant}/{self.namespace}/{self.local_name}"


@dataclass(frozen=True)
class TopicPartition:
    """One partition of a logical topic, or the whole non-partitioned topic."""

    topic: str
    partition_id: int = NON_PARTITION_ID

    @property
    def is_partitioned(self) -> bool:
        return self.partition_id != NON_PARTITION_ID

    def full_name(self) -> str:
        if self.is_partitioned:
            return topic_name_with_partition(self.topic, self.partition_id)
        return topic_name(self.topic)

    def __str__(self) -> str:
        return self.full_name()


def topic_name(topic: str) -> str:
    """Return the fully-qualified name of a topic."""
    return str(TopicName.parse(topic))


def topic_name_with_partition(topic: str, index: int) -> str:
    """Return the physical name of partition ``index`` of ``topic``."""
    if index < 0:
        raise ValueError(f"Partition index must not be negative, got {index}")
    return f"{topic_name(topic)}{PARTITION_SUFFIX}{index}"


def partition_index(topic: str) -> int:
    """Return the partition index encoded in a physical topic name, or -1."""
    match = _PARTITION_PATTERN.match(topic)
    if not match:
        return NON_PARTITION_ID
    return int(match.group("index"))


def base_topic_name(topic: str) -> str:
    """Strip the partition suffix from a physical topic name."""
    match = _PARTITION_PATTERN.match(topic)
    if not match:
        return topic
    return match.group("base")


def namespace_of(namespace: str) -> tuple[str, str]:
    """Split ``tenant/namespace`` into its two parts."""
    parts = namespace.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid namespace name '{namespace}', expected 'tenant/namespace'")
    return parts[0], parts[1]
