"""Connection and sink configuration for pipelines writing to Pulsar."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterator, Mapping

from pulsarkit.core.models import DeliveryGuarantee

PULSAR_SERVICE_URL = "pulsar.client.serviceUrl"
PULSAR_ADMIN_URL = "pulsar.admin.adminUrl"
PULSAR_ENABLE_TRANSACTION = "pulsar.client.enableTransaction"
PULSAR_WRITE_DELIVERY_GUARANTEE = "pulsar.sink.deliveryGuarantee"
PULSAR_WRITE_TRANSACTION_TIMEOUT = "pulsar.sink.transactionTimeoutMillis"
PULSAR_SEND_TIMEOUT_MS = "pulsar.producer.sendTimeoutMs"

DEFAULT_TRANSACTION_TIMEOUT = timedelta(minutes=5)
DEFAULT_SEND_TIMEOUT_MS = 30000


class Configuration(Mapping[str, Any]):
    """Immutable key/value configuration.

    ``merge`` returns a new configuration instead of mutating this one.
    """

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        self._options = dict(options or {})

    def __getitem__(self, key: str) -> Any:
        return self._options[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def __repr__(self) -> str:
        return f"Configuration({self._options!r})"

    def merge(self, other: Mapping[str, Any]) -> "Configuration":
        merged = dict(self._options)
        merged.update(other)
        return Configuration(merged)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._options)


def exactly_once_options(
    transaction_timeout: timedelta = DEFAULT_TRANSACTION_TIMEOUT,
) -> dict[str, Any]:
    """Options exactly-once delivery requires.

    Transactions are switched on and the producer send timeout is disabled so
    a short send timeout cannot fire while a longer transaction is still open.
    """
    return {
        PULSAR_WRITE_TRANSACTION_TIMEOUT: int(transaction_timeout.total_seconds() * 1000),
        PULSAR_ENABLE_TRANSACTION: True,
        PULSAR_SEND_TIMEOUT_MS: 0,
    }


class ConfigurationAssembler:
    """Builds the configuration pipelines use to reach the broker."""

    def __init__(self, service_url: str, admin_url: str) -> None:
        self.service_url = service_url
        self.admin_url = admin_url

    def connection_config(self) -> Configuration:
        """Service URL and admin URL only."""
        return Configuration(
            {
                PULSAR_SERVICE_URL: self.service_url,
                PULSAR_ADMIN_URL: self.admin_url,
            }
        )

    def sink_config(self, guarantee: DeliveryGuarantee) -> Configuration:
        """Connection settings plus the options the delivery guarantee needs."""
        guarantee = DeliveryGuarantee.parse(guarantee)
        config = self.connection_config().merge({PULSAR_WRITE_DELIVERY_GUARANTEE: guarantee})
        if guarantee == DeliveryGuarantee.EXACTLY_ONCE:
            config = config.merge(exactly_once_options())
        return config
