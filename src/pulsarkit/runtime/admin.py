"""Pulsar admin client over the broker's REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from pulsarkit.errors import ConflictError, NotFoundError, PulsarAdminError
from pulsarkit.runtime.naming import TopicName, namespace_of

logger = logging.getLogger(__name__)

# Default timeout for admin requests (in seconds)
DEFAULT_TIMEOUT = 30

# MessageId.earliest as the broker serializes it
EARLIEST_MESSAGE_ID = {"ledgerId": -1, "entryId": -1, "partitionIndex": -1}


@dataclass(frozen=True)
class TxnID:
    """Identifier of a Pulsar transaction."""

    most_sig_bits: int
    least_sig_bits: int

    def __str__(self) -> str:
        return f"({self.most_sig_bits},{self.least_sig_bits})"


class TransactionCoordinatorAdmin:
    """Read access to the broker's transaction coordinators."""

    def __init__(self, admin: "PulsarAdmin") -> None:
        self.admin = admin

    def coordinator_stats(self) -> dict[str, Any]:
        """Stats of every transaction coordinator, keyed by coordinator id."""
        return self.admin._request("GET", "/admin/v3/transactions/coordinators") or {}

    def coordinator_ids(self) -> list[int]:
        return sorted(int(key) for key in self.coordinator_stats())

    def transaction_metadata(self, txn_id: TxnID) -> dict[str, Any]:
        return self.admin._request(
            "GET",
            f"/admin/v3/transactions/transactionMetadata/"
            f"{txn_id.most_sig_bits}/{txn_id.least_sig_bits}",
        )


class PulsarAdmin:
    """Thin client for the Pulsar admin REST API.

    Only the calls the test operator needs are covered. Errors are mapped to
    :class:`ConflictError` (409), :class:`NotFoundError` (404) or the generic
    :class:`PulsarAdminError`; transport errors from ``requests`` propagate.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize admin client."""
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def __enter__(self) -> "PulsarAdmin":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self.session.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make a request to the admin API and decode the JSON body."""
        url = f"{self.url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        response = self.session.request(method, url, **kwargs)

        if response.status_code >= 400:
            raise self._error_for(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _error_for(response: requests.Response) -> PulsarAdminError:
        reason = response.text
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("reason"):
                reason = body["reason"]
        except ValueError:
            pass

        if response.status_code == 409:
            return ConflictError(reason, response.status_code)
        if response.status_code == 404:
            return NotFoundError(reason, response.status_code)
        return PulsarAdminError(
            f"Admin request failed ({response.status_code}): {reason}",
            response.status_code,
        )

    def check_connection(self) -> bool:
        """Check if the admin endpoint is reachable."""
        try:
            self.list_clusters()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Clusters, tenants and namespaces
    # ------------------------------------------------------------------

    def list_clusters(self) -> list[str]:
        return self._request("GET", "/admin/v2/clusters") or []

    def list_tenants(self) -> list[str]:
        return self._request("GET", "/admin/v2/tenants") or []

    def create_tenant(self, tenant: str, allowed_clusters: list[str]) -> None:
        self._request(
            "PUT",
            f"/admin/v2/tenants/{tenant}",
            json={"adminRoles": [], "allowedClusters": sorted(allowed_clusters)},
        )

    def list_namespaces(self, tenant: str) -> list[str]:
        return self._request("GET", f"/admin/v2/namespaces/{tenant}") or []

    def create_namespace(self, namespace: str) -> None:
        tenant, local = namespace_of(namespace)
        self._request("PUT", f"/admin/v2/namespaces/{tenant}/{local}")

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def create_non_partitioned_topic(self, topic: str) -> None:
        self._request("PUT", f"/admin/v2/{TopicName.parse(topic).rest_path}")

    def create_partitioned_topic(self, topic: str, partitions: int) -> None:
        self._request(
            "PUT",
            f"/admin/v2/{TopicName.parse(topic).rest_path}/partitions",
            json=partitions,
        )

    def get_partitioned_topic_metadata(self, topic: str) -> int:
        """Return the partition count, 0 for a non-partitioned topic."""
        metadata = self._request(
            "GET",
            f"/admin/v2/{TopicName.parse(topic).rest_path}/partitions",
            params={"checkAllowAutoCreation": "false"},
        )
        return int((metadata or {}).get("partitions", 0))

    def update_partitioned_topic(self, topic: str, partitions: int) -> None:
        self._request(
            "POST",
            f"/admin/v2/{TopicName.parse(topic).rest_path}/partitions",
            json=partitions,
        )

    def delete_topic(self, topic: str) -> None:
        self._request("DELETE", f"/admin/v2/{TopicName.parse(topic).rest_path}")

    def delete_partitioned_topic(self, topic: str) -> None:
        self._request("DELETE", f"/admin/v2/{TopicName.parse(topic).rest_path}/partitions")

    # ------------------------------------------------------------------
    # Subscriptions and schemas
    # ------------------------------------------------------------------

    def get_subscriptions(self, topic: str) -> list[str]:
        return self._request(
            "GET", f"/admin/v2/{TopicName.parse(topic).rest_path}/subscriptions"
        ) or []

    def create_subscription(
        self,
        topic: str,
        subscription: str,
        message_id: Optional[dict[str, int]] = None,
    ) -> None:
        """Create a durable subscription, positioned at the earliest message by default."""
        self._request(
            "PUT",
            f"/admin/v2/{TopicName.parse(topic).rest_path}/subscription/{subscription}",
            json=message_id or EARLIEST_MESSAGE_ID,
        )

    def create_schema(self, topic: str, payload: dict[str, Any]) -> None:
        name = TopicName.parse(topic)
        self._request(
            "POST",
            f"/admin/v2/schemas/{name.tenant}/{name.namespace}/{name.local_name}/schema",
            json=payload,
        )

    def get_schema(self, topic: str) -> Optional[dict[str, Any]]:
        name = TopicName.parse(topic)
        try:
            return self._request(
                "GET",
                f"/admin/v2/schemas/{name.tenant}/{name.namespace}/{name.local_name}/schema",
            )
        except NotFoundError:
            return None

    def transactions(self) -> TransactionCoordinatorAdmin:
        return TransactionCoordinatorAdmin(self)
