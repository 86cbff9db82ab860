"""Tests for idempotent provisioning."""

from types import SimpleNamespace

import pytest

from pulsarkit.errors import ConflictError, InvalidArgumentError, PulsarAdminError

FQ_ORDERS = "persistent://public/default/orders"


class TestTenantsAndNamespaces:
    """Tests for list-then-create idempotency."""

    def test_create_tenant_uses_all_clusters(self, operator, cluster):
        cluster.clusters.append("backup")

        operator.create_tenant("acme")

        assert cluster.tenants["acme"] == ["standalone", "backup"]

    def test_create_tenant_twice(self, operator, cluster):
        operator.create_tenant("acme")
        operator.create_tenant("acme")

        creates = [c for c in cluster.admin.calls if c[0] == "create_tenant"]
        assert creates == [("create_tenant", "acme")]

    def test_existing_tenant_is_not_recreated(self, operator, cluster):
        operator.create_tenant("public")
        assert not cluster.admin.calls

    def test_create_namespace_creates_tenant(self, operator, cluster):
        operator.create_namespace("acme/sales")

        assert "acme" in cluster.tenants
        assert "acme/sales" in cluster.namespaces["acme"]

    def test_create_namespace_twice(self, operator, cluster):
        operator.create_namespace("acme/sales")
        operator.create_namespace("acme/sales")

        assert cluster.namespaces["acme"] == ["acme/sales"]


class TestTopics:
    """Tests for topic creation, growth and deletion."""

    def test_zero_partitions_is_non_partitioned(self, operator, cluster):
        operator.create_topic("orders", 0)

        assert cluster.topics[FQ_ORDERS] == 0
        assert cluster.admin.calls == [("create_non_partitioned_topic", FQ_ORDERS)]

    def test_partitioned_topic(self, operator, cluster):
        operator.create_topic("orders", 4)
        assert cluster.topics[FQ_ORDERS] == 4

    def test_negative_partitions_rejected(self, operator, cluster):
        with pytest.raises(InvalidArgumentError):
            operator.create_topic("orders", -1)
        assert not cluster.admin.calls

    def test_create_topic_twice_keeps_state(self, operator, cluster):
        operator.create_topic("orders", 4)
        operator.create_topic("orders", 4)

        assert cluster.topics == {FQ_ORDERS: 4}

    def test_other_conflicts_propagate(self, operator, cluster):
        def conflict(topic, partitions):
            raise ConflictError("Topic is being deleted", 409)

        cluster.admin.create_partitioned_topic = conflict

        with pytest.raises(ConflictError):
            operator.create_topic("orders", 2)

    def test_other_errors_propagate(self, operator, cluster):
        def unavailable(topic):
            raise PulsarAdminError("Service unavailable", 503)

        cluster.admin.create_non_partitioned_topic = unavailable

        with pytest.raises(PulsarAdminError):
            operator.create_topic("orders", 0)

    def test_increase_partitions(self, operator, cluster):
        operator.create_topic("orders", 2)

        operator.increase_topic_partitions("orders", 5)

        assert cluster.topics[FQ_ORDERS] == 5

    @pytest.mark.parametrize("new_count", [1, 2])
    def test_increase_partitions_must_grow(self, operator, cluster, new_count):
        operator.create_topic("orders", 2)

        with pytest.raises(InvalidArgumentError):
            operator.increase_topic_partitions("orders", new_count)
        assert cluster.topics[FQ_ORDERS] == 2

    def test_delete_partitioned_topic(self, operator, cluster):
        operator.create_topic("orders", 3)

        operator.delete_topic("orders")

        assert FQ_ORDERS not in cluster.topics
        assert ("delete_partitioned_topic", FQ_ORDERS) in cluster.admin.calls

    def test_delete_non_partitioned_topic(self, operator, cluster):
        operator.create_topic("orders", 0)

        operator.delete_topic("orders")

        assert ("delete_topic", FQ_ORDERS) in cluster.admin.calls

    def test_delete_missing_topic_is_silent(self, operator, cluster):
        operator.delete_topic("missing")
        assert not cluster.admin.calls

    def test_delete_twice(self, operator, cluster):
        operator.create_topic("orders", 2)

        operator.delete_topic("orders")
        operator.delete_topic("orders")

        assert FQ_ORDERS not in cluster.topics

    def test_topic_partitions_are_ordered(self, operator):
        operator.create_topic("orders", 3)

        partitions = operator.topic_info("orders")

        assert [p.partition_id for p in partitions] == [0, 1, 2]
        assert all(p.topic == FQ_ORDERS for p in partitions)
        assert partitions[1].full_name() == f"{FQ_ORDERS}-partition-1"

    def test_non_partitioned_topic_has_single_entry(self, operator):
        operator.create_topic("orders", 0)

        partitions = operator.topic_info("orders")

        assert len(partitions) == 1
        assert partitions[0].partition_id == -1

    def test_create_schema_uploads_schema_info(self, operator, cluster):
        info = SimpleNamespace(
            schema_type=lambda: SimpleNamespace(name="STRING"),
            schema=lambda: "",
        )
        schema = SimpleNamespace(schema_info=lambda: info)

        operator.create_schema("orders", schema)

        assert cluster.schemas[FQ_ORDERS] == {"type": "STRING", "schema": "", "properties": {}}
