"""Controlled record source for delivery-guarantee tests."""

from __future__ import annotations

import logging
import random
import time
from datetime import timedelta
from typing import Optional

from pulsar.schema import StringSchema

from pulsarkit.core.models import DeliveryGuarantee
from pulsarkit.pipeline.environment import SourceContext
from pulsarkit.runtime.operator import PulsarRuntimeOperator, random_alphanumeric

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_TIMEOUT = timedelta(seconds=5)


class ControlSource:
    """Emits a fixed number of random strings and remembers what it emitted.

    Under exactly-once, a record is only expected once a checkpoint covering
    it has completed, because the sink publishes nothing before that. Under
    the other guarantees every emitted record is expected.
    """

    def __init__(
        self,
        operator: PulsarRuntimeOperator,
        topic: str,
        guarantee: DeliveryGuarantee,
        counts: int,
        interval: timedelta,
        timeout: timedelta,
        drain_timeout: timedelta = DEFAULT_DRAIN_TIMEOUT,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.operator = operator
        self.topic = topic
        self.guarantee = DeliveryGuarantee.parse(guarantee)
        self.counts = counts
        self.interval = interval
        self.timeout = timeout
        self.drain_timeout = drain_timeout
        self.rng = rng or random.Random()

        self._running = True
        self._emitted: list[str] = []
        self._snapshots: dict[int, int] = {}
        self._committed = 0

    def run(self, ctx: SourceContext) -> None:
        deadline = time.monotonic() + self.timeout.total_seconds()
        sleep_seconds = self.interval.total_seconds()

        while self._running and len(self._emitted) < self.counts:
            if time.monotonic() > deadline:
                raise TimeoutError(
                    f"Emitted only {len(self._emitted)} of {self.counts} records "
                    f"within {self.timeout}"
                )
            record = random_alphanumeric(10 + self.rng.randrange(20), self.rng)
            # Counted before collect, since a checkpoint can fire inside it
            self._emitted.append(record)
            ctx.collect(record)
            if sleep_seconds:
                time.sleep(sleep_seconds)

        logger.debug(f"Source for '{self.topic}' emitted {len(self._emitted)} records")

    def cancel(self) -> None:
        self._running = False

    def snapshot_state(self, checkpoint_id: int) -> None:
        self._snapshots[checkpoint_id] = len(self._emitted)

    def notify_checkpoint_complete(self, checkpoint_id: int) -> None:
        emitted = self._snapshots.pop(checkpoint_id, None)
        if emitted is not None:
            self._committed = max(self._committed, emitted)
        # Older snapshots are covered by this one
        for stale in [cid for cid in self._snapshots if cid < checkpoint_id]:
            del self._snapshots[stale]

    def get_expected_records(self) -> list[str]:
        if self.guarantee == DeliveryGuarantee.EXACTLY_ONCE:
            return list(self._emitted[: self._committed])
        return list(self._emitted)

    def get_consumed_records(self) -> list[str]:
        """Drain the topic; only call this after the pipeline has finished."""
        messages = self.operator.receive_all_messages(
            self.topic, StringSchema(), self.drain_timeout
        )
        return [message.value() for message in messages]
