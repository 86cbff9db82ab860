"""End-to-end verification of a sink's delivery guarantee."""

from __future__ import annotations

import logging
import random
import string
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from pulsar.schema import StringSchema

from pulsarkit.core.models import DeliveryGuarantee, VerificationConfig
from pulsarkit.errors import VerificationError
from pulsarkit.pipeline.environment import JobExecutionResult, StreamExecutionEnvironment
from pulsarkit.pipeline.sink import ClientFactory, PulsarSink, create_client
from pulsarkit.pipeline.source import ControlSource
from pulsarkit.runtime.operator import PulsarRuntimeOperator

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    """Phases of a verification run."""

    SETUP = "setup"
    RUN = "run"
    VERIFY = "verify"
    DONE = "done"
    FAILED = "failed"


@dataclass
class VerificationResult:
    """Outcome of one verification run."""

    topic: str
    guarantee: DeliveryGuarantee
    state: VerificationState = VerificationState.SETUP
    counts: int = 0
    expected: list[str] = field(default_factory=list)
    consumed: list[str] = field(default_factory=list)
    job: Optional[JobExecutionResult] = None
    error: Optional[str] = None

    @property
    def missing(self) -> Counter:
        """Expected records that were not consumed, with multiplicity."""
        return Counter(self.expected) - Counter(self.consumed)

    @property
    def unexpected(self) -> Counter:
        """Consumed records that were not expected, duplicates included."""
        return Counter(self.consumed) - Counter(self.expected)

    @property
    def passed(self) -> bool:
        return self.state == VerificationState.DONE

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "guarantee": self.guarantee.value,
            "state": self.state.value,
            "counts": self.counts,
            "expected": len(self.expected),
            "consumed": len(self.consumed),
            "missing": sum(self.missing.values()),
            "unexpected": sum(self.unexpected.values()),
            "checkpoints": self.job.checkpoints if self.job else 0,
            "error": self.error,
        }


def random_topic(rng: random.Random, length: int = 8) -> str:
    return "".join(rng.choices(string.ascii_letters, k=length))


class GuaranteeVerificationDriver:
    """Writes records through a Pulsar sink and checks what reached the topic.

    Each run goes SETUP -> RUN -> VERIFY -> DONE. Any error moves the run to
    FAILED and propagates; retrying is left to the caller.
    """

    def __init__(
        self,
        operator: PulsarRuntimeOperator,
        config: Optional[VerificationConfig] = None,
        rng: Optional[random.Random] = None,
        client_factory: ClientFactory = create_client,
    ) -> None:
        self.operator = operator
        self.config = config or VerificationConfig()
        self.rng = rng or random.Random()
        self.client_factory = client_factory

    def run(self, guarantee: DeliveryGuarantee) -> VerificationResult:
        guarantee = DeliveryGuarantee.parse(guarantee)
        result = VerificationResult(topic=random_topic(self.rng), guarantee=guarantee)

        try:
            source = self._setup(result)
            result.state = VerificationState.RUN
            result.job = self._execute(result, source)
            result.state = VerificationState.VERIFY
            self._verify(result, source)
        except Exception as e:
            result.state = VerificationState.FAILED
            result.error = str(e)
            logger.error(f"Verification of {guarantee.value} on '{result.topic}' failed: {e}")
            raise

        result.state = VerificationState.DONE
        logger.info(
            f"Verified {guarantee.value} on '{result.topic}': "
            f"{len(result.consumed)} records consumed as expected"
        )
        return result

    def _setup(self, result: VerificationResult) -> ControlSource:
        config = self.config
        self.operator.create_topic(result.topic, config.partitions)
        self.operator.create_schema(result.topic, StringSchema())
        result.counts = self.rng.randrange(config.min_records, config.max_records)

        return ControlSource(
            self.operator,
            result.topic,
            result.guarantee,
            result.counts,
            interval=timedelta(milliseconds=config.record_interval_ms),
            timeout=timedelta(seconds=config.timeout_seconds),
            drain_timeout=timedelta(seconds=config.drain_timeout_seconds),
            rng=self.rng,
        )

    def _execute(self, result: VerificationResult, source: ControlSource) -> JobExecutionResult:
        sink = (
            PulsarSink.builder()
            .set_service_url(self.operator.service_url)
            .set_admin_url(self.operator.admin_url)
            .set_delivery_guarantee(result.guarantee)
            .set_topics(result.topic)
            .set_serialization_schema(StringSchema())
            .set_client_factory(self.client_factory)
            .set_all_config(self.operator.sink_config(result.guarantee))
            .build()
        )

        env = StreamExecutionEnvironment.get_execution_environment()
        env.set_parallelism(self.config.parallelism)
        if result.guarantee != DeliveryGuarantee.NONE:
            env.enable_checkpointing(self.config.checkpoint_interval_ms)
        env.add_source(source).sink_to(sink)
        return env.execute(f"verify-{result.guarantee.value}-{result.topic}")

    def _verify(self, result: VerificationResult, source: ControlSource) -> None:
        result.expected = source.get_expected_records()
        result.consumed = source.get_consumed_records()

        if len(result.consumed) != len(result.expected) or result.missing or result.unexpected:
            raise VerificationError(
                f"Consumed {len(result.consumed)} records but expected {len(result.expected)} "
                f"({sum(result.missing.values())} missing, "
                f"{sum(result.unexpected.values())} unexpected)"
            )
