"""Local pipeline engine with a Pulsar sink and a controlled source."""

from pulsarkit.pipeline.environment import JobExecutionResult, StreamExecutionEnvironment
from pulsarkit.pipeline.sink import PulsarSink, PulsarSinkBuilder
from pulsarkit.pipeline.source import ControlSource

__all__ = [
    "StreamExecutionEnvironment",
    "JobExecutionResult",
    "PulsarSink",
    "PulsarSinkBuilder",
    "ControlSource",
]
