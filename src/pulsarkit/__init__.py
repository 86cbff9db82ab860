"""pulsarkit - a test-harness operator for Apache Pulsar."""

__version__ = "0.1.0"
