"""Runtime operator for Pulsar test environments."""

from pulsarkit.runtime.admin import PulsarAdmin
from pulsarkit.runtime.client import SUBSCRIPTION_NAME, BrokerClient
from pulsarkit.runtime.config import Configuration, ConfigurationAssembler
from pulsarkit.runtime.exchanger import MessageExchanger
from pulsarkit.runtime.operator import PulsarRuntimeOperator
from pulsarkit.runtime.provisioner import TopicProvisioner

__all__ = [
    "PulsarRuntimeOperator",
    "PulsarAdmin",
    "BrokerClient",
    "TopicProvisioner",
    "MessageExchanger",
    "Configuration",
    "ConfigurationAssembler",
    "SUBSCRIPTION_NAME",
]
