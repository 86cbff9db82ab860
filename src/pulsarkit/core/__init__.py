"""Core models and settings for pulsarkit."""

from pulsarkit.core.models import DeliveryGuarantee, PulsarConfig, Settings, VerificationConfig
from pulsarkit.core.parser import SettingsParser, load_settings

__all__ = [
    "DeliveryGuarantee",
    "PulsarConfig",
    "VerificationConfig",
    "Settings",
    "SettingsParser",
    "load_settings",
]
