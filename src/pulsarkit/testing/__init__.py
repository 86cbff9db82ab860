"""Delivery-guarantee verification for Pulsar sinks."""

from pulsarkit.testing.verification import (
    GuaranteeVerificationDriver,
    VerificationResult,
    VerificationState,
)

__all__ = ["GuaranteeVerificationDriver", "VerificationResult", "VerificationState"]
