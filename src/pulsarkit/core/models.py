"""Pydantic models for pulsarkit settings."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# ============================================================================
# Enums
# ============================================================================


class DeliveryGuarantee(str, Enum):
    """Duplicate/loss avoidance offered by a sink."""

    NONE = "none"
    AT_LEAST_ONCE = "at-least-once"
    EXACTLY_ONCE = "exactly-once"

    @classmethod
    def parse(cls, value: "str | DeliveryGuarantee") -> "DeliveryGuarantee":
        """Accept enum values, enum names, and underscore spellings."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        for guarantee in cls:
            if guarantee.value == normalized:
                return guarantee
        raise ValueError(f"Unknown delivery guarantee '{value}'")


# ============================================================================
# Runtime Configuration
# ============================================================================


class PulsarConfig(BaseModel):
    """Pulsar cluster connection settings."""

    service_url: str = "pulsar://localhost:6650"
    admin_url: str = "http://localhost:8080"
    # URLs handed to pipelines running next to the broker (e.g. inside Docker)
    container_service_url: Optional[str] = None
    container_admin_url: Optional[str] = None
    operation_timeout_seconds: int = 30
    token: Optional[str] = None

    @field_validator("service_url")
    @classmethod
    def check_service_url(cls, v: str) -> str:
        if not v.startswith(("pulsar://", "pulsar+ssl://", "http://", "https://")):
            raise ValueError(f"Invalid Pulsar service URL '{v}'")
        return v

    @field_validator("admin_url")
    @classmethod
    def check_admin_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid Pulsar admin URL '{v}'")
        return v.rstrip("/")


class VerificationConfig(BaseModel):
    """Defaults for delivery-guarantee verification runs."""

    partitions: int = Field(4, ge=0)
    min_records: int = Field(100, ge=1)
    max_records: int = Field(200, ge=2)
    checkpoint_interval_ms: int = Field(500, gt=0)
    record_interval_ms: int = Field(50, ge=0)
    timeout_seconds: float = Field(300, gt=0)
    drain_timeout_seconds: float = Field(5, gt=0)
    parallelism: int = Field(1, ge=1)

    @model_validator(mode="after")
    def check_record_range(self) -> "VerificationConfig":
        if self.max_records <= self.min_records:
            raise ValueError(
                f"max_records ({self.max_records}) must be greater than "
                f"min_records ({self.min_records})"
            )
        return self


class Settings(BaseModel):
    """All pulsarkit settings."""

    pulsar: PulsarConfig = Field(default_factory=PulsarConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
