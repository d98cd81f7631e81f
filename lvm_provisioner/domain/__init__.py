"""Domain models for the provisioning pipeline."""

from __future__ import annotations

from .models import (
    DiskProbe,
    PartitionGeometry,
    PartitionName,
    PartitionSplit,
    ProvisionOutcome,
)


__all__ = [
    "DiskProbe",
    "PartitionGeometry",
    "PartitionName",
    "PartitionSplit",
    "ProvisionOutcome",
]
