"""Data models for the model migrator."""

from .enums import ApiOperation, ConflictPolicy, TransferPhase  # noqa: F401
from .instance import ResourceDescriptor, ServiceInstance  # noqa: F401
from .report import (  # noqa: F401
    BatchProgress,
    BatchReport,
    ProbeReport,
    ProbeRow,
    ResourceOutcome,
)
from .transfer import OperationHandle, OperationStatus, TransferAuthorization  # noqa: F401

__all__ = [
    # Enums
    "ApiOperation",
    "ConflictPolicy",
    "TransferPhase",
    # Instance models
    "ResourceDescriptor",
    "ServiceInstance",
    # Report models
    "BatchProgress",
    "BatchReport",
    "ProbeReport",
    "ProbeRow",
    "ResourceOutcome",
    # Transfer models
    "OperationHandle",
    "OperationStatus",
    "TransferAuthorization",
]
