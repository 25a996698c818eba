"""
Model Migrator Services

Source enumeration, the per-model transfer protocol and batch orchestration.
"""

from .enumeration import SourceEnumerator  # noqa: F401
from .orchestrator import BatchOrchestrator  # noqa: F401
from .transfer import ConfirmCallback, ModelTransfer, ProgressCallback  # noqa: F401

__all__ = [
    "BatchOrchestrator",
    "ConfirmCallback",
    "ModelTransfer",
    "ProgressCallback",
    "SourceEnumerator",
]
