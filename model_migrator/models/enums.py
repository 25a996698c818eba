"""Enum definitions for model migration."""

from enum import Enum
from typing import Literal

# Type aliases
ConflictPolicy = Literal["ask", "yes", "no"]


class ApiOperation(Enum):
    """Operation categories that carry a per-version path template."""

    LIST = "list"
    AUTHORIZE = "authorize"
    COPY = "copy"
    DELETE = "delete"


class TransferPhase(Enum):
    """Phases of the per-model authorize, copy and poll protocol."""

    VERSION_CHECK = "version_check"
    AUTHORIZING = "authorizing"
    COPY_INITIATING = "copy_initiating"
    POLLING = "polling"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferPhase.COMPLETED, TransferPhase.SKIPPED, TransferPhase.FAILED)
