"""Copy protocol payloads: authorization, operation handle and status."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict


class TransferAuthorization(BaseModel):
    """Opaque copy authorization issued by the destination.

    ``raw`` holds the response body exactly as received; it is forwarded to
    the source's copy call without being re-serialized.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    raw: bytes

    def payload(self) -> dict[str, Any]:
        """Decoded view of the authorization, for logging and inspection only."""
        try:
            loaded = json.loads(self.raw)
        except (ValueError, UnicodeDecodeError):
            return {}
        return loaded if isinstance(loaded, dict) else {}


class OperationHandle(BaseModel):
    """Pollable reference to an in-progress copy; the URL embeds its API version."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    url: str
    model_id: str


class OperationStatus(BaseModel):
    """One status observation of a copy operation."""

    status: str
    percent_completed: int | None = None
    error_detail: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.percent_completed == 100
