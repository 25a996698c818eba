"""API version catalog and chronological version comparison.

Versions are date-coded strings such as ``2023-07-31`` or
``2024-02-29-preview``. Ordering is by the parsed date prefix; for the same
date a suffixed (preview) release sorts before the plain GA release.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from urllib.parse import quote

from ..constants import API_VERSION_PARAM
from ..models.enums import ApiOperation

_VERSION_PATTERN = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})(?:-([A-Za-z0-9.]+))?\s*$")


def parse_version(version: str) -> tuple[date, int]:
    """Parse a date-coded version into a sortable key.

    Raises:
        ValueError: If the version has no valid date prefix
    """
    match = _VERSION_PATTERN.match(version or "")
    if not match:
        raise ValueError(f"Unrecognized API version format: {version!r}")

    year, month, day, suffix = match.groups()
    try:
        released = date(int(year), int(month), int(day))
    except ValueError as e:
        raise ValueError(f"Invalid date in API version {version!r}: {e}") from e

    return released, 0 if suffix else 1


def is_newer(version: str, than: str) -> bool:
    """True if ``version`` is chronologically strictly newer than ``than``."""
    return parse_version(version) > parse_version(than)


def _templates(base_path: str) -> dict[ApiOperation, str]:
    models = f"/{base_path}/documentModels"
    return {
        ApiOperation.LIST: models,
        ApiOperation.AUTHORIZE: models + ":authorizeCopy",
        ApiOperation.COPY: models + "/{model_id}:copyTo",
        ApiOperation.DELETE: models + "/{model_id}",
    }


@dataclass(frozen=True)
class ApiVersionCapability:
    """Catalog entry: a version and the paths used for each operation category."""

    version: str
    base_path: str
    templates: dict[ApiOperation, str] = field(default_factory=dict, compare=False)

    def path(self, operation: ApiOperation, model_id: str | None = None) -> str:
        template = self.templates[operation]
        if "{model_id}" in template:
            if not model_id:
                raise ValueError(f"Operation {operation.value} requires a model id")
            return template.format(model_id=quote(model_id, safe=""))
        return template

    def url(self, base_url: str, operation: ApiOperation, model_id: str | None = None) -> str:
        """Build the full request URL for an operation at this version."""
        return (
            f"{base_url.rstrip('/')}{self.path(operation, model_id)}"
            f"?{API_VERSION_PARAM}={self.version}"
        )


def _capability(version: str, base_path: str) -> ApiVersionCapability:
    return ApiVersionCapability(version=version, base_path=base_path, templates=_templates(base_path))


# Ordered oldest -> newest
API_VERSION_CATALOG: tuple[ApiVersionCapability, ...] = (
    _capability("2022-08-31", "formrecognizer"),
    _capability("2023-07-31", "formrecognizer"),
    _capability("2024-02-29-preview", "documentintelligence"),
    _capability("2024-07-31-preview", "documentintelligence"),
    _capability("2024-11-30", "documentintelligence"),
)


def get_capability(
    version: str, catalog: tuple[ApiVersionCapability, ...] = API_VERSION_CATALOG
) -> ApiVersionCapability:
    """Look up the catalog entry for a version.

    Raises:
        ValueError: If the version is not in the catalog
    """
    for capability in catalog:
        if capability.version == version:
            return capability
    raise ValueError(f"API version {version} is not in the catalog")
