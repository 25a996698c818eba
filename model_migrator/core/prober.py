"""API version capability probing."""

from collections.abc import Sequence

import structlog

from ..constants import MODEL_ID, PREBUILT_MODEL_PREFIX
from ..models.enums import ApiOperation
from ..models.instance import ServiceInstance
from ..models.report import ProbeReport, ProbeRow
from .api_client import ProviderClient
from .api_versions import API_VERSION_CATALOG, ApiVersionCapability
from .credentials import Credential
from .domain_context import ActiveContext
from .exceptions import ApiRequestError, NoCapableVersionError

logger = structlog.get_logger()


def count_custom_models(models: list[dict]) -> int:
    """Count models, leaving out the provider's built-in ``prebuilt-`` ones."""
    return sum(
        1 for model in models if not str(model.get(MODEL_ID, "")).startswith(PREBUILT_MODEL_PREFIX)
    )


class CapabilityProber:
    """Finds the newest API version an instance actually answers.

    Every probe attempt is kept in a diagnostic report, which stays available
    through ``last_reports`` for troubleshooting after the probe returns.
    """

    def __init__(self, client: ProviderClient):
        self.client = client
        self.last_reports: dict[str, ProbeReport] = {}
        self.logger = logger.bind(component="capability_prober")

    async def probe_best(
        self,
        instance: ServiceInstance,
        context: ActiveContext,
        credential: Credential,
        catalog: Sequence[ApiVersionCapability] = API_VERSION_CATALOG,
    ) -> ProbeReport:
        """Probe each catalog version (oldest first) and pick the last that answers 200.

        Args:
            instance: Instance to probe
            context: Active context the instance belongs to
            credential: Instance API key
            catalog: Versions ordered oldest -> newest

        Returns:
            ProbeReport with one row per catalog entry and ``best_version`` set

        Raises:
            NoCapableVersionError: If no version answered 200
        """
        report = ProbeReport(instance_id=instance.instance_id)
        self.last_reports[instance.instance_id] = report

        for capability in catalog:
            url = capability.url(instance.base_url, ApiOperation.LIST)
            try:
                models = await self.client.list_models(instance, context, credential, capability)
            except ApiRequestError as e:
                row = ProbeRow(
                    version=capability.version, status=e.status, url=url, error=e.detail or str(e)
                )
            else:
                row = ProbeRow(
                    version=capability.version,
                    status=200,
                    model_count=count_custom_models(models),
                    url=url,
                )
                report.best_version = capability.version

            report.rows.append(row)
            self.logger.debug(
                "Probed API version",
                instance_id=instance.instance_id,
                version=row.version,
                status=row.status,
                model_count=row.model_count,
            )

        for line in report.format_table():
            self.logger.info(line, instance_id=instance.instance_id)

        if report.best_version is None:
            raise NoCapableVersionError(
                f"Instance {instance.instance_id} answered none of "
                f"{len(report.rows)} API versions",
                report=report,
            )

        self.logger.info(
            "Capability probe complete",
            instance_id=instance.instance_id,
            best_version=report.best_version,
            supported=report.supported_versions,
        )
        return report
