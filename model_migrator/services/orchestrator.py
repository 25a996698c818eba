"""Batch migration orchestrator."""

import asyncio
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

import structlog
from structlog.stdlib import BoundLogger

from ..core.api_client import ProviderClient
from ..core.api_versions import API_VERSION_CATALOG, ApiVersionCapability, get_capability
from ..core.credentials import CredentialResolver
from ..core.domain_context import DomainContextSwitcher
from ..core.prober import CapabilityProber
from ..core.settings import MigrationSettings
from ..models.enums import TransferPhase
from ..models.instance import ResourceDescriptor, ServiceInstance
from ..models.report import BatchProgress, BatchReport, ProbeReport, ResourceOutcome
from .enumeration import SourceEnumerator
from .transfer import ConfirmCallback, ModelTransfer, ProgressCallback


class BatchOrchestrator:
    """Orchestrates model migrations from source instances to one destination.

    Fatal preconditions (domain access, credentials, destination capability)
    are checked before any model is touched. After that, each model runs the
    transfer protocol to completion before the next begins, and a failed model
    never stops the batch.
    """

    def __init__(
        self,
        client: ProviderClient,
        switcher: DomainContextSwitcher,
        resolver: CredentialResolver,
        confirm: ConfirmCallback,
        settings: MigrationSettings | None = None,
        prober: CapabilityProber | None = None,
        on_progress: ProgressCallback | None = None,
        catalog: Sequence[ApiVersionCapability] = API_VERSION_CATALOG,
    ):
        self.client = client
        self.switcher = switcher
        self.resolver = resolver
        self.confirm = confirm
        self.settings = settings or MigrationSettings()
        self.prober = prober or CapabilityProber(client)
        self.on_progress = on_progress
        self.catalog = tuple(catalog)
        self.logger: BoundLogger = structlog.get_logger().bind(component="batch_orchestrator")

    async def migrate(
        self,
        source: ServiceInstance,
        destination: ServiceInstance,
        model_ids: Sequence[str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """Enumerate models at ``source`` and migrate them to ``destination``."""
        await self.switcher.verify_access([source.context_key, destination.context_key])

        context = await self.switcher.activate(source.domain, source.subaccount)
        credential = await self.resolver.resolve(source, context)
        source_probe = await self.prober.probe_best(source, context, credential, self.catalog)
        capability = get_capability(source_probe.best_version, self.catalog)

        resources = await SourceEnumerator(self.client).enumerate(
            source, context, credential, capability, model_ids
        )
        return await self.run(resources, destination, cancel_event=cancel_event)

    async def preflight(
        self, resources: Sequence[ResourceDescriptor], destination: ServiceInstance
    ) -> ProbeReport:
        """Verify access, resolve every key and probe the destination once.

        Raises:
            ContextSwitchError, AuthResolutionError, NoCapableVersionError
        """
        sources = list({r.instance.instance_id: r.instance for r in resources}.values())
        await self.switcher.verify_access(
            [destination.context_key] + [source.context_key for source in sources]
        )

        for instance in [*sources, destination]:
            context = await self.switcher.activate(instance.domain, instance.subaccount)
            await self.resolver.resolve(instance, context)

        context = await self.switcher.activate(destination.domain, destination.subaccount)
        credential = await self.resolver.resolve(destination, context)
        return await self.prober.probe_best(destination, context, credential, self.catalog)

    async def run(
        self,
        resources: Iterable[ResourceDescriptor],
        destination: ServiceInstance,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """Migrate ``resources`` to ``destination`` in input order.

        Args:
            resources: Models to migrate
            destination: Destination instance
            cancel_event: When set, the current model's polling stops and the
                remaining models are reported as skipped

        Returns:
            BatchReport with one outcome per input model
        """
        resources = list(resources)
        probe = await self.preflight(resources, destination)
        capability = get_capability(probe.best_version, self.catalog)

        progress = BatchProgress(total=len(resources))
        transfer = ModelTransfer(
            self.client,
            self.switcher,
            self.resolver,
            destination,
            capability,
            self.confirm,
            settings=self.settings,
            progress=progress,
            on_progress=self.on_progress,
            cancel_event=cancel_event,
        )
        report = BatchReport(
            destination_id=destination.instance_id,
            destination_version=capability.version,
            probe=probe,
        )
        self.logger.info(
            "Batch started",
            destination=destination.instance_id,
            destination_version=capability.version,
            models=len(resources),
        )

        for index, resource in enumerate(resources, start=1):
            progress.index = index
            progress.model_id = resource.model_id
            progress.phase = None
            progress.percent_completed = None

            if cancel_event is not None and cancel_event.is_set():
                outcome = ResourceOutcome(
                    model_id=resource.model_id,
                    instance_id=resource.instance.instance_id,
                    state=TransferPhase.SKIPPED,
                    reason="batch cancelled",
                )
            else:
                self.logger.info(
                    "Migrating model", model_id=resource.model_id, index=index, total=len(resources)
                )
                outcome = await transfer.run(resource)

            report.outcomes.append(outcome)
            progress.processed = index
            if self.on_progress is not None:
                self.on_progress(progress)
            self.logger.info(
                "Batch progress",
                processed=progress.processed,
                total=progress.total,
                fraction=round(progress.fraction, 3),
                model_id=resource.model_id,
                state=outcome.state.value,
            )

        report.finished_at = datetime.now(UTC)
        self.logger.info(
            "Batch finished",
            completed=report.completed,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report
