"""
Model Transfer State Machine

Drives one model through the cross-domain copy protocol:

    VERSION_CHECK -> AUTHORIZING -> COPY_INITIATING -> POLLING -> COMPLETED
                                                               \\-> SKIPPED / FAILED

Authorization runs under the destination's context; copy initiation and
polling run under the source's context with the source instance's own key.
A 409 on authorization means an orphaned model with the same id may exist at
the destination; the operator is asked whether to delete it and retry once.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from ..constants import OPERATION_FAILED_STATUSES
from ..core.api_client import ProviderClient
from ..core.api_versions import ApiVersionCapability, is_newer
from ..core.credentials import Credential, CredentialResolver
from ..core.domain_context import ActiveContext, DomainContextSwitcher
from ..core.exceptions import (
    ApiRequestError,
    AuthorizationConflict,
    PollError,
    PollTimeoutError,
    TransferCancelled,
    TransferRequestError,
    VersionIncompatible,
)
from ..core.settings import MigrationSettings
from ..models.enums import TransferPhase
from ..models.instance import ResourceDescriptor, ServiceInstance
from ..models.report import BatchProgress, ResourceOutcome
from ..models.transfer import OperationHandle, OperationStatus, TransferAuthorization

ConfirmCallback = Callable[[str], bool]
ProgressCallback = Callable[[BatchProgress], None]

PER_RESOURCE_ERRORS = (
    AuthorizationConflict,
    TransferRequestError,
    PollError,
    TransferCancelled,
)


@dataclass
class _TransferState:
    """Mutable bookkeeping for one model's protocol run."""

    phase: TransferPhase = TransferPhase.VERSION_CHECK
    authorize_attempts: int = 0
    poll_count: int = 0


class ModelTransfer:
    """Runs the authorize, copy and poll protocol for models of one batch."""

    def __init__(
        self,
        client: ProviderClient,
        switcher: DomainContextSwitcher,
        resolver: CredentialResolver,
        destination: ServiceInstance,
        destination_capability: ApiVersionCapability,
        confirm: ConfirmCallback,
        settings: MigrationSettings | None = None,
        progress: BatchProgress | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.client = client
        self.switcher = switcher
        self.resolver = resolver
        self.destination = destination
        self.capability = destination_capability
        self.confirm = confirm
        self.settings = settings or MigrationSettings()
        self.progress = progress or BatchProgress()
        self.on_progress = on_progress
        self.cancel_event = cancel_event
        self.logger = structlog.get_logger().bind(component="model_transfer")

    @property
    def destination_version(self) -> str:
        return self.capability.version

    async def run(self, resource: ResourceDescriptor) -> ResourceOutcome:
        """Drive one model to a terminal state.

        Per-model errors are caught here and recorded in the outcome; fatal
        errors (context or credential failures) propagate.
        """
        started = time.monotonic()
        state = _TransferState()
        log = self.logger.bind(model_id=resource.model_id, instance_id=resource.instance.instance_id)

        def outcome(terminal: TransferPhase, **fields) -> ResourceOutcome:
            self._report(terminal)
            return ResourceOutcome(
                model_id=resource.model_id,
                instance_id=resource.instance.instance_id,
                state=terminal,
                authorize_attempts=state.authorize_attempts,
                poll_count=state.poll_count,
                duration_seconds=round(time.monotonic() - started, 3),
                **fields,
            )

        try:
            self._enter(state, TransferPhase.VERSION_CHECK)
            self._check_version(resource)

            self._raise_if_cancelled(resource)
            authorization = await self._authorize(resource, state)
            self._raise_if_cancelled(resource)
            handle = await self._initiate_copy(resource, authorization, state)
            final = await self._poll(resource, handle, state)
        except VersionIncompatible as e:
            log.warning("Model skipped", reason=str(e))
            return outcome(TransferPhase.SKIPPED, phase=state.phase, reason=str(e))
        except PER_RESOURCE_ERRORS as e:
            detail = getattr(e, "detail", None)
            log.error(
                "Model transfer failed",
                phase=state.phase.value,
                error=str(e),
                error_type=type(e).__name__,
                detail=detail,
            )
            return outcome(
                TransferPhase.FAILED, phase=state.phase, reason=str(e), error_detail=detail
            )

        log.info(
            "Model transfer completed",
            final_status=final.status,
            polls=state.poll_count,
            destination_version=self.destination_version,
        )
        return outcome(TransferPhase.COMPLETED, final_status=final.status)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _check_version(self, resource: ResourceDescriptor) -> None:
        """Raise VersionIncompatible if the model is newer than the destination supports."""
        source_version = resource.api_version
        if not source_version:
            self.logger.warning(
                "Model has no recorded API version, assuming compatible",
                model_id=resource.model_id,
            )
            return

        try:
            newer = is_newer(source_version, self.destination_version)
        except ValueError as e:
            raise VersionIncompatible(
                f"cannot compare source API version {source_version} "
                f"with destination best {self.destination_version}: {e}"
            ) from e

        if newer:
            raise VersionIncompatible(
                f"source API version {source_version} is newer than destination best "
                f"{self.destination_version}"
            )

    async def _authorize(
        self, resource: ResourceDescriptor, state: _TransferState
    ) -> TransferAuthorization:
        self._enter(state, TransferPhase.AUTHORIZING)
        context = await self.switcher.activate(self.destination.domain, self.destination.subaccount)
        credential = await self.resolver.resolve(self.destination, context)

        try:
            return await self._request_authorization(resource, context, credential, state)
        except AuthorizationConflict as conflict:
            prompt = (
                f"Destination {self.destination.instance_id} rejected authorization for model "
                f"'{resource.model_id}' with a conflict. A model with this id may already exist "
                "there, possibly orphaned by an earlier failed migration. Delete it at the "
                "destination and retry? Any existing model with this id will be lost."
            )
            if not self.confirm(prompt):
                raise AuthorizationConflict(
                    f"Model {resource.model_id} conflicts with an existing destination model; "
                    "recovery declined",
                    detail=conflict.detail,
                ) from conflict

            self.logger.warning(
                "Deleting conflicting destination model",
                model_id=resource.model_id,
                destination=self.destination.instance_id,
            )
            try:
                await self.client.delete_model(
                    self.destination, context, credential, self.capability, resource.model_id
                )
            except ApiRequestError as e:
                raise TransferRequestError(
                    f"Deleting conflicting model {resource.model_id} at destination failed: {e}",
                    detail=e.detail,
                ) from e

            return await self._request_authorization(resource, context, credential, state)

    async def _request_authorization(
        self,
        resource: ResourceDescriptor,
        context: ActiveContext,
        credential: Credential,
        state: _TransferState,
    ) -> TransferAuthorization:
        state.authorize_attempts += 1
        try:
            authorization = await self.client.authorize_copy(
                self.destination,
                context,
                credential,
                self.capability,
                resource.model_id,
                resource.description,
            )
        except ApiRequestError as e:
            if e.status == 409:
                raise AuthorizationConflict(
                    f"Authorization for {resource.model_id} conflicted (HTTP 409)",
                    detail=e.detail,
                ) from e
            raise TransferRequestError(
                f"Authorization for {resource.model_id} failed: {e}", detail=e.detail
            ) from e

        self.logger.debug(
            "Copy authorized",
            model_id=resource.model_id,
            attempt=state.authorize_attempts,
            target_model=authorization.payload().get("targetModelId"),
        )
        return authorization

    async def _initiate_copy(
        self,
        resource: ResourceDescriptor,
        authorization: TransferAuthorization,
        state: _TransferState,
    ) -> OperationHandle:
        self._enter(state, TransferPhase.COPY_INITIATING)
        source = resource.instance
        context = await self.switcher.activate(source.domain, source.subaccount)
        credential = await self.resolver.resolve(source, context)

        try:
            handle = await self.client.initiate_copy(
                source, context, credential, self.capability, resource.model_id, authorization
            )
        except ApiRequestError as e:
            raise TransferRequestError(
                f"Copy of {resource.model_id} could not be started: {e}", detail=e.detail
            ) from e

        self.logger.info("Copy started", model_id=resource.model_id, operation=handle.url)
        return handle

    async def _poll(
        self, resource: ResourceDescriptor, handle: OperationHandle, state: _TransferState
    ) -> OperationStatus:
        self._enter(state, TransferPhase.POLLING)
        source = resource.instance
        context = await self.switcher.activate(source.domain, source.subaccount)
        credential = await self.resolver.resolve(source, context)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.poll_timeout
        max_attempts = self.settings.max_poll_attempts

        while True:
            self._raise_if_cancelled(resource)
            try:
                status = await self.client.poll_operation(source, context, credential, handle)
            except ApiRequestError as e:
                raise PollError(
                    f"Polling copy of {resource.model_id} failed: {e}", detail=e.detail
                ) from e

            state.poll_count += 1
            self._report(TransferPhase.POLLING, status.percent_completed)
            self.logger.debug(
                "Copy status",
                model_id=resource.model_id,
                status=status.status,
                percent_completed=status.percent_completed,
            )

            if status.status.lower() in OPERATION_FAILED_STATUSES:
                raise PollError(
                    f"Copy of {resource.model_id} ended with status '{status.status}'",
                    detail=status.error_detail,
                )
            if status.is_complete:
                return status

            if max_attempts is not None and state.poll_count >= max_attempts:
                raise PollTimeoutError(
                    f"Copy of {resource.model_id} not complete after {state.poll_count} polls"
                )
            if loop.time() >= deadline:
                raise PollTimeoutError(
                    f"Copy of {resource.model_id} not complete after "
                    f"{self.settings.poll_timeout:g}s"
                )

            await self._wait(self.settings.poll_interval)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, state: _TransferState, phase: TransferPhase) -> None:
        state.phase = phase
        self._report(phase)

    def _report(self, phase: TransferPhase, percent: int | None = None) -> None:
        self.progress.phase = phase
        self.progress.percent_completed = percent
        if self.on_progress is not None:
            self.on_progress(self.progress)

    def _raise_if_cancelled(self, resource: ResourceDescriptor) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TransferCancelled(f"Transfer of {resource.model_id} cancelled")

    async def _wait(self, seconds: float) -> None:
        """Sleep between polls, waking early if the batch is cancelled."""
        if self.cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
