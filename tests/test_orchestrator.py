"""Tests for batch orchestration."""

import asyncio

import pytest

from model_migrator.core.api_versions import API_VERSION_CATALOG
from model_migrator.core.domain_context import DomainContextSwitcher, StaticTokenProvider
from model_migrator.core.exceptions import (
    ApiRequestError,
    AuthResolutionError,
    ContextSwitchError,
    NoCapableVersionError,
)
from model_migrator.models.enums import TransferPhase
from model_migrator.models.instance import ServiceInstance
from model_migrator.models.transfer import OperationHandle, OperationStatus
from model_migrator.services.orchestrator import BatchOrchestrator


@pytest.fixture
def orchestrator(mock_client, switcher, resolver, fast_settings) -> BatchOrchestrator:
    return BatchOrchestrator(
        mock_client, switcher, resolver, lambda message: True, settings=fast_settings
    )


def fail_copy_of(*model_ids):
    async def _initiate(source, context, credential, capability, model_id, authorization):
        if model_id in model_ids:
            raise ApiRequestError("Copy returned HTTP 400", status=400, detail="InvalidRequest")
        return OperationHandle(url=f"https://op/{model_id}", model_id=model_id)

    return _initiate


class TestBatchRun:
    """Test sequential processing and per-model isolation."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        mock_client.initiate_copy.side_effect = fail_copy_of("a")
        resources = [make_resource("a"), make_resource("b"), make_resource("c")]

        report = await orchestrator.run(resources, destination_instance)

        assert [o.model_id for o in report.outcomes] == ["a", "b", "c"]
        assert [o.state for o in report.outcomes] == [
            TransferPhase.FAILED,
            TransferPhase.COMPLETED,
            TransferPhase.COMPLETED,
        ]
        assert report.failed == 1
        assert report.completed == 2
        assert not report.all_completed
        assert report.finished_at is not None

    @pytest.mark.asyncio
    async def test_models_processed_in_input_order(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        resources = [make_resource(name) for name in ("zeta", "alpha", "mid")]

        await orchestrator.run(resources, destination_instance)

        copied = [call.args[4] for call in mock_client.initiate_copy.await_args_list]
        assert copied == ["zeta", "alpha", "mid"]

    @pytest.mark.asyncio
    async def test_mixed_outcomes_summary(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        mock_client.initiate_copy.side_effect = fail_copy_of("broken")
        resources = [
            make_resource("ok"),
            make_resource("too-new", "2099-01-01"),
            make_resource("broken"),
        ]

        report = await orchestrator.run(resources, destination_instance)

        assert (report.completed, report.skipped, report.failed) == (1, 1, 1)
        assert report.destination_version == "2024-11-30"
        lines = report.summary_lines()
        assert lines[-1] == "Total: 3  completed: 1  skipped: 1  failed: 1"
        assert any("too-new" in line and "skipped" in line for line in lines)

    @pytest.mark.asyncio
    async def test_destination_probed_once(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        await orchestrator.run(
            [make_resource("a"), make_resource("b")], destination_instance
        )

        assert mock_client.list_models.await_count == len(API_VERSION_CATALOG)

    @pytest.mark.asyncio
    async def test_progress_callback(
        self, mock_client, switcher, resolver, fast_settings, make_resource, destination_instance
    ):
        processed = []

        def on_progress(progress):
            processed.append((progress.processed, progress.total))

        orchestrator = BatchOrchestrator(
            mock_client, switcher, resolver, lambda message: True,
            settings=fast_settings, on_progress=on_progress,
        )

        await orchestrator.run([make_resource("a"), make_resource("b")], destination_instance)

        assert processed[-1] == (2, 2)
        assert (1, 2) in processed

    @pytest.mark.asyncio
    async def test_empty_batch(self, orchestrator, destination_instance):
        report = await orchestrator.run([], destination_instance)

        assert report.outcomes == []
        assert report.all_completed


class TestPreflight:
    """Test that fatal preconditions abort before any model is touched."""

    @pytest.mark.asyncio
    async def test_destination_without_capable_version(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        mock_client.list_models.side_effect = ApiRequestError("HTTP 404", status=404)

        with pytest.raises(NoCapableVersionError):
            await orchestrator.run([make_resource("a")], destination_instance)

        mock_client.authorize_copy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unresolvable_source_key(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        keyless = ServiceInstance(
            instance_id="keyless-src",
            domain="tenant-a",
            subaccount="sub-a",
            resource_group="rg",
            account_name="acct",
            endpoint="https://keyless.example.com",
        )
        mock_client.list_keys.side_effect = ApiRequestError("HTTP 403", status=403)

        with pytest.raises(AuthResolutionError, match="Not authorized"):
            await orchestrator.run([make_resource("a", instance=keyless)], destination_instance)

        mock_client.authorize_copy.assert_not_awaited()
        mock_client.list_models.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unauthorized_domain(
        self, mock_client, resolver, fast_settings, make_resource, destination_instance
    ):
        switcher = DomainContextSwitcher(
            mock_client, StaticTokenProvider({"tenant-a": "token-a"}), verify_remote=True
        )
        orchestrator = BatchOrchestrator(
            mock_client, switcher, resolver, lambda message: True, settings=fast_settings
        )

        with pytest.raises(ContextSwitchError, match="tenant-b"):
            await orchestrator.run([make_resource("a")], destination_instance)

        mock_client.authorize_copy.assert_not_awaited()


class TestCancellation:
    """Test graceful batch cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        cancel_event = asyncio.Event()
        cancel_event.set()

        report = await orchestrator.run(
            [make_resource("a"), make_resource("b")], destination_instance, cancel_event
        )

        assert [o.state for o in report.outcomes] == [TransferPhase.SKIPPED] * 2
        assert all(o.reason == "batch cancelled" for o in report.outcomes)
        mock_client.authorize_copy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_during_first_model(
        self, orchestrator, mock_client, make_resource, destination_instance
    ):
        cancel_event = asyncio.Event()

        async def _poll(*args):
            cancel_event.set()
            return OperationStatus(status="running", percent_completed=40)

        mock_client.poll_operation.side_effect = _poll

        report = await orchestrator.run(
            [make_resource("a"), make_resource("b"), make_resource("c")],
            destination_instance,
            cancel_event,
        )

        first, *rest = report.outcomes
        assert first.state is TransferPhase.FAILED
        assert "cancelled" in first.reason
        assert [o.state for o in rest] == [TransferPhase.SKIPPED] * 2
        assert mock_client.initiate_copy.await_count == 1


class TestMigrate:
    """Test end-to-end enumeration plus batch run."""

    @pytest.mark.asyncio
    async def test_migrates_custom_models(
        self, orchestrator, mock_client, source_instance, destination_instance
    ):
        mock_client.list_models.return_value = [
            {"modelId": "prebuilt-invoice", "apiVersion": "2024-11-30"},
            {"modelId": "invoices", "apiVersion": "2023-07-31", "description": "Invoices"},
            {"modelId": "contracts", "apiVersion": "2022-08-31"},
        ]

        report = await orchestrator.migrate(source_instance, destination_instance)

        assert [o.model_id for o in report.outcomes] == ["invoices", "contracts"]
        assert report.all_completed

    @pytest.mark.asyncio
    async def test_selected_models_only(
        self, orchestrator, mock_client, source_instance, destination_instance
    ):
        mock_client.list_models.return_value = [
            {"modelId": "invoices", "apiVersion": "2023-07-31"},
            {"modelId": "contracts", "apiVersion": "2023-07-31"},
        ]

        report = await orchestrator.migrate(
            source_instance, destination_instance, model_ids=["contracts"]
        )

        assert [o.model_id for o in report.outcomes] == ["contracts"]
