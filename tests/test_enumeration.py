"""Tests for source model enumeration."""

import pytest

from model_migrator.core.api_versions import get_capability
from model_migrator.core.exceptions import ConfigurationError
from model_migrator.services.enumeration import SourceEnumerator

LISTING = [
    {"modelId": "prebuilt-invoice", "apiVersion": "2024-11-30"},
    {"modelId": "invoices", "description": "Invoices", "apiVersion": "2023-07-31"},
    {"modelId": "", "apiVersion": "2023-07-31"},
    {"modelId": "contracts", "apiVersion": "2022-08-31"},
    {"modelId": "receipts"},
]


@pytest.fixture
def enumerator(mock_client) -> SourceEnumerator:
    mock_client.list_models.return_value = LISTING
    return SourceEnumerator(mock_client)


class TestSourceEnumerator:
    @pytest.mark.asyncio
    async def test_all_custom_models(
        self, enumerator, source_instance, source_context, source_credential
    ):
        resources = await enumerator.enumerate(
            source_instance, source_context, source_credential, get_capability("2023-07-31")
        )

        assert [r.model_id for r in resources] == ["invoices", "contracts", "receipts"]
        invoices = resources[0]
        assert invoices.description == "Invoices"
        assert invoices.api_version == "2023-07-31"
        assert invoices.instance is source_instance
        assert resources[2].api_version is None

    @pytest.mark.asyncio
    async def test_requested_order_kept(
        self, enumerator, source_instance, source_context, source_credential
    ):
        resources = await enumerator.enumerate(
            source_instance,
            source_context,
            source_credential,
            get_capability("2023-07-31"),
            model_ids=["receipts", "invoices", "receipts"],
        )

        assert [r.model_id for r in resources] == ["receipts", "invoices"]

    @pytest.mark.asyncio
    async def test_unknown_model_requested(
        self, enumerator, source_instance, source_context, source_credential
    ):
        with pytest.raises(ConfigurationError, match="missing-model"):
            await enumerator.enumerate(
                source_instance,
                source_context,
                source_credential,
                get_capability("2023-07-31"),
                model_ids=["invoices", "missing-model"],
            )

    @pytest.mark.asyncio
    async def test_prebuilt_cannot_be_requested(
        self, enumerator, source_instance, source_context, source_credential
    ):
        with pytest.raises(ConfigurationError):
            await enumerator.enumerate(
                source_instance,
                source_context,
                source_credential,
                get_capability("2023-07-31"),
                model_ids=["prebuilt-invoice"],
            )
