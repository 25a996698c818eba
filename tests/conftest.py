"""Shared pytest fixtures for model migrator tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from model_migrator.core.api_versions import API_VERSION_CATALOG, get_capability
from model_migrator.core.credentials import Credential, CredentialResolver
from model_migrator.core.domain_context import (
    ActiveContext,
    DomainContextSwitcher,
    StaticTokenProvider,
)
from model_migrator.core.settings import MigrationSettings
from model_migrator.models.instance import ResourceDescriptor, ServiceInstance
from model_migrator.models.transfer import OperationHandle, OperationStatus, TransferAuthorization

AUTHORIZATION_BODY = (
    b'{"targetResourceId": "/subscriptions/sub-b/resourceGroups/rg/providers/x",'
    b'  "targetModelId": "invoices",  "accessToken": "opaque", "expirationDateTime": "2030-01-01"}'
)


@pytest.fixture
def source_instance() -> ServiceInstance:
    """Source instance in the first tenant."""
    return ServiceInstance(
        instance_id="contoso-src",
        domain="tenant-a",
        subaccount="sub-a",
        resource_group="rg-a",
        account_name="contoso-docai",
        endpoint="https://contoso.example.com/",
        api_key="source-key",
    )


@pytest.fixture
def destination_instance() -> ServiceInstance:
    """Destination instance in a different tenant."""
    return ServiceInstance(
        instance_id="fabrikam-dst",
        domain="tenant-b",
        subaccount="sub-b",
        endpoint="https://fabrikam.example.com",
        api_key="destination-key",
    )


@pytest.fixture
def source_context(source_instance: ServiceInstance) -> ActiveContext:
    return ActiveContext(
        domain=source_instance.domain, subaccount=source_instance.subaccount, token="token-a"
    )


@pytest.fixture
def source_credential(source_instance: ServiceInstance) -> Credential:
    return Credential(instance_id=source_instance.instance_id, api_key="source-key")


@pytest.fixture
def fast_settings() -> MigrationSettings:
    """Settings that keep poll loops instant in tests."""
    return MigrationSettings(poll_interval=0, poll_timeout=30, max_poll_attempts=20)


@pytest.fixture
def destination_capability():
    return get_capability("2024-11-30", API_VERSION_CATALOG)


@pytest.fixture
def mock_client() -> MagicMock:
    """Provider client double with a successful copy protocol by default."""
    client = MagicMock()
    client.list_models = AsyncMock(return_value=[])
    client.authorize_copy = AsyncMock(
        side_effect=lambda dest, ctx, cred, cap, model_id, description: TransferAuthorization(
            model_id=model_id, raw=AUTHORIZATION_BODY
        )
    )
    client.delete_model = AsyncMock(return_value=None)
    client.initiate_copy = AsyncMock(
        side_effect=lambda src, ctx, cred, cap, model_id, authorization: OperationHandle(
            url=f"https://contoso.example.com/operations/{model_id}", model_id=model_id
        )
    )
    client.poll_operation = AsyncMock(
        return_value=OperationStatus(status="succeeded", percent_completed=100)
    )
    client.get_subscription = AsyncMock(return_value={"subscriptionId": "sub"})
    client.list_keys = AsyncMock(return_value={"key1": "managed-key"})
    return client


@pytest.fixture
def switcher(mock_client: MagicMock) -> DomainContextSwitcher:
    """Switcher that trusts configured contexts without a remote check."""
    return DomainContextSwitcher(mock_client, StaticTokenProvider(), verify_remote=False)


@pytest.fixture
def resolver(mock_client: MagicMock) -> CredentialResolver:
    return CredentialResolver(mock_client)


@pytest.fixture
def make_resource(source_instance: ServiceInstance):
    """Factory for source model descriptors."""

    def _make(model_id: str, api_version: str | None = "2023-07-31", instance=None):
        return ResourceDescriptor(
            model_id=model_id,
            description=f"{model_id} model",
            api_version=api_version,
            instance=instance or source_instance,
        )

    return _make


@pytest.fixture
def authorization_body() -> bytes:
    """Authorization bytes the destination issues in ``mock_client``."""
    return AUTHORIZATION_BODY
