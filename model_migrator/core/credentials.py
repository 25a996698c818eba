"""Per-instance API key resolution with a run-scoped cache."""

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..constants import API_KEY_HEADER
from ..models.instance import ServiceInstance
from .api_client import ProviderClient
from .domain_context import ActiveContext
from .exceptions import ApiRequestError, AuthResolutionError

logger = structlog.get_logger()


class Credential(BaseModel):
    """API key for one service instance."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    api_key: str = Field(repr=False)
    source: str = "config"

    def headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self.api_key}


class CredentialResolver:
    """Resolves instance keys from configuration or the management plane.

    Keys are cached per instance for the lifetime of the resolver, which is
    one migration run.
    """

    def __init__(self, client: ProviderClient):
        self.client = client
        self._cache: dict[str, Credential] = {}
        self.logger = logger.bind(component="credential_resolver")

    def cached(self, instance: ServiceInstance) -> Credential | None:
        return self._cache.get(instance.instance_id)

    async def resolve(self, instance: ServiceInstance, context: ActiveContext) -> Credential:
        """Return the instance's credential, reading key material if needed.

        Raises:
            AuthResolutionError: If the caller lacks rights to read the key
        """
        if instance.instance_id in self._cache:
            return self._cache[instance.instance_id]

        if instance.api_key:
            credential = Credential(instance_id=instance.instance_id, api_key=instance.api_key)
        else:
            credential = await self._read_keys(instance, context)

        self._cache[instance.instance_id] = credential
        self.logger.info(
            "Credential resolved", instance_id=instance.instance_id, source=credential.source
        )
        return credential

    async def _read_keys(self, instance: ServiceInstance, context: ActiveContext) -> Credential:
        if not instance.resource_group or not instance.account_name:
            raise AuthResolutionError(
                f"Instance {instance.instance_id} has no api_key and no resource_group/"
                "account_name to read keys from"
            )

        try:
            keys = await self.client.list_keys(instance, context)
        except ApiRequestError as e:
            self.logger.error(
                "Key listing failed",
                instance_id=instance.instance_id,
                status=e.status,
                detail=e.detail,
            )
            if e.status in (401, 403):
                raise AuthResolutionError(
                    f"Not authorized to read keys of {instance.account_name}: {e}"
                ) from e
            raise AuthResolutionError(
                f"Could not read keys of {instance.account_name}: {e}"
            ) from e

        api_key = (keys.get("key1") or keys.get("key2")) if isinstance(keys, dict) else None
        if not api_key:
            raise AuthResolutionError(f"No key returned for {instance.account_name}")
        return Credential(instance_id=instance.instance_id, api_key=api_key, source="management")
