"""Source model enumeration."""

from collections.abc import Sequence

import structlog

from ..constants import API_VERSION, DESCRIPTION, MODEL_ID, PREBUILT_MODEL_PREFIX
from ..core.api_client import ProviderClient
from ..core.api_versions import ApiVersionCapability
from ..core.credentials import Credential
from ..core.domain_context import ActiveContext
from ..core.exceptions import ConfigurationError
from ..models.instance import ResourceDescriptor, ServiceInstance


class SourceEnumerator:
    """Builds descriptors for the custom models living on a source instance."""

    def __init__(self, client: ProviderClient):
        self.client = client
        self.logger = structlog.get_logger().bind(component="source_enumerator")

    async def enumerate(
        self,
        source: ServiceInstance,
        context: ActiveContext,
        credential: Credential,
        capability: ApiVersionCapability,
        model_ids: Sequence[str] | None = None,
    ) -> list[ResourceDescriptor]:
        """List custom models at the source, optionally restricted to ``model_ids``.

        Descriptors come back in the requested order when ids are given,
        otherwise in listing order.

        Raises:
            ConfigurationError: If a requested model id does not exist at the source
        """
        listed = await self.client.list_models(source, context, credential, capability)

        descriptors: dict[str, ResourceDescriptor] = {}
        for item in listed:
            model_id = str(item.get(MODEL_ID) or "")
            if not model_id or model_id.startswith(PREBUILT_MODEL_PREFIX):
                continue
            descriptors[model_id] = ResourceDescriptor(
                model_id=model_id,
                description=str(item.get(DESCRIPTION) or ""),
                api_version=item.get(API_VERSION),
                instance=source,
            )

        if model_ids:
            missing = [model_id for model_id in model_ids if model_id not in descriptors]
            if missing:
                raise ConfigurationError(
                    f"Models not found at {source.instance_id}: {', '.join(missing)}"
                )
            selected = [descriptors[model_id] for model_id in dict.fromkeys(model_ids)]
        else:
            selected = list(descriptors.values())

        self.logger.info(
            "Source models enumerated",
            instance_id=source.instance_id,
            listed=len(listed),
            selected=len(selected),
            version=capability.version,
        )
        return selected
