"""Provider HTTP client for document model management and the management plane.

Every data-plane call takes the ``ActiveContext`` it is meant to run under and
refuses to run when the target instance belongs to a different domain or
subaccount.
"""

import asyncio
import json
from typing import TYPE_CHECKING, Any

import aiohttp
import structlog

from ..constants import (
    ACCOUNT_PROVIDER_PATH,
    API_VERSION_PARAM,
    CONTENT_TYPE_JSON,
    DESCRIPTION,
    ERROR,
    MANAGEMENT_ACCOUNTS_API_VERSION,
    MANAGEMENT_SUBSCRIPTIONS_API_VERSION,
    MANAGEMENT_URL,
    MODEL_ID,
    NEXT_LINK,
    OPERATION_LOCATION_HEADER,
    PERCENT_COMPLETED,
    STATUS,
    VALUE,
)
from ..models.enums import ApiOperation
from ..models.instance import ServiceInstance
from ..models.transfer import OperationHandle, OperationStatus, TransferAuthorization
from .api_versions import ApiVersionCapability
from .exceptions import ApiRequestError, ContextSwitchError, ModelMigratorError
from .settings import MigrationSettings

if TYPE_CHECKING:
    from .credentials import Credential
    from .domain_context import ActiveContext

logger = structlog.get_logger()

# Guard against a provider handing back a nextLink cycle
MAX_LIST_PAGES = 1000


def format_error(error: Any) -> str | None:
    """Flatten a provider error object (code, message, innererror, details)."""
    if not isinstance(error, dict):
        return str(error) if error else None

    parts = [error.get("code"), error.get("message")]
    inner = error.get("innererror")
    if isinstance(inner, dict):
        parts.extend([inner.get("code"), inner.get("message")])
    for item in error.get("details") or []:
        if isinstance(item, dict) and item.get("message"):
            parts.append(item["message"])
    return ": ".join(str(part) for part in parts if part) or None


def extract_error_detail(body: bytes) -> str | None:
    """Flatten a provider error body into one line of text."""
    if not body:
        return None
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        text = body.decode("utf-8", errors="replace").strip()
        return text[:500] or None

    if isinstance(payload, dict) and isinstance(payload.get(ERROR), dict):
        return format_error(payload[ERROR])
    return json.dumps(payload)[:500]


class ProviderClient:
    """Async client for the provider's data plane and management plane."""

    def __init__(
        self,
        settings: MigrationSettings | None = None,
        management_url: str = MANAGEMENT_URL,
        session: aiohttp.ClientSession | None = None,
    ):
        self.settings = settings or MigrationSettings()
        self.management_url = management_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(component="provider_client")

    async def __aenter__(self) -> "ProviderClient":
        """Async context manager entry - open HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
                connector=aiohttp.TCPConnector(limit=10),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - close HTTP session."""
        await self.close()

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Low-level HTTP helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
        json_body: Any = None,
    ) -> tuple[int, dict[str, str], bytes]:
        """Issue one request and return (status, headers, body).

        Raises:
            ApiRequestError: On transport failure or timeout (status is None)
        """
        if self._session is None:
            raise ModelMigratorError("ProviderClient used outside of 'async with'")

        try:
            async with self._session.request(
                method, url, headers=headers, data=data, json=json_body
            ) as response:
                body = await response.read()
                self.logger.debug(
                    "Provider request", method=method, url=url, status=response.status
                )
                return response.status, dict(response.headers), body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ApiRequestError(f"{method} {url} failed: {e!r}") from e

    def _raise_for_status(
        self, action: str, status: int, body: bytes, expected: tuple[int, ...]
    ) -> None:
        if status in expected:
            return
        detail = extract_error_detail(body)
        raise ApiRequestError(f"{action} returned HTTP {status}", status=status, detail=detail)

    @staticmethod
    def _check_context(instance: ServiceInstance, context: "ActiveContext") -> None:
        if instance.context_key != context.key:
            raise ContextSwitchError(
                f"Instance {instance.instance_id} belongs to {instance.domain}/"
                f"{instance.subaccount} but active context is {context.domain}/{context.subaccount}"
            )

    @staticmethod
    def _json(body: bytes, action: str) -> Any:
        try:
            return json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ApiRequestError(f"{action} returned a non-JSON body: {e}") from e

    # ------------------------------------------------------------------
    # Data plane
    # ------------------------------------------------------------------

    async def list_models(
        self,
        instance: ServiceInstance,
        context: "ActiveContext",
        credential: "Credential",
        capability: ApiVersionCapability,
    ) -> list[dict[str, Any]]:
        """List all models on an instance, following nextLink pages."""
        self._check_context(instance, context)
        url: str | None = capability.url(instance.base_url, ApiOperation.LIST)
        models: list[dict[str, Any]] = []
        pages = 0

        while url and pages < MAX_LIST_PAGES:
            status, _, body = await self._request("GET", url, headers=credential.headers())
            self._raise_for_status(f"List models ({capability.version})", status, body, (200,))
            payload = self._json(body, "List models")
            if not isinstance(payload, dict):
                raise ApiRequestError("List models returned an unexpected body")
            items = payload.get(VALUE) or []
            if not isinstance(items, list):
                raise ApiRequestError(f"List models returned a non-list '{VALUE}' field")
            models.extend(item for item in items if isinstance(item, dict))
            url = payload.get(NEXT_LINK)
            pages += 1

        return models

    async def authorize_copy(
        self,
        destination: ServiceInstance,
        context: "ActiveContext",
        credential: "Credential",
        capability: ApiVersionCapability,
        model_id: str,
        description: str,
    ) -> TransferAuthorization:
        """Ask the destination for a copy authorization for one model id."""
        self._check_context(destination, context)
        url = capability.url(destination.base_url, ApiOperation.AUTHORIZE)
        status, _, body = await self._request(
            "POST",
            url,
            headers=credential.headers(),
            json_body={MODEL_ID: model_id, DESCRIPTION: description},
        )
        self._raise_for_status(f"Authorize copy of {model_id}", status, body, (200, 201))
        # Validate only; the body is forwarded untouched
        self._json(body, f"Authorize copy of {model_id}")
        return TransferAuthorization(model_id=model_id, raw=body)

    async def delete_model(
        self,
        destination: ServiceInstance,
        context: "ActiveContext",
        credential: "Credential",
        capability: ApiVersionCapability,
        model_id: str,
    ) -> None:
        self._check_context(destination, context)
        url = capability.url(destination.base_url, ApiOperation.DELETE, model_id)
        status, _, body = await self._request("DELETE", url, headers=credential.headers())
        self._raise_for_status(f"Delete model {model_id}", status, body, (200, 202, 204))

    async def initiate_copy(
        self,
        source: ServiceInstance,
        context: "ActiveContext",
        credential: "Credential",
        capability: ApiVersionCapability,
        model_id: str,
        authorization: TransferAuthorization,
    ) -> OperationHandle:
        """Start the copy at the source, forwarding the authorization bytes verbatim."""
        self._check_context(source, context)
        url = capability.url(source.base_url, ApiOperation.COPY, model_id)
        headers = {**credential.headers(), "Content-Type": CONTENT_TYPE_JSON}
        status, response_headers, body = await self._request(
            "POST", url, headers=headers, data=authorization.raw
        )
        self._raise_for_status(f"Copy of {model_id}", status, body, (200, 202))

        operation_url = next(
            (
                value
                for key, value in response_headers.items()
                if key.lower() == OPERATION_LOCATION_HEADER.lower()
            ),
            None,
        )
        if not operation_url:
            raise ApiRequestError(
                f"Copy of {model_id} returned HTTP {status} without an "
                f"{OPERATION_LOCATION_HEADER} header",
                status=status,
            )
        return OperationHandle(url=operation_url, model_id=model_id)

    async def poll_operation(
        self,
        source: ServiceInstance,
        context: "ActiveContext",
        credential: "Credential",
        handle: OperationHandle,
    ) -> OperationStatus:
        """Read the current status of a copy operation."""
        self._check_context(source, context)
        status, _, body = await self._request("GET", handle.url, headers=credential.headers())
        self._raise_for_status(f"Poll copy of {handle.model_id}", status, body, (200,))
        payload = self._json(body, f"Poll copy of {handle.model_id}")
        if not isinstance(payload, dict):
            raise ApiRequestError(f"Poll copy of {handle.model_id} returned an unexpected body")

        percent = payload.get(PERCENT_COMPLETED)
        try:
            percent_completed = int(percent) if percent is not None else None
        except (TypeError, ValueError) as e:
            raise ApiRequestError(
                f"Poll copy of {handle.model_id} returned invalid percentCompleted {percent!r}",
            ) from e
        return OperationStatus(
            status=str(payload.get(STATUS) or "unknown"),
            percent_completed=percent_completed,
            error_detail=format_error(payload.get(ERROR)),
        )

    # ------------------------------------------------------------------
    # Management plane
    # ------------------------------------------------------------------

    def _management_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def get_subscription(self, subaccount: str, token: str) -> dict[str, Any]:
        """Read a subscription to prove the token grants access to it."""
        url = (
            f"{self.management_url}/subscriptions/{subaccount}"
            f"?{API_VERSION_PARAM}={MANAGEMENT_SUBSCRIPTIONS_API_VERSION}"
        )
        status, _, body = await self._request("GET", url, headers=self._management_headers(token))
        self._raise_for_status(f"Read subscription {subaccount}", status, body, (200,))
        return self._json(body, f"Read subscription {subaccount}")

    async def list_keys(self, instance: ServiceInstance, context: "ActiveContext") -> dict[str, Any]:
        """Read the instance's key material from the management plane."""
        self._check_context(instance, context)
        if not context.token:
            raise ApiRequestError(f"No management token for domain {context.domain}")
        url = (
            f"{self.management_url}/subscriptions/{instance.subaccount}"
            f"/resourceGroups/{instance.resource_group}/{ACCOUNT_PROVIDER_PATH}"
            f"/{instance.account_name}/listKeys"
            f"?{API_VERSION_PARAM}={MANAGEMENT_ACCOUNTS_API_VERSION}"
        )
        status, _, body = await self._request(
            "POST", url, headers=self._management_headers(context.token)
        )
        self._raise_for_status(f"List keys of {instance.account_name}", status, body, (200,))
        return self._json(body, f"List keys of {instance.account_name}")
