"""Administrative domain context management.

A migration talks to two independently authorized domains. Instead of an
ambient "current tenant", the switcher hands out an ``ActiveContext`` that
callers pass explicitly into every remote call.
"""

from collections.abc import Iterable
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .api_client import ProviderClient
from .exceptions import ApiRequestError, ContextSwitchError

logger = structlog.get_logger()


class TokenProvider(Protocol):
    """Source of management-plane bearer tokens, one per domain."""

    def get_token(self, domain: str) -> str | None: ...


class StaticTokenProvider:
    """Token provider backed by tokens supplied in configuration."""

    def __init__(self, tokens: dict[str, str] | None = None, default_token: str | None = None):
        self._tokens = dict(tokens or {})
        self._default_token = default_token

    def get_token(self, domain: str) -> str | None:
        return self._tokens.get(domain, self._default_token)


class ActiveContext(BaseModel):
    """A verified domain + subaccount pair that remote calls run under."""

    model_config = ConfigDict(frozen=True)

    domain: str
    subaccount: str
    token: str | None = Field(default=None, repr=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.domain, self.subaccount)


class DomainContextSwitcher:
    """Verifies and activates administrative domain contexts."""

    def __init__(
        self,
        client: ProviderClient,
        token_provider: TokenProvider,
        verify_remote: bool = True,
    ):
        self.client = client
        self.token_provider = token_provider
        self.verify_remote = verify_remote
        self._verified: dict[tuple[str, str], ActiveContext] = {}
        self._active: ActiveContext | None = None
        self.logger = logger.bind(component="domain_context")

    @property
    def active(self) -> ActiveContext | None:
        return self._active

    async def verify_access(self, pairs: Iterable[tuple[str, str]]) -> None:
        """Check access to every (domain, subaccount) pair before any work starts.

        Raises:
            ContextSwitchError: If the caller is not authorized in any of them
        """
        for domain, subaccount in dict.fromkeys(pairs):
            await self._verify(domain, subaccount)

    async def activate(self, domain: str, subaccount: str) -> ActiveContext:
        """Make a domain + subaccount the active context.

        Re-activating the active context is a no-op.
        """
        key = (domain, subaccount)
        if self._active is not None and self._active.key == key:
            return self._active

        context = self._verified.get(key) or await self._verify(domain, subaccount)
        self._active = context
        self.logger.info("Domain context activated", domain=domain, subaccount=subaccount)
        return context

    async def _verify(self, domain: str, subaccount: str) -> ActiveContext:
        key = (domain, subaccount)
        if key in self._verified:
            return self._verified[key]

        token = self.token_provider.get_token(domain)

        if self.verify_remote:
            if not token:
                raise ContextSwitchError(f"No management token available for domain {domain}")
            try:
                await self.client.get_subscription(subaccount, token)
            except ApiRequestError as e:
                self.logger.error(
                    "Domain access check failed",
                    domain=domain,
                    subaccount=subaccount,
                    status=e.status,
                    detail=e.detail,
                )
                raise ContextSwitchError(
                    f"Not authorized for subaccount {subaccount} in domain {domain}: {e}"
                ) from e

        context = ActiveContext(domain=domain, subaccount=subaccount, token=token)
        self._verified[key] = context
        self.logger.debug(
            "Domain access verified",
            domain=domain,
            subaccount=subaccount,
            remote_check=self.verify_remote,
        )
        return context
