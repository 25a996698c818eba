"""Core building blocks: provider client, contexts, credentials and version probing."""

from .api_client import ProviderClient  # noqa: F401
from .api_versions import API_VERSION_CATALOG, ApiVersionCapability  # noqa: F401
from .credentials import Credential, CredentialResolver  # noqa: F401
from .domain_context import (  # noqa: F401
    ActiveContext,
    DomainContextSwitcher,
    StaticTokenProvider,
    TokenProvider,
)
from .prober import CapabilityProber  # noqa: F401

__all__ = [
    "API_VERSION_CATALOG",
    "ActiveContext",
    "ApiVersionCapability",
    "CapabilityProber",
    "Credential",
    "CredentialResolver",
    "DomainContextSwitcher",
    "ProviderClient",
    "StaticTokenProvider",
    "TokenProvider",
]
