"""Service instance and migratable model descriptors."""

from pydantic import BaseModel, ConfigDict, Field


class ServiceInstance(BaseModel):
    """One deployed service endpoint scoped to a domain and subaccount."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    domain: str  # tenant
    subaccount: str  # subscription
    resource_group: str = ""
    account_name: str = ""
    endpoint: str
    api_key: str | None = Field(default=None, repr=False)
    description: str = ""

    @property
    def base_url(self) -> str:
        return self.endpoint.rstrip("/")

    @property
    def context_key(self) -> tuple[str, str]:
        return (self.domain, self.subaccount)


class ResourceDescriptor(BaseModel):
    """A model enumerated at the source instance.

    Descriptors are frozen; the source API version recorded at enumeration
    time is what the destination compatibility check compares against.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    description: str = ""
    api_version: str | None = None
    instance: ServiceInstance
