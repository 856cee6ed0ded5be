"""Internal data models for vaultwire.

All models use Pydantic v2. Transport-level models are frozen so a single
instance can be shared across threads without being mutated mid-flight.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Literal
from urllib.parse import quote_plus
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Core HTTP Models
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP methods supported by the transport."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class RequestDescriptor(BaseModel):
    """One HTTP request to be executed by the transport.

    Immutable: the with_* methods return a new descriptor. Header and
    parameter names/values are form-encoded once, when added through
    with_header/with_parameter. Values passed straight to the constructor
    are taken as already encoded.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str | None = Field(default=None, description="Target URL, pre-encoded by the caller")
    method: HttpMethod = Field(default=HttpMethod.GET, description="HTTP method")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Encoded header name -> encoded value"
    )
    parameters: dict[str, str] = Field(
        default_factory=dict, description="Encoded parameter name -> encoded value"
    )
    body: bytes | None = Field(default=None, description="Raw request payload")

    def with_url(self, url: str) -> RequestDescriptor:
        return self.model_copy(update={"url": url})

    def with_method(self, method: HttpMethod | str) -> RequestDescriptor:
        return self.model_copy(update={"method": HttpMethod(method)})

    def with_body(self, body: bytes | None) -> RequestDescriptor:
        return self.model_copy(update={"body": body})

    def with_header(self, name: str, value: str) -> RequestDescriptor:
        """Return a copy with the header set. Last write wins for a given name."""
        headers = dict(self.headers)
        headers[quote_plus(name)] = quote_plus(value)
        return self.model_copy(update={"headers": headers})

    def with_optional_header(self, name: str, value: str | None) -> RequestDescriptor:
        """Like with_header, but a None or empty value leaves the descriptor unchanged."""
        if not value:
            return self
        return self.with_header(name, value)

    def with_parameter(self, name: str, value: str) -> RequestDescriptor:
        parameters = dict(self.parameters)
        parameters[quote_plus(name)] = quote_plus(value)
        return self.model_copy(update={"parameters": parameters})

    def query_string(self) -> str:
        """Render parameters as name=value pairs joined by '&', sorted by name."""
        return "&".join(f"{name}={value}" for name, value in sorted(self.parameters.items()))


class TransportConfig(BaseModel):
    """Timeouts and TLS trust settings applied to every request of a Transport.

    ssl_verification defaults to True. Turning it off is an explicit choice
    and bypasses both certificate and hostname checks.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    connect_timeout: float | None = Field(
        default=None, ge=0, description="Connect timeout in seconds (None = no explicit timeout)"
    )
    read_timeout: float | None = Field(
        default=None, ge=0, description="Read timeout in seconds (None = no explicit timeout)"
    )
    ssl_verification: bool = Field(default=True, description="Verify server certificates")
    ca_pem: str | None = Field(
        default=None, description="Single trusted CA certificate (PEM, UTF-8)"
    )


class RawResponse(BaseModel):
    """One HTTP response as returned by the transport."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    content_type: str | None = Field(default=None, description="Content-Type header, if any")
    body: bytes = Field(default=b"", description="Raw response body")

    @property
    def media_type(self) -> str | None:
        """Content type without parameters, lower-cased (e.g. 'application/json')."""
        if self.content_type is None:
            return None
        return self.content_type.split(";", 1)[0].strip().lower()


# =============================================================================
# Client Configuration Models
# =============================================================================


class SslConfig(BaseModel):
    """TLS settings for the Vault connection."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    verify: bool = Field(default=True, description="Verify server certificates")
    pem_utf8: str | None = Field(default=None, description="Trusted CA certificate (PEM)")


class VaultConfig(BaseModel):
    """Top-level client configuration.

    Loaded by config_loader from YAML or the environment, or constructed
    directly. Frozen; use model_copy(update=...) to derive variants.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    address: str = Field(description="Base address, e.g. https://vault.example.com:8200")
    token: str | None = Field(default=None, description="Default auth token")
    namespace: str | None = Field(default=None, description="Enterprise namespace")
    open_timeout: float | None = Field(default=None, ge=0, description="Connect timeout (s)")
    read_timeout: float | None = Field(default=None, ge=0, description="Read timeout (s)")
    ssl: SslConfig = Field(default_factory=SslConfig, description="TLS settings")
    max_retries: int = Field(default=0, ge=0, description="Retries after the first attempt")
    retry_interval_ms: int = Field(default=1000, ge=0, description="Delay between attempts")
    engine_version: Literal[1, 2] = Field(default=2, description="KV secrets engine version")
    prefix_path_depth: int = Field(
        default=1, ge=1, description="Path segments forming the KV mount point"
    )

    @field_validator("address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("address must not be empty")
        return v

    def transport_config(self) -> TransportConfig:
        return TransportConfig(
            connect_timeout=self.open_timeout,
            read_timeout=self.read_timeout,
            ssl_verification=self.ssl.verify,
            ca_pem=self.ssl.pem_utf8,
        )


# =============================================================================
# Operation Request Models
# =============================================================================


class TokenRequest(BaseModel):
    """Optional parameters for creating a token.

    role is part of the URL (/create/{role}) and never sent in the body.
    """

    model_config = ConfigDict(extra="forbid")

    id: UUID | None = Field(default=None, description="Explicit token ID")
    policies: list[str] = Field(default_factory=list, description="Policies to attach")
    meta: dict[str, str] = Field(default_factory=dict, description="Token metadata")
    no_parent: bool | None = Field(default=None, description="Create an orphan token")
    no_default_policy: bool | None = Field(default=None, description="Omit the default policy")
    ttl: str | None = Field(default=None, description="Initial TTL, e.g. '1h'")
    display_name: str | None = Field(default=None, description="Display name")
    num_uses: int | None = Field(default=None, description="Maximum uses (0 = unlimited)")
    role: str | None = Field(default=None, description="Token role name")
    renewable: bool | None = Field(default=None, description="Whether the token is renewable")
    type: str | None = Field(default=None, description="'batch' or 'service'")
    explicit_max_ttl: str | None = Field(default=None, description="Hard TTL limit")
    period: str | None = Field(default=None, description="Periodic token period")
    entity_alias: str | None = Field(default=None, description="Entity alias name")

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the create call: unset fields, empty policies and empty meta are dropped."""
        payload = self.model_dump(mode="json", exclude_none=True, exclude={"role"})
        if not payload.get("policies"):
            payload.pop("policies", None)
        if not payload.get("meta"):
            payload.pop("meta", None)
        return payload


# =============================================================================
# Response Envelope Models
# =============================================================================


class LenientModel(BaseModel):
    """Base for typed views over Vault JSON.

    Explicit nulls are treated as absent so every field falls back to its
    type-appropriate default. A field whose value has the wrong shape falls
    back on its own; the other fields keep their values. Non-string items
    are dropped from string lists. Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("*", mode="wrap")
    @classmethod
    def default_on_error(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            pass
        if isinstance(value, list):
            try:
                return handler([item for item in value if isinstance(item, str)])
            except ValidationError:
                pass
        logger.debug("Ignoring malformed %s.%s", cls.__name__, info.field_name)
        return cls.model_fields[info.field_name].get_default(call_default_factory=True)


class AuthInfo(LenientModel):
    """The "auth" block returned by login and token operations."""

    client_token: str = ""
    accessor: str = ""
    policies: list[str] = Field(default_factory=list)
    token_policies: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    lease_duration: int = 0
    renewable: bool = False
    entity_id: str = ""
    token_type: str = ""
    orphan: bool = False


class TokenLookup(LenientModel):
    """The "data" block of a token lookup."""

    accessor: str = ""
    creation_time: int = 0
    creation_ttl: int = 0
    display_name: str = ""
    entity_id: str = ""
    expire_time: str = ""
    explicit_max_ttl: int = 0
    id: str = ""
    issue_time: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)
    num_uses: int = 0
    orphan: bool = False
    path: str = ""
    policies: list[str] = Field(default_factory=list)
    renewable: bool = False
    ttl: int = 0
    type: str = ""


class WrapInfo(LenientModel):
    """The "wrap_info" block of a response-wrapped reply."""

    token: str = ""
    accessor: str = ""
    ttl: int = 0
    creation_time: str = ""
    creation_path: str = ""
    wrapped_accessor: str = ""
