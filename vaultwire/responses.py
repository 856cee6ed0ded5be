"""Responses - Typed envelopes over raw Vault responses.

An envelope parses the body into a generic JSON object and layers typed
accessors on top. Parsing never raises: when the body is not a JSON object,
or a sub-structure has the wrong shape, the affected fields stay at their
defaults. Status and content-type checks are separate (validate_response)
and are made by the operation layer before an envelope is trusted.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, TypeVar

from pydantic import ValidationError

from vaultwire.errors import UnexpectedContentType, UnexpectedResponse
from vaultwire.models import AuthInfo, LenientModel, RawResponse, TokenLookup, WrapInfo

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"

_M = TypeVar("_M", bound=LenientModel)


def validate_response(
    raw: RawResponse,
    expected_status: Iterable[int] = (200,),
    *,
    json_required: bool = True,
) -> None:
    """Check a raw response against an operation's expectations.

    The status is checked first and from the status line alone, so a non-JSON
    error body is reported verbatim without any parse attempt.

    Raises:
        UnexpectedResponse: Status code not in expected_status.
        UnexpectedContentType: json_required and the media type is not JSON.
    """
    if raw.status_code not in tuple(expected_status):
        raise UnexpectedResponse(raw.status_code, raw.body)
    if json_required and raw.media_type != JSON_MEDIA_TYPE:
        raise UnexpectedContentType(raw.content_type, raw.status_code)


def parse_json_object(body: bytes) -> dict[str, Any] | None:
    """Parse body as a JSON object, returning None for anything else."""
    if not body:
        return None
    try:
        parsed = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Response body is not valid JSON: %s", e)
        return None
    if not isinstance(parsed, dict):
        logger.debug("Response body is JSON but not an object (%s)", type(parsed).__name__)
        return None
    return parsed


def as_object(value: Any) -> dict[str, Any]:
    """Treat null, absent and non-object values alike: an empty dict."""
    return value if isinstance(value, dict) else {}


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def build_view(model: type[_M], value: Any) -> _M:
    """Validate a JSON sub-structure into a lenient model.

    Malformed fields fall back one by one inside the model; a value that is
    not an object yields an all-default view.
    """
    if not isinstance(value, dict):
        return model()
    try:
        return model.model_validate(value)
    except ValidationError as e:
        logger.debug("Ignoring malformed %s block: %d error(s)", model.__name__, e.error_count())
        return model()


class VaultResponse:
    """Base envelope: raw response, retry count and generic JSON accessors."""

    def __init__(self, raw: RawResponse, retries: int = 0) -> None:
        self.raw = raw
        self.retries = retries
        self.json: dict[str, Any] | None = parse_json_object(raw.body)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, retries={self.retries})"

    @property
    def status_code(self) -> int:
        return self.raw.status_code

    @property
    def body(self) -> bytes:
        return self.raw.body

    def _get(self, key: str) -> Any:
        return self.json.get(key) if self.json is not None else None

    @property
    def data(self) -> dict[str, Any]:
        return as_object(self._get("data"))

    @property
    def request_id(self) -> str:
        value = self._get("request_id")
        return value if isinstance(value, str) else ""

    @property
    def lease_id(self) -> str:
        value = self._get("lease_id")
        return value if isinstance(value, str) else ""

    @property
    def lease_duration(self) -> int:
        return as_int(self._get("lease_duration"))

    @property
    def renewable(self) -> bool:
        return self._get("renewable") is True

    @property
    def warnings(self) -> list[str]:
        return as_str_list(self._get("warnings"))

    @property
    def wrap_info(self) -> WrapInfo:
        return build_view(WrapInfo, self._get("wrap_info"))


class AuthResponse(VaultResponse):
    """Envelope for auth backend operations (logins, token create/renew)."""

    def __init__(self, raw: RawResponse, retries: int = 0) -> None:
        super().__init__(raw, retries)
        self.auth: AuthInfo = build_view(AuthInfo, self._get("auth"))

    @property
    def client_token(self) -> str:
        return self.auth.client_token

    @property
    def token_accessor(self) -> str:
        return self.auth.accessor

    @property
    def policies(self) -> list[str]:
        return list(self.auth.policies)

    @property
    def token_policies(self) -> list[str]:
        return list(self.auth.token_policies)

    @property
    def auth_lease_duration(self) -> int:
        return self.auth.lease_duration

    @property
    def auth_renewable(self) -> bool:
        return self.auth.renewable

    @property
    def entity_id(self) -> str:
        return self.auth.entity_id

    @property
    def token_type(self) -> str:
        return self.auth.token_type

    def _metadata(self, key: str) -> str:
        value = self.auth.metadata.get(key)
        return value if isinstance(value, str) else ""

    @property
    def username(self) -> str:
        return self._metadata("username")

    @property
    def app_id(self) -> str:
        return self._metadata("app-id")

    @property
    def user_id(self) -> str:
        return self._metadata("user-id")

    @property
    def nonce(self) -> str:
        return self._metadata("nonce")


class LookupResponse(VaultResponse):
    """Envelope for token lookups; the token's properties live under "data"."""

    def __init__(self, raw: RawResponse, retries: int = 0) -> None:
        super().__init__(raw, retries)
        self.token: TokenLookup = build_view(TokenLookup, self._get("data"))

    @property
    def accessor(self) -> str:
        return self.token.accessor

    @property
    def display_name(self) -> str:
        return self.token.display_name

    @property
    def policies(self) -> list[str]:
        return list(self.token.policies)

    @property
    def ttl(self) -> int:
        return self.token.ttl

    @property
    def num_uses(self) -> int:
        return self.token.num_uses

    @property
    def path(self) -> str:
        return self.token.path

    @property
    def token_type(self) -> str:
        return self.token.type


class LogicalResponse(VaultResponse):
    """Envelope for key/value reads, writes, deletes and lists.

    With engine_version=2 the KV payload nests one level deeper: secret
    values sit under data.data and version info under data.metadata.
    """

    def __init__(self, raw: RawResponse, retries: int = 0, engine_version: int = 1) -> None:
        super().__init__(raw, retries)
        self.engine_version = engine_version

    @property
    def data(self) -> dict[str, Any]:
        outer = super().data
        if self.engine_version == 2 and "data" in outer:
            return as_object(outer["data"])
        return outer

    @property
    def metadata(self) -> dict[str, Any]:
        if self.engine_version != 2:
            return {}
        return as_object(super().data.get("metadata"))

    @property
    def keys(self) -> list[str]:
        """Key names from a list call (data.keys), empty when absent."""
        return as_str_list(super().data.get("keys"))


class WrapResponse(VaultResponse):
    """Envelope for a wrap call; the wrapping token is in wrap_info."""

    @property
    def token(self) -> str:
        return self.wrap_info.token

    @property
    def accessor(self) -> str:
        return self.wrap_info.accessor

    @property
    def ttl(self) -> int:
        return self.wrap_info.ttl

    @property
    def creation_time(self) -> str:
        return self.wrap_info.creation_time

    @property
    def creation_path(self) -> str:
        return self.wrap_info.creation_path


class UnwrapResponse(AuthResponse):
    """Envelope for an unwrap call.

    The unwrapped payload is either an auth block (a wrapped login) or plain
    data (a wrapped secret); both views are available.
    """
