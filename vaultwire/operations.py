"""Operations - Request building, retry and validation shared by endpoint facades.

Each facade method supplies a method, an API path, an optional JSON body and
the envelope to build. This module turns that into a RequestDescriptor with
the standard Vault headers, then runs transport -> validation -> envelope
inside the retry controller. A failure anywhere in that chain re-runs the
whole attempt, including a fresh network call.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import Any, Callable, Iterable, Mapping, TypeVar

from vaultwire.models import HttpMethod, RawResponse, RequestDescriptor, VaultConfig
from vaultwire.responses import validate_response
from vaultwire.retry import with_retry
from vaultwire.transport import Transport

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Vault-Token"
NAMESPACE_HEADER = "X-Vault-Namespace"
WRAP_TTL_HEADER = "X-Vault-Wrap-TTL"

R = TypeVar("R")
_O = TypeVar("_O", bound="Operations")


class Operations:
    """Base class for endpoint facades bound to one config and transport."""

    def __init__(
        self,
        config: VaultConfig,
        transport: Transport,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._cancel = cancel
        self._namespace = config.namespace

    @property
    def namespace(self) -> str | None:
        return self._namespace

    def with_namespace(self: _O, namespace: str | None) -> _O:
        """Return a copy that sends the given namespace instead of the configured one."""
        clone = copy.copy(self)
        clone._namespace = namespace
        return clone

    def _descriptor(
        self,
        method: HttpMethod,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        parameters: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        authenticated: bool = True,
    ) -> RequestDescriptor:
        """Build the request for an API path (e.g. '/v1/auth/token/create').

        Args:
            method: HTTP method.
            path: API path appended to the configured address.
            body: JSON payload, serialized as UTF-8.
            parameters: Query (GET/DELETE) or form (POST/PUT) parameters.
            headers: Extra headers, after the standard ones.
            authenticated: Send the configured token, if any.
        """
        descriptor = RequestDescriptor(url=f"{self._config.address}{path}", method=method)
        if authenticated:
            descriptor = descriptor.with_optional_header(TOKEN_HEADER, self._config.token)
        descriptor = descriptor.with_optional_header(NAMESPACE_HEADER, self._namespace)
        for name, value in (headers or {}).items():
            descriptor = descriptor.with_header(name, value)
        for name, value in (parameters or {}).items():
            descriptor = descriptor.with_parameter(name, value)
        if body is not None:
            descriptor = descriptor.with_body(json.dumps(body).encode("utf-8"))
        return descriptor

    def _call(
        self,
        descriptor: RequestDescriptor,
        envelope: Callable[[RawResponse, int], R],
        *,
        expected_status: Iterable[int] = (200,),
        json_required: bool = True,
    ) -> R:
        """Execute descriptor with retries and build the envelope.

        Args:
            descriptor: The request to send on every attempt.
            envelope: Builds the result from the raw response and attempt index.
            expected_status: Accepted HTTP status codes.
            json_required: Require an application/json response.

        Raises:
            TransportError, UnexpectedResponse, UnexpectedContentType,
            MalformedBody: From the last attempt, once retries are exhausted.
            RetryCancelled: If the cancel event was set between attempts.
        """
        accepted = tuple(expected_status)

        def attempt(index: int) -> R:
            # descriptor.url carries no parameters, so nothing secret is logged.
            logger.debug("%s %s", descriptor.method.value, descriptor.url)
            raw = self._transport.execute(descriptor)
            logger.debug("%s %s -> %d", descriptor.method.value, descriptor.url, raw.status_code)
            validate_response(raw, accepted, json_required=json_required)
            return envelope(raw, index)

        return with_retry(
            self._config.max_retries,
            self._config.retry_interval_ms,
            attempt,
            cancel=self._cancel,
        ).value
