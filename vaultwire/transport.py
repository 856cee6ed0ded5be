"""Transport - Sends a single HTTP request and captures the raw response.

The Transport applies timeouts and TLS trust settings from a TransportConfig
and returns a RawResponse for any status code. It does not retry or
log, and leaves interpreting the status to the caller.
"""

from __future__ import annotations

import re
import ssl
from typing import Any

import httpx

from vaultwire.errors import TransportError
from vaultwire.models import HttpMethod, RawResponse, RequestDescriptor, TransportConfig

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"

_PEM_CERT_PATTERN = re.compile(
    r"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----", re.DOTALL
)


def trust_all_context() -> ssl.SSLContext:
    """Build a TLS context that accepts any certificate chain and any hostname.

    Only called when a TransportConfig explicitly disables verification.
    Each Transport gets its own context; nothing process-wide is changed.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    # check_hostname must be cleared before verify_mode can drop to CERT_NONE
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def single_ca_context(pem: str) -> ssl.SSLContext:
    """Build a TLS context whose trust store holds only the given CA certificate.

    When the PEM text holds several certificates, only the first is trusted.
    The system trust store is not loaded.

    Raises:
        TransportError: If the PEM text does not contain a usable certificate.
    """
    match = _PEM_CERT_PATTERN.search(pem)
    if match is None:
        raise TransportError("Invalid CA certificate: no PEM certificate block found")
    try:
        return ssl.create_default_context(cadata=match.group(0))
    except (ssl.SSLError, ValueError) as e:
        raise TransportError(f"Invalid CA certificate: {e}") from e


def build_verify(config: TransportConfig) -> ssl.SSLContext | bool:
    """Resolve the httpx 'verify' argument for a TransportConfig.

    Disabled verification wins over a supplied CA certificate. With neither
    set, httpx's default trust store is used.
    """
    if not config.ssl_verification:
        return trust_all_context()
    if config.ca_pem is not None:
        return single_ca_context(config.ca_pem)
    return True


def build_timeout(config: TransportConfig) -> httpx.Timeout:
    """Connect and read timeouts are independent; None or 0 leaves a phase unbounded."""
    return httpx.Timeout(
        None, connect=config.connect_timeout or None, read=config.read_timeout or None
    )


def render_url(descriptor: RequestDescriptor) -> str:
    """Append the descriptor's parameters to its URL's query string.

    Starts a query string with '?' when the URL has none, else extends the
    existing one with '&'.
    """
    url = descriptor.url or ""
    if not descriptor.parameters:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{descriptor.query_string()}"


class Transport:
    """Executes RequestDescriptors over one pooled httpx client.

    Usage:
        transport = Transport(TransportConfig(read_timeout=5))
        try:
            raw = transport.execute(descriptor)
        finally:
            transport.close()

    Or with context manager:
        with Transport(config) as transport:
            raw = transport.execute(descriptor)

    The config is read-only, so one Transport may serve concurrent callers.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Timeouts and TLS settings. Defaults to TransportConfig().
            transport: Optional httpx transport to send requests through
                       (e.g. httpx.MockTransport in tests).

        Raises:
            TransportError: If the TLS context cannot be built.
        """
        self._config = config or TransportConfig()
        kwargs = self._build_client_kwargs(self._config)
        if transport is not None:
            kwargs["transport"] = transport
        self._client = httpx.Client(**kwargs)

    def __enter__(self) -> "Transport":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    @property
    def config(self) -> TransportConfig:
        return self._config

    def close(self) -> None:
        self._client.close()

    def _build_client_kwargs(self, config: TransportConfig) -> dict[str, Any]:
        """Build kwargs for httpx.Client including timeout and TLS configuration."""
        return {
            "timeout": build_timeout(config),
            "verify": build_verify(config),
            "follow_redirects": True,
        }

    def execute(self, descriptor: RequestDescriptor) -> RawResponse:
        """Send one request and return the response, whatever its status.

        Args:
            descriptor: The request to send.

        Returns:
            RawResponse with status code, content type and body bytes.

        Raises:
            TransportError: If the URL is unset or invalid, or the request
                fails to connect, times out, or hits an I/O error.
        """
        if not descriptor.url:
            raise TransportError("No URL is set")

        method = descriptor.method
        headers = dict(descriptor.headers)
        content: bytes | None = None

        if method in (HttpMethod.GET, HttpMethod.DELETE):
            url = render_url(descriptor)
        else:
            url = descriptor.url
            headers.setdefault("Accept-Charset", "UTF-8")
            # An explicit body takes precedence; parameters become form fields
            # only when there is no body. Query parameters in the URL stay as-is.
            if descriptor.body is not None:
                content = descriptor.body
            elif descriptor.parameters:
                headers["Content-Type"] = FORM_CONTENT_TYPE
                content = descriptor.query_string().encode("utf-8")

        try:
            http_response = self._client.request(
                method=method.value,
                url=url,
                headers=headers if headers else None,
                content=content,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request error: {e}") from e
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL: {e}") from e
        except UnicodeEncodeError as e:
            raise TransportError(
                f"Encoding error: non-ASCII character {e.object[e.start:e.end]!r} in request"
            ) from e

        return RawResponse(
            status_code=http_response.status_code,
            content_type=http_response.headers.get("content-type"),
            body=http_response.content,
        )


def execute(descriptor: RequestDescriptor, config: TransportConfig | None = None) -> RawResponse:
    """Execute one request with a short-lived Transport.

    Convenience for one-off calls; long-lived callers should keep a
    Transport open to reuse connections.
    """
    with Transport(config) as transport:
        return transport.execute(descriptor)
