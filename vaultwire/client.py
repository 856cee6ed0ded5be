"""Client - Entry point tying configuration, transport and endpoint facades together."""

from __future__ import annotations

import copy
import threading
from typing import Any

import httpx

from vaultwire.auth import Auth
from vaultwire.logical import Logical
from vaultwire.models import VaultConfig
from vaultwire.transport import Transport


class Vault:
    """A Vault client bound to one configuration.

    Usage:
        config = load_config_from_env()
        with Vault(config) as vault:
            secret = vault.logical().read("secret/hello").data

    Copies made by with_retries share this client's connection pool;
    closing any of them closes the pool for all.
    """

    def __init__(
        self,
        config: VaultConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
            cancel: Optional event; when set, pending retries are abandoned.

        Raises:
            TransportError: If the TLS settings cannot be applied.
        """
        self._config = config
        self._transport = Transport(config.transport_config(), transport=transport)
        self._cancel = cancel

    def __enter__(self) -> "Vault":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    @property
    def config(self) -> VaultConfig:
        return self._config

    def close(self) -> None:
        self._transport.close()

    def with_retries(self, max_retries: int, retry_interval_ms: int) -> "Vault":
        """Return a client that retries each operation up to max_retries times."""
        if max_retries < 0 or retry_interval_ms < 0:
            raise ValueError("max_retries and retry_interval_ms must be >= 0")
        clone = copy.copy(self)
        clone._config = self._config.model_copy(
            update={"max_retries": max_retries, "retry_interval_ms": retry_interval_ms}
        )
        return clone

    def auth(self) -> Auth:
        return Auth(self._config, self._transport, cancel=self._cancel)

    def logical(self) -> Logical:
        return Logical(self._config, self._transport, cancel=self._cancel)
