"""Logical - Key/value secret reads, writes, deletes and listings.

Paths are given in the user-facing form ("secret/hello"). For the KV v2
engine they are rewritten to the versioned API layout by inserting "data"
(or "metadata" for listings) after the mount point, whose depth is
config.prefix_path_depth segments.
"""

from __future__ import annotations

from typing import Any, Mapping

from vaultwire.errors import UnexpectedResponse
from vaultwire.models import HttpMethod, RawResponse
from vaultwire.operations import Operations
from vaultwire.responses import LogicalResponse


class Logical(Operations):
    """Operations on /v1/{path} for the key/value secrets engine."""

    def read(self, path: str) -> LogicalResponse:
        """Read the secret at path."""
        descriptor = self._descriptor(HttpMethod.GET, self._api_path(path, "data"))
        return self._call(descriptor, self._envelope)

    def write(self, path: str, data: Mapping[str, Any] | None = None) -> LogicalResponse:
        """Write data to path. KV v2 answers 200 with version info, KV v1 answers 204."""
        payload: dict[str, Any] = dict(data or {})
        if self._config.engine_version == 2:
            payload = {"data": payload}
        descriptor = self._descriptor(
            HttpMethod.POST, self._api_path(path, "data"), body=payload
        )
        return self._call(
            descriptor, self._envelope, expected_status=(200, 204), json_required=False
        )

    def delete(self, path: str) -> LogicalResponse:
        """Delete the secret at path (the latest version, for KV v2)."""
        descriptor = self._descriptor(HttpMethod.DELETE, self._api_path(path, "data"))
        return self._call(descriptor, self._envelope, expected_status=(204,), json_required=False)

    def list(self, path: str) -> list[str]:
        """List key names under path. A missing path lists as empty."""
        descriptor = self._descriptor(
            HttpMethod.GET, self._api_path(path, "metadata"), parameters={"list": "true"}
        )
        try:
            response = self._call(descriptor, self._envelope)
        except UnexpectedResponse as e:
            if e.status_code == 404:
                return []
            raise
        return response.keys

    def _envelope(self, raw: RawResponse, retries: int) -> LogicalResponse:
        return LogicalResponse(raw, retries, engine_version=self._config.engine_version)

    def _api_path(self, path: str, segment: str) -> str:
        """Map a user path to its /v1 API path, inserting segment for KV v2."""
        parts = [part for part in path.strip("/").split("/") if part]
        if self._config.engine_version == 2:
            depth = self._config.prefix_path_depth
            parts = parts[:depth] + [segment] + parts[depth:]
        return "/v1/" + "/".join(parts)
