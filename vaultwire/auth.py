"""Auth - Authentication backends, token management and response wrapping.

Login methods authenticate against a backend mount and return the new token
in an AuthResponse. Token methods (create, renew, lookup, revoke) act with
the configured token. Wrap/unwrap exchange data for a short-lived wrapping
token and back.

Every method runs through Operations._call, so each one is retried as a
whole according to the configured retry budget.
"""

from __future__ import annotations

import warnings
from typing import Any, Mapping

from vaultwire.errors import MalformedBody
from vaultwire.models import HttpMethod, RawResponse, TokenRequest
from vaultwire.operations import WRAP_TTL_HEADER, Operations
from vaultwire.responses import (
    AuthResponse,
    LogicalResponse,
    LookupResponse,
    UnwrapResponse,
    WrapResponse,
)


class Auth(Operations):
    """Operations under /v1/auth and /v1/sys/wrapping.

    Usage:
        with Vault(config) as vault:
            response = vault.auth().login_by_userpass("alice", "s3cret")
            token = response.client_token
    """

    # -------------------------------------------------------------------------
    # Token management
    # -------------------------------------------------------------------------

    def create_token(
        self,
        token_request: TokenRequest | None = None,
        mount: str | None = None,
    ) -> AuthResponse:
        """Create a token using the configured token as parent.

        Args:
            token_request: Optional token parameters. role, if set, selects
                           the /create/{role} endpoint.
            mount: Token auth mount. Defaults to "token".
        """
        request = token_request or TokenRequest()
        path = f"/v1/auth/{mount or 'token'}/create"
        if request.role is not None:
            path = f"{path}/{request.role}"
        descriptor = self._descriptor(HttpMethod.POST, path, body=request.to_payload())
        return self._call(descriptor, AuthResponse)

    def renew_self(self, increment: int = -1, mount: str | None = None) -> AuthResponse:
        """Renew the configured token.

        Args:
            increment: Requested extension in seconds. Negative values send
                       no body, letting the server apply its default.
            mount: Token auth mount. Defaults to "token".
        """
        body = {"increment": increment} if increment >= 0 else None
        descriptor = self._descriptor(
            HttpMethod.POST, f"/v1/auth/{mount or 'token'}/renew-self", body=body
        )
        return self._call(descriptor, AuthResponse)

    def lookup_self(self, mount: str | None = None) -> LookupResponse:
        """Look up the properties of the configured token."""
        descriptor = self._descriptor(HttpMethod.GET, f"/v1/auth/{mount or 'token'}/lookup-self")
        return self._call(descriptor, LookupResponse)

    def revoke_self(self, mount: str | None = None) -> None:
        """Revoke the configured token. The server answers 204 with no body."""
        descriptor = self._descriptor(HttpMethod.POST, f"/v1/auth/{mount or 'token'}/revoke-self")
        self._call(descriptor, _discard, expected_status=(204,), json_required=False)

    # -------------------------------------------------------------------------
    # Login backends
    # -------------------------------------------------------------------------

    def login_by_app_id(self, path: str, app_id: str, user_id: str) -> AuthResponse:
        """Log in to the legacy App ID backend.

        App ID was deprecated upstream in favour of AppRole; use
        login_by_app_role for new deployments.

        Args:
            path: Full login path after /v1/auth/, e.g. "app-id/login".
            app_id: The app-id.
            user_id: The user-id.
        """
        warnings.warn(
            "login_by_app_id uses the deprecated App ID backend; use login_by_app_role",
            DeprecationWarning,
            stacklevel=2,
        )
        descriptor = self._descriptor(
            HttpMethod.POST,
            f"/v1/auth/{path}",
            body={"app_id": app_id, "user_id": user_id},
            authenticated=False,
        )
        return self._call(descriptor, AuthResponse)

    def login_by_app_role(
        self, role_id: str, secret_id: str, path: str | None = None
    ) -> AuthResponse:
        """Log in with an AppRole role_id/secret_id pair. Mount defaults to "approle"."""
        descriptor = self._descriptor(
            HttpMethod.POST,
            f"/v1/auth/{path or 'approle'}/login",
            body={"role_id": role_id, "secret_id": secret_id},
            authenticated=False,
        )
        return self._call(descriptor, AuthResponse)

    def login_by_userpass(
        self, username: str, password: str, mount: str | None = None
    ) -> AuthResponse:
        """Log in with username and password. Mount defaults to "userpass"."""
        descriptor = self._descriptor(
            HttpMethod.POST,
            f"/v1/auth/{mount or 'userpass'}/login/{username}",
            body={"password": password},
            authenticated=False,
        )
        return self._call(descriptor, AuthResponse)

    def login_by_ldap(self, username: str, password: str, mount: str | None = None) -> AuthResponse:
        """Log in to an LDAP backend, which shares the userpass API. Mount defaults to "ldap"."""
        return self.login_by_userpass(username, password, mount or "ldap")

    def login_by_aws_ec2(
        self,
        role: str | None,
        identity: str,
        signature: str,
        nonce: str | None = None,
        mount: str | None = None,
    ) -> AuthResponse:
        """Log in with a base64 EC2 identity document and its signature.

        Args:
            role: Role to log in against. When None, the server picks one
                  from the instance's AMI ID.
            identity: Base64-encoded EC2 instance identity document.
            signature: Base64-encoded SHA256 RSA signature of the document.
            nonce: Client nonce. When None, the server generates one.
            mount: AWS auth mount. Defaults to "aws".
        """
        body = _without_none(
            {"identity": identity, "signature": signature, "role": role, "nonce": nonce}
        )
        descriptor = self._descriptor(
            HttpMethod.POST, f"/v1/auth/{mount or 'aws'}/login", body=body, authenticated=False
        )
        return self._call(descriptor, AuthResponse)

    def login_by_aws_ec2_pkcs7(
        self,
        role: str | None,
        pkcs7: str,
        nonce: str | None = None,
        mount: str | None = None,
    ) -> AuthResponse:
        """Log in with the PKCS7 signature of the EC2 identity document (newlines removed)."""
        body = _without_none({"pkcs7": pkcs7, "role": role, "nonce": nonce})
        descriptor = self._descriptor(
            HttpMethod.POST, f"/v1/auth/{mount or 'aws'}/login", body=body, authenticated=False
        )
        return self._call(descriptor, AuthResponse)

    def login_by_aws_iam(
        self,
        role: str | None,
        iam_request_url: str,
        iam_request_body: str,
        iam_request_headers: str,
        mount: str | None = None,
    ) -> AuthResponse:
        """Log in with a signed sts:GetCallerIdentity request.

        The URL, body and headers are the base64-encoded parts of the signed
        request; the method is always POST.
        """
        body = _without_none(
            {
                "iam_request_url": iam_request_url,
                "iam_request_body": iam_request_body,
                "iam_request_headers": iam_request_headers,
                "iam_http_request_method": "POST",
                "role": role,
            }
        )
        descriptor = self._descriptor(
            HttpMethod.POST, f"/v1/auth/{mount or 'aws'}/login", body=body, authenticated=False
        )
        return self._call(descriptor, AuthResponse)

    def login_by_github(self, github_token: str, mount: str | None = None) -> AuthResponse:
        """Log in with a GitHub personal access token. Mount defaults to "github"."""
        descriptor = self._descriptor(
            HttpMethod.POST,
            f"/v1/auth/{mount or 'github'}/login",
            body={"token": github_token},
            authenticated=False,
        )
        return self._call(descriptor, AuthResponse)

    def login_by_jwt(self, provider: str, role: str, jwt: str) -> AuthResponse:
        """Log in to a JWT-based backend mounted at provider."""
        descriptor = self._descriptor(
            HttpMethod.POST,
            f"/v1/auth/{provider}/login",
            body={"role": role, "jwt": jwt},
            authenticated=False,
        )
        return self._call(descriptor, AuthResponse)

    def login_by_gcp(self, role: str, jwt: str) -> AuthResponse:
        return self.login_by_jwt("gcp", role, jwt)

    def login_by_kubernetes(self, role: str, jwt: str) -> AuthResponse:
        return self.login_by_jwt("kubernetes", role, jwt)

    def login_by_cert(self, mount: str | None = None) -> AuthResponse:
        """Log in with the TLS client certificate presented on the connection."""
        descriptor = self._descriptor(
            HttpMethod.POST, f"/v1/auth/{mount or 'cert'}/login", authenticated=False
        )
        return self._call(descriptor, AuthResponse)

    # -------------------------------------------------------------------------
    # Response wrapping
    # -------------------------------------------------------------------------

    def wrap(self, data: Mapping[str, Any], ttl_seconds: int) -> WrapResponse:
        """Wrap data in a single-use token valid for ttl_seconds.

        Raises:
            MalformedBody: If the reply carries no wrapping token.
        """
        descriptor = self._descriptor(
            HttpMethod.POST,
            "/v1/sys/wrapping/wrap",
            body=dict(data),
            headers={WRAP_TTL_HEADER: str(ttl_seconds)},
        )
        return self._call(descriptor, _wrap_envelope)

    def unwrap(self, wrapped_token: str | None = None) -> UnwrapResponse:
        """Unwrap a wrapping token.

        Args:
            wrapped_token: Token to unwrap. When None, the configured token
                           is itself the wrapping token.
        """
        body = {"token": wrapped_token} if wrapped_token is not None else {}
        descriptor = self._descriptor(HttpMethod.POST, "/v1/sys/wrapping/unwrap", body=body)
        return self._call(descriptor, UnwrapResponse)

    def lookup_wrap(self) -> LogicalResponse:
        """Look up the wrapping properties of the configured token."""
        descriptor = self._descriptor(HttpMethod.GET, "/v1/sys/wrapping/lookup")
        return self._call(descriptor, LogicalResponse)


def _without_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _discard(raw: RawResponse, retries: int) -> None:
    return None


def _wrap_envelope(raw: RawResponse, retries: int) -> WrapResponse:
    response = WrapResponse(raw, retries)
    if not response.token:
        raise MalformedBody("Wrap response has no wrap_info.token", raw.status_code, raw.body)
    return response
