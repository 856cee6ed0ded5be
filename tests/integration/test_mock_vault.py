"""Integration tests for the mock Vault server infrastructure.

These tests verify:
1. The server starts and answers in Vault's response shape
2. Failure injection affects exactly the requested number of requests
3. Reset clears state between tests
"""

import httpx


class TestMockVaultBasic:
    """Basic connectivity and response tests."""

    def test_login_shape(self, mock_vault_server):
        """Userpass login returns an auth block."""
        with httpx.Client(base_url=mock_vault_server.base_url) as client:
            response = client.post(
                "/v1/auth/userpass/login/alice", json={"password": "wonderland"}
            )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        auth = response.json()["auth"]
        assert auth["client_token"].startswith("s.")
        assert auth["policies"] == ["default", "reader"]

    def test_root_token_seeded(self, mock_vault_server):
        """The root token can look itself up."""
        with httpx.Client(base_url=mock_vault_server.base_url) as client:
            response = client.get(
                "/v1/auth/token/lookup-self", headers={"X-Vault-Token": "s.root"}
            )
        assert response.status_code == 200
        assert response.json()["data"]["policies"] == ["root"]


class TestFailureInjection:
    """Tests for the /_control/fail endpoint."""

    def test_next_requests_fail(self, mock_vault_server):
        """The requested number of /v1 calls fail with plain text."""
        mock_vault_server.fail_next(2)
        with httpx.Client(base_url=mock_vault_server.base_url) as client:
            statuses = [
                client.get("/v1/auth/token/lookup-self", headers={"X-Vault-Token": "s.root"})
                for _ in range(3)
            ]
        assert [r.status_code for r in statuses] == [500, 500, 200]
        assert statuses[0].text == "injected failure"
        assert statuses[0].headers["content-type"].startswith("text/plain")

    def test_reset_clears_pending_failures(self, mock_vault_server):
        """reset() cancels injected failures."""
        mock_vault_server.fail_next(5)
        mock_vault_server.reset()
        with httpx.Client(base_url=mock_vault_server.base_url) as client:
            response = client.get(
                "/v1/auth/token/lookup-self", headers={"X-Vault-Token": "s.root"}
            )
        assert response.status_code == 200
