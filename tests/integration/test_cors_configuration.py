import pytest
import requests

from tests.conftest import _launch_server, reserve_port

pytestmark = pytest.mark.integration


@pytest.fixture(name="cors_server")
def _cors_server(tmp_path):
    host = "127.0.0.1"
    port = reserve_port(host)
    log_file = tmp_path / "agent.log"
    workdir = tmp_path / "workspace"
    workdir.mkdir()

    # Only the hosted IDE front end, with credentials
    extra_args = [
        "--cors-allowed-origins",
        "https://*.app.github.dev",
        "--cors-allow-credentials",
    ]

    yield from _launch_server(host, port, workdir, extra_args, log_file)


def test_pattern_allowlist_with_credentials(cors_server):
    """
    Pattern allowlists echo the caller origin with Vary: Origin and
    credentials, and say nothing to origins outside the pattern.
    """
    base_url = cors_server["base_url"]

    origin = "https://studious-space-3001.app.github.dev"
    response = requests.get(f"{base_url}/health", headers={"Origin": origin}, timeout=5)
    assert response.status_code == 200
    assert response.headers.get("Access-Control-Allow-Origin") == origin
    assert response.headers.get("Access-Control-Allow-Credentials") == "true"
    assert response.headers.get("Vary") == "Origin"

    response = requests.get(
        f"{base_url}/health", headers={"Origin": "https://evil.com"}, timeout=5
    )
    assert response.status_code == 200
    assert "Access-Control-Allow-Origin" not in response.headers


def test_preflight_for_file_api(cors_server):
    """OPTIONS preflight returns 204 with the configured methods and headers."""
    base_url = cors_server["base_url"]

    headers = {
        "Origin": "https://studious-space-3001.app.github.dev",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "Content-Type, Authorization",
    }
    response = requests.options(f"{base_url}/api/files", headers=headers, timeout=5)
    assert response.status_code == 204
    assert response.content == b""
    allowed_methods = response.headers.get("Access-Control-Allow-Methods", "")
    for method in ("GET", "POST", "DELETE", "OPTIONS"):
        assert method in allowed_methods
    assert "Authorization" in response.headers.get("Access-Control-Allow-Headers", "")
    assert response.headers.get("Access-Control-Max-Age") == "86400"


def test_preflight_from_unknown_origin_gets_no_grant(cors_server):
    base_url = cors_server["base_url"]

    headers = {"Origin": "https://evil.com", "Access-Control-Request-Method": "DELETE"}
    response = requests.options(f"{base_url}/api/files", headers=headers, timeout=5)
    assert response.status_code == 204
    assert "Access-Control-Allow-Origin" not in response.headers
