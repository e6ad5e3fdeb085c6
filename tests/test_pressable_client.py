"""Tests for the Pressable client and its token cache."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from team51.clients.pressable_client import (
    AUTH_URL,
    PressableAPIError,
    PressableAuthError,
    PressableClient,
    PressableTokenCache,
)

NOW = 1_700_000_000


def pressable_handler(routes):
    """Answer the token endpoint, then ``routes`` keyed by (method, path)."""

    def handler(request):
        if str(request.url) == AUTH_URL:
            return httpx.Response(200, json={"access_token": "new-access", "refresh_token": "new-refresh"})
        key = (request.method, request.url.path)
        if key not in routes:
            return httpx.Response(404, json={"message": "Not Found"})
        status, body = routes[key]
        return httpx.Response(status, json=body)

    return handler


@pytest.fixture
def token_cache(tmp_path):
    return PressableTokenCache(tmp_path / "tokens.json", clock=lambda: NOW)


@pytest.fixture
def make_client(settings, mock_http, token_cache):
    def factory(routes=None, sleep=lambda seconds: None):
        http = mock_http(pressable_handler(routes or {}))
        return PressableClient(settings=settings, http_client=http, token_cache=token_cache, sleep=sleep)

    return factory


def test_token_cache_expires_after_59_minutes(tmp_path):
    path = tmp_path / "tokens.json"
    PressableTokenCache(path, clock=lambda: NOW).save("access", "refresh")

    assert PressableTokenCache(path, clock=lambda: NOW + 58 * 60).get_access_token() == "access"
    assert PressableTokenCache(path, clock=lambda: NOW + 60 * 60).get_access_token() is None
    assert PressableTokenCache(path, clock=lambda: NOW + 60 * 60).get_refresh_token() == "refresh"


def test_token_cache_ignores_garbage(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("not json")

    assert PressableTokenCache(path).load() is None


def test_missing_client_credentials(settings):
    settings.pressable_api_app_client_secret = None
    with pytest.raises(ValueError, match="PRESSABLE_API_APP_CLIENT_SECRET"):
        PressableClient(settings=settings)


def test_refresh_grant_is_used_and_tokens_cached(make_client, token_cache):
    client = make_client({("GET", "/v1/sites/1"): (200, {"message": "Success", "data": {"id": 1, "name": "acme"}})})

    site = client.get_site(1)

    assert site.name == "acme"
    token_request = client.http_client.requests[0]
    assert parse_qs(token_request.content.decode()) == {
        "client_id": ["client-id"],
        "client_secret": ["client-secret"],
        "grant_type": ["refresh_token"],
        "refresh_token": ["refresh-token"],
    }
    assert client.http_client.requests[1].headers["Authorization"] == "Bearer new-access"
    assert token_cache.get_access_token() == "new-access"
    assert token_cache.get_refresh_token() == "new-refresh"


def test_password_grant_when_account_credentials_are_set(make_client, settings):
    settings.pressable_account_email = "ops@example.com"
    settings.pressable_account_password = "hunter2"
    client = make_client()

    client.get_access_token()

    body = parse_qs(client.http_client.requests[0].content.decode())
    assert body["grant_type"] == ["password"]
    assert body["email"] == ["ops@example.com"]


def test_cached_access_token_is_reused(make_client, token_cache):
    token_cache.save("cached-access", "cached-refresh")
    client = make_client({("GET", "/v1/sites"): (200, {"data": []})})

    assert client.list_sites() == []
    assert len(client.http_client.requests) == 1
    assert client.http_client.requests[0].headers["Authorization"] == "Bearer cached-access"


def test_list_sites_is_cached(make_client):
    client = make_client({("GET", "/v1/sites"): (200, {"data": [{"id": 1, "name": "acme-production", "url": "acme.com"}]})})

    first = client.list_sites()
    second = client.list_sites()

    assert first is second
    assert client.get_site_by_url("ACME.com").id == 1
    assert len([r for r in client.http_client.requests if r.url.path == "/v1/sites"]) == 1


def test_lookup_turns_404_into_none(make_client):
    client = make_client()

    assert client.get_site(404) is None
    assert client.get_sftp_user_by_username(404, "nobody") is None


def test_401_is_an_auth_error(make_client):
    client = make_client({("GET", "/v1/sites/1"): (401, {"message": "Unauthorized"})})

    with pytest.raises(PressableAuthError, match="credentials"):
        client.get_site(1)


def test_validation_errors_are_joined(make_client):
    client = make_client({("POST", "/v1/sites"): (422, {"message": "Invalid", "errors": {"name": "is taken"}})})

    with pytest.raises(PressableAPIError, match="name: is taken"):
        client.create_site("acme-production", "DFW")


def test_wait_for_site_polls_until_deployed(settings, mock_http, token_cache):
    states = iter(["deploying", "deploying", "live"])
    sleeps = []

    def handler(request):
        if str(request.url) == AUTH_URL:
            return httpx.Response(200, json={"access_token": "a", "refresh_token": "r"})
        return httpx.Response(200, json={"data": {"id": 5, "name": "acme", "state": next(states)}})

    client = PressableClient(settings=settings, http_client=mock_http(handler), token_cache=token_cache, sleep=sleeps.append)

    site = client.wait_for_site(5, interval=3)

    assert site.state == "live"
    assert sleeps == [3, 3]


def test_reset_sftp_password(make_client):
    client = make_client({("POST", "/v1/sites/9/ftp/password/acme-owner"): (200, {"data": "n3w-pass"})})

    assert client.reset_sftp_password(9, "acme-owner") == "n3w-pass"


def test_add_domain_posts_the_name(make_client):
    client = make_client(
        {("POST", "/v1/sites/9/domains"): (200, {"data": [{"id": 3, "domainName": "acme.com", "primary": False}]})}
    )

    domains = client.add_domain(9, "acme.com")

    assert domains[0].domain_name == "acme.com"
    assert json.loads(client.http_client.requests[-1].content) == {"name": "acme.com"}


def test_create_collaborator_polls_with_backoff(make_client):
    sleeps = []
    client = make_client({("POST", "/v1/collaborators/batch_create"): (200, {"data": None})}, sleep=sleeps.append)

    assert client.create_collaborator("new@example.com", 9, ["wp_access"]) is None
    assert sleeps == [1, 2, 4, 8, 16]


def test_generate_refresh_token(mock_http):
    http = mock_http(lambda request: httpx.Response(200, json={"access_token": "a", "refresh_token": "r"}))

    tokens = PressableClient.generate_refresh_token("id", "secret", "ops@example.com", "pw", http_client=http)

    assert tokens["refresh_token"] == "r"


def test_generate_refresh_token_failure(mock_http):
    http = mock_http(lambda request: httpx.Response(400, json={"error_description": "Bad credentials"}))

    with pytest.raises(PressableAuthError, match="Bad credentials"):
        PressableClient.generate_refresh_token("id", "secret", "ops@example.com", "pw", http_client=http)


def test_list_php_logs_passes_severity_and_limit(make_client):
    client = make_client(
        {
            ("GET", "/v1/sites/9/logs/php"): (
                200,
                {"data": [{"message": "PHP Fatal error: boom", "severity": "Fatal error", "timestamp": 1_792_000_000}]},
            )
        }
    )

    entries = client.list_php_logs(9, severity="Fatal error", limit=50)

    assert entries[0].severity == "Fatal error"
    params = client.http_client.requests[-1].url.params
    assert params["per_page"] == "50"
    assert params["severity"] == "Fatal error"


def test_list_php_logs_empty(make_client):
    client = make_client({("GET", "/v1/sites/9/logs/php"): (200, {"data": None})})

    assert client.list_php_logs(9) == []
    assert "severity" not in client.http_client.requests[-1].url.params
