"""Tests for the GitHub client."""

import base64
import json

import httpx
import pytest
from nacl import encoding, public

from team51.clients.github_client import GitHubAPIError, GitHubClient, encrypt_secret
from team51.pyd_models.github_models import GitHubPublicKey, TeamAccessLevel


def repo_payload(name, archived=False):
    return {"id": len(name), "name": name, "full_name": f"a8cteam51/{name}", "archived": archived}


def test_encrypt_secret_opens_with_the_private_key():
    private_key = public.PrivateKey.generate()
    public_key = private_key.public_key.encode(encoding.Base64Encoder()).decode("utf-8")

    encrypted = encrypt_secret(public_key, "top secret")

    assert public.SealedBox(private_key).decrypt(base64.b64decode(encrypted)) == b"top secret"


def test_client_uses_configured_owner_and_token(settings):
    settings.github_api_owner = "someorg"
    client = GitHubClient(settings=settings)

    assert client.owner == "someorg"
    assert client.headers["Authorization"] == "Bearer gh-token"


def test_get_repository_returns_none_on_404(settings, mock_http):
    http = mock_http(lambda request: httpx.Response(404, json={"message": "Not Found"}))
    client = GitHubClient(settings=settings, http_client=http)

    assert client.get_repository("a8cteam51", "missing") is None
    assert http.requests[0].url.path == "/repos/a8cteam51/missing"


def test_get_repository_raises_other_errors(settings, mock_http):
    client = GitHubClient(settings=settings, http_client=mock_http(lambda request: httpx.Response(403, json={"message": "Forbidden"})))

    with pytest.raises(GitHubAPIError, match="Forbidden"):
        client.get_repository("a8cteam51", "private")


def test_iter_org_repositories_pages_until_empty(settings, mock_http):
    pages = {"1": [repo_payload("one"), repo_payload("two")], "2": [repo_payload("three")]}

    def handler(request):
        return httpx.Response(200, json=pages.get(request.url.params["page"], []))

    http = mock_http(handler)
    client = GitHubClient(settings=settings, http_client=http)

    names = [repo.name for repo in client.iter_org_repositories("a8cteam51")]

    assert names == ["one", "two", "three"]
    assert len(http.requests) == 3


def test_update_secret_sends_encrypted_value(settings, mock_http):
    private_key = public.PrivateKey.generate()
    key = GitHubPublicKey(key_id="key-1", key=private_key.public_key.encode(encoding.Base64Encoder()).decode("utf-8"))
    http = mock_http(lambda request: httpx.Response(204))
    client = GitHubClient(settings=settings, http_client=http)

    assert client.update_secret("a8cteam51", "acme", "DEPLOYHQ_TOKEN", "abc", public_key=key)

    request = http.requests[0]
    assert request.method == "PUT"
    assert request.url.path == "/repos/a8cteam51/acme/actions/secrets/DEPLOYHQ_TOKEN"
    body = json.loads(request.content)
    assert body["key_id"] == "key-1"
    assert public.SealedBox(private_key).decrypt(base64.b64decode(body["encrypted_value"])) == b"abc"


def test_add_branch_protection_requires_phpcs(settings, mock_http):
    http = mock_http(lambda request: httpx.Response(200, json={}))
    client = GitHubClient(settings=settings, http_client=http)

    client.add_branch_protection("a8cteam51", "acme")

    body = json.loads(http.requests[0].content)
    assert body["required_status_checks"]["contexts"] == ["Run PHPCS inspection"]
    assert body["enforce_admins"] is None
    assert http.requests[0].url.path == "/repos/a8cteam51/acme/branches/trunk/protection"


def test_delete_label_quotes_the_name(settings, mock_http):
    http = mock_http(lambda request: httpx.Response(204))
    client = GitHubClient(settings=settings, http_client=http)

    assert client.delete_label("a8cteam51", "acme", "good first issue")
    assert http.requests[0].url.raw_path == b"/repos/a8cteam51/acme/labels/good%20first%20issue"


def test_team_access_levels_map_to_permissions():
    assert TeamAccessLevel("deploy").permission == "push"
    assert TeamAccessLevel("triage").permission == "triage"
    assert TeamAccessLevel("admin").permission == "admin"


def test_graphql_raises_on_errors(settings, mock_http):
    http = mock_http(
        lambda request: httpx.Response(200, json={"data": None, "errors": [{"message": "Could not resolve node"}]})
    )
    client = GitHubClient(settings=settings, http_client=http)

    with pytest.raises(GitHubAPIError, match="Could not resolve node"):
        client.graphql("query { viewer { login } }")
    assert http.requests[0].url.path == "/graphql"


def test_iter_project_items_follows_the_cursor(settings, mock_http):
    def handler(request):
        variables = json.loads(request.content)["variables"]
        if variables["after"] is None:
            items = {"nodes": [{"id": "a"}, {"id": "b"}], "pageInfo": {"hasNextPage": True, "endCursor": "c1"}}
        else:
            items = {"nodes": [{"id": "c"}], "pageInfo": {"hasNextPage": False, "endCursor": None}}
        return httpx.Response(200, json={"data": {"node": {"items": items}}})

    http = mock_http(handler)
    client = GitHubClient(settings=settings, http_client=http)

    assert [item["id"] for item in client.iter_project_items("PVT_1")] == ["a", "b", "c"]
    assert json.loads(http.requests[1].content)["variables"] == {"projectId": "PVT_1", "first": 100, "after": "c1"}


def test_project_cards_and_issues(settings, mock_http):
    def handler(request):
        if request.url.path == "/projects/columns/55/cards":
            return httpx.Response(
                200,
                json=[{"id": 1, "content_url": "https://api.github.com/repos/a8cteam51/devqueue/issues/12"}, {"id": 2, "note": "Call client"}],
            )
        return httpx.Response(
            200, json={"number": 12, "title": "Fix checkout", "labels": [{"name": "bug", "color": "d73a4a"}]}
        )

    http = mock_http(handler)
    client = GitHubClient(settings=settings, http_client=http)

    cards = client.list_project_column_cards("55")
    issue = client.get_issue_by_url(cards[0].content_url)

    assert cards[1].content_url is None
    assert issue.title == "Fix checkout"
    assert http.requests[1].url.path == "/repos/a8cteam51/devqueue/issues/12"
