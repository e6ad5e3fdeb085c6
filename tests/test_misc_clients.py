"""Tests for the Front, Flickr and Slack integrations."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from team51.clients.flickr_client import FlickrAPIError, FlickrClient
from team51.clients.front_client import FrontClient
from team51.clients.slack_client import SlackAPIError, log_to_slack


def test_front_create_export_sends_unix_timestamps(settings, mock_http):
    http = mock_http(lambda request: httpx.Response(201, json={"id": "exp_1", "status": "pending", "progress": 0}))
    client = FrontClient(settings=settings, http_client=http)

    export = client.create_export(
        datetime(2020, 1, 1, tzinfo=timezone.utc),
        datetime(2020, 1, 2, tzinfo=timezone.utc),
    )

    assert export.id == "exp_1"
    request = http.requests[0]
    assert str(request.url) == "https://api2.frontapp.com/exports"
    assert json.loads(request.content) == {"start": 1577836800, "end": 1577923200}


def test_front_create_export_rejects_inverted_range(settings):
    client = FrontClient(settings=settings)

    with pytest.raises(ValueError, match="before"):
        client.create_export(datetime(2021, 1, 1), datetime(2020, 1, 1))


def test_front_list_exports_reads_results(settings, mock_http):
    payload = {"_results": [{"id": "exp_1", "status": "done", "url": "https://front/exp_1.csv"}]}
    client = FrontClient(settings=settings, http_client=mock_http(lambda request: httpx.Response(200, json=payload)))

    exports = client.list_exports()

    assert [export.url for export in exports] == ["https://front/exp_1.csv"]


def test_flickr_call_method_params(settings, mock_http):
    http = mock_http(lambda request: httpx.Response(200, json={"stat": "ok", "user": {"nsid": "123@N01"}}))
    client = FlickrClient(settings=settings, http_client=http)

    user = client.find_user_by_username("someone")

    assert user.nsid == "123@N01"
    params = http.requests[0].url.params
    assert params["method"] == "flickr.people.findByUsername"
    assert params["api_key"] == "flickr-key"
    assert params["nojsoncallback"] == "1"


def test_flickr_failed_stat_raises(settings, mock_http):
    payload = {"stat": "fail", "code": 1, "message": "User not found"}
    client = FlickrClient(settings=settings, http_client=mock_http(lambda request: httpx.Response(200, json=payload)))

    with pytest.raises(FlickrAPIError, match="User not found"):
        client.find_user_by_username("nobody")


def test_log_to_slack_without_webhook(settings, mock_http):
    http = mock_http(lambda request: httpx.Response(200))

    assert log_to_slack("hello", settings=settings, http_client=http) is False
    assert http.requests == []


def test_log_to_slack_posts_message(settings, mock_http):
    settings.slack_webhook_url = "https://hooks.slack.com/workflows/abc"
    http = mock_http(lambda request: httpx.Response(200, text="ok"))

    assert log_to_slack("hello", settings=settings, http_client=http)
    assert json.loads(http.requests[0].content) == {"message": "hello"}


def test_log_to_slack_error(settings, mock_http):
    settings.slack_webhook_url = "https://hooks.slack.com/workflows/abc"
    http = mock_http(lambda request: httpx.Response(400, text="invalid_payload"))

    with pytest.raises(SlackAPIError, match="invalid_payload"):
        log_to_slack("hello", settings=settings, http_client=http)
