"""Tests for MediaWikiClient request building and response handling."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from hypothesis import given, settings
from hypothesis import strategies as st

from mwsync.errors import AuthError, WikiAPIError
from mwsync.models.config import WikiConfig
from mwsync.wiki.mediawiki_client import (
    MediaWikiClient,
    format_api_timestamp,
    parse_api_timestamp,
)

API_URL = "https://wiki.example.org/w/api.php"


def make_response(payload, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    else:
        response.raise_for_status.return_value = None
    return response


def make_client(get_payloads=(), post_payloads=(), feed="watchlist"):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = [make_response(p) for p in get_payloads]
    session.post.side_effect = [make_response(p) for p in post_payloads]
    client = MediaWikiClient(API_URL, feed=feed, timeout=12.5, session=session)
    return client, session


def test_from_config_uses_api_url():
    config = WikiConfig(
        location="https://genewiki.example.org", scripts="/w", username="u", password="p"
    )

    client = MediaWikiClient.from_config(config)

    assert client.api_url == "https://genewiki.example.org/w/api.php"


def test_unknown_feed_rejected():
    with pytest.raises(ValueError):
        MediaWikiClient(API_URL, feed="rss", session=MagicMock())


def test_login_success():
    client, session = make_client(
        get_payloads=[{"query": {"tokens": {"logintoken": "abc+\\"}}}],
        post_payloads=[{"login": {"result": "Success", "lgusername": "SyncBot"}}],
    )

    client.login("SyncBot", "secret")

    data = session.post.call_args.kwargs["data"]
    assert data["action"] == "login"
    assert data["lgname"] == "SyncBot"
    assert data["lgpassword"] == "secret"
    assert data["lgtoken"] == "abc+\\"
    assert data["format"] == "json"
    assert session.post.call_args.kwargs["timeout"] == 12.5


def test_login_rejected_raises_auth_error():
    client, _ = make_client(
        get_payloads=[{"query": {"tokens": {"logintoken": "abc"}}}],
        post_payloads=[{"login": {"result": "Failed", "reason": "Incorrect password"}}],
    )

    with pytest.raises(AuthError) as exc_info:
        client.login("SyncBot", "wrong")

    assert "Incorrect password" in str(exc_info.value)


def test_login_with_api_error_raises_auth_error():
    client, _ = make_client(
        get_payloads=[{"error": {"code": "internal_api_error", "info": "boom"}}],
    )

    with pytest.raises(AuthError):
        client.login("SyncBot", "secret")


def test_list_changes_watchlist_params_and_records():
    since = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
    until = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    client, session = make_client(
        get_payloads=[
            {
                "query": {
                    "watchlist": [
                        {
                            "title": "Reelin",
                            "revid": 101,
                            "user": "Alice",
                            "comment": "expand",
                            "timestamp": "2024-06-01T10:30:00Z",
                            "bot": False,
                        },
                        {
                            "title": "TP53",
                            "revid": 102,
                            "user": "ProteinBoxBot",
                            "comment": "infobox",
                            "timestamp": "2024-06-01T11:00:00Z",
                            "bot": True,
                        },
                    ]
                }
            }
        ]
    )

    records = client.list_changes(since, include_automated=False, until=until)

    params = session.get.call_args.kwargs["params"]
    assert params["list"] == "watchlist"
    assert params["wlstart"] == "2024-06-01T10:00:00Z"
    assert params["wlend"] == "2024-06-01T12:00:00Z"
    assert params["wldir"] == "newer"
    assert params["wlshow"] == "!bot"
    assert params["wltype"] == "edit|new"
    assert [r.title for r in records] == ["Reelin", "TP53"]
    assert records[0].revid == 101
    assert records[0].author == "Alice"
    assert records[0].summary == "expand"
    assert records[0].timestamp == datetime(2024, 6, 1, 10, 30, tzinfo=timezone.utc)
    assert records[1].automated is True


def test_list_changes_includes_bots_by_default():
    client, session = make_client(get_payloads=[{"query": {"watchlist": []}}])

    client.list_changes(datetime(2024, 6, 1, tzinfo=timezone.utc))

    params = session.get.call_args.kwargs["params"]
    assert "wlshow" not in params
    assert "wlend" not in params
    assert params["wltype"] == "edit|new"


def test_list_changes_follows_continuation():
    client, session = make_client(
        get_payloads=[
            {
                "continue": {"wlcontinue": "20240601103000|5", "continue": "-||"},
                "query": {
                    "watchlist": [
                        {"title": "A", "revid": 1, "timestamp": "2024-06-01T10:00:00Z"}
                    ]
                },
            },
            {
                "query": {
                    "watchlist": [
                        {"title": "B", "revid": 2, "timestamp": "2024-06-01T10:30:00Z"}
                    ]
                }
            },
        ]
    )

    records = client.list_changes(datetime(2024, 6, 1, tzinfo=timezone.utc))

    assert [r.title for r in records] == ["A", "B"]
    second_params = session.get.call_args_list[1].kwargs["params"]
    assert second_params["wlcontinue"] == "20240601103000|5"
    assert second_params["list"] == "watchlist"


def test_list_changes_recentchanges_feed():
    client, session = make_client(
        get_payloads=[
            {
                "query": {
                    "recentchanges": [
                        {"title": "A", "revid": 9, "timestamp": "2024-06-01T10:00:00Z"},
                        {"type": "log", "timestamp": "2024-06-01T10:01:00Z"},
                    ]
                }
            }
        ],
        feed="recentchanges",
    )

    records = client.list_changes(datetime(2024, 6, 1, tzinfo=timezone.utc), include_automated=False)

    params = session.get.call_args.kwargs["params"]
    assert params["list"] == "recentchanges"
    assert params["rcstart"] == "2024-06-01T00:00:00Z"
    assert params["rcshow"] == "!bot"
    assert params["rctype"] == "edit|new"
    assert [r.title for r in records] == ["A"]


def test_get_page_text():
    client, session = make_client(
        get_payloads=[
            {
                "query": {
                    "pages": [
                        {
                            "title": "Reelin",
                            "revisions": [{"slots": {"main": {"content": "'''Reelin''' is"}}}],
                        }
                    ]
                }
            }
        ]
    )

    assert client.get_page_text("Reelin") == "'''Reelin''' is"
    params = session.get.call_args.kwargs["params"]
    assert params["titles"] == "Reelin"
    assert params["rvprop"] == "content"
    assert params["rvslots"] == "main"


def test_get_page_text_missing_page():
    client, _ = make_client(
        get_payloads=[{"query": {"pages": [{"title": "Nope", "missing": True}]}}]
    )

    with pytest.raises(WikiAPIError) as exc_info:
        client.get_page_text("Nope")

    assert exc_info.value.code == "missingtitle"


def test_get_top_revision():
    client, _ = make_client(
        get_payloads=[
            {
                "query": {
                    "pages": [
                        {
                            "title": "Reelin",
                            "revisions": [
                                {
                                    "revid": 555,
                                    "user": "Alice",
                                    "comment": "fix typo",
                                    "timestamp": "2024-06-01T09:00:00Z",
                                }
                            ],
                        }
                    ]
                }
            }
        ]
    )

    revision = client.get_top_revision("Reelin")

    assert revision.revid == 555
    assert revision.author == "Alice"
    assert revision.summary == "fix typo"
    assert revision.timestamp == datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


def test_write_page_posts_edit_with_csrf_token():
    client, session = make_client(
        get_payloads=[{"query": {"tokens": {"csrftoken": "tok+\\"}}}],
        post_payloads=[{"edit": {"result": "Success", "newrevid": 9}}],
    )

    client.write_page("Reelin", "new text", "{[SYNC | user = a | revid = 1 | summary = s]}")

    data = session.post.call_args.kwargs["data"]
    assert data["action"] == "edit"
    assert data["title"] == "Reelin"
    assert data["text"] == "new text"
    assert data["token"] == "tok+\\"
    assert data["notminor"] == "1"
    assert "minor" not in data


def test_write_page_minor_flag():
    client, session = make_client(
        get_payloads=[{"query": {"tokens": {"csrftoken": "tok"}}}],
        post_payloads=[{"edit": {"result": "Success"}}],
    )

    client.write_page("Reelin", "text", "summary", minor=True)

    assert session.post.call_args.kwargs["data"]["minor"] == "1"


def test_write_page_api_error():
    client, _ = make_client(
        get_payloads=[{"query": {"tokens": {"csrftoken": "tok"}}}],
        post_payloads=[{"error": {"code": "protectedpage", "info": "protected"}}],
    )

    with pytest.raises(WikiAPIError) as exc_info:
        client.write_page("Reelin", "text", "summary")

    assert exc_info.value.code == "protectedpage"


def test_write_page_when_logged_out_raises_auth_error():
    client, _ = make_client(
        get_payloads=[{"query": {"tokens": {"csrftoken": "+\\"}}}],
        post_payloads=[{"error": {"code": "assertuserfailed", "info": "not logged in"}}],
    )

    with pytest.raises(AuthError):
        client.write_page("Reelin", "text", "summary")


def test_write_page_rejected_result():
    client, _ = make_client(
        get_payloads=[{"query": {"tokens": {"csrftoken": "tok"}}}],
        post_payloads=[{"edit": {"result": "Failure"}}],
    )

    with pytest.raises(WikiAPIError):
        client.write_page("Reelin", "text", "summary")


def test_malformed_json_raises_wiki_api_error():
    session = MagicMock()
    session.headers = {}
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.side_effect = ValueError("Expecting value")
    session.get.return_value = response
    client = MediaWikiClient(API_URL, session=session)

    with pytest.raises(WikiAPIError):
        client.get_page_text("Reelin")


def test_transient_http_errors_are_retried(monkeypatch):
    monkeypatch.setattr("mwsync.utils.retry.time.sleep", lambda _: None)
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = [
        requests.ConnectionError("reset"),
        make_response({"query": {"pages": [{"revisions": [{"slots": {"main": {"content": "ok"}}}]}]}}),
    ]
    client = MediaWikiClient(API_URL, session=session)

    assert client.get_page_text("Reelin") == "ok"
    assert session.get.call_count == 2


@given(
    st.datetimes(
        min_value=datetime(2001, 1, 15),
        max_value=datetime(2100, 1, 1),
    ).map(lambda d: d.replace(microsecond=0, tzinfo=timezone.utc))
)
@settings(max_examples=50)
def test_api_timestamps_round_trip(value: datetime):
    assert parse_api_timestamp(format_api_timestamp(value)) == value
