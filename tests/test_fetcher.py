"""Tests for the ordered-fallback JSON fetcher."""

from unittest.mock import patch

import pytest
import requests

from nft_stats.fetcher import (
    AllProvidersFailed,
    AtomicClient,
    ProviderHTTPError,
    first_success,
    unwrap_data,
)

from conftest import FakeResponse, FakeSession


def test_first_host_success_short_circuits(hosts):
    session = FakeSession(lambda host, path, q: FakeResponse(200, {"data": [1, 2]}))
    client = AtomicClient(hosts, session=session)

    assert client.get_json("/atomicassets/v1/accounts") == [1, 2]
    assert session.calls == ["https://primary.example/atomicassets/v1/accounts"]
    assert session.timeouts == [12.0]


def test_falls_back_after_timeout_and_server_error(hosts):
    def route(host, path, query):
        if host == "https://primary.example":
            raise requests.Timeout("read timed out")
        if host == "https://secondary.example":
            return FakeResponse(500, {"error": "boom"})
        return FakeResponse(200, {"data": {"assets": "42"}})

    session = FakeSession(route)
    client = AtomicClient(hosts, session=session)

    assert client.get_json("/x") == {"assets": "42"}
    assert [c.split("/x")[0] for c in session.calls] == hosts


def test_malformed_json_moves_to_next_host(hosts):
    def route(host, path, query):
        if host == "https://primary.example":
            return FakeResponse(200, text="<html>")
        return FakeResponse(200, {"ok": True})

    client = AtomicClient(hosts, session=FakeSession(route))
    assert client.get_json("/x") == {"ok": True}


def test_all_hosts_failing_raises_with_last_cause(hosts):
    def route(host, path, query):
        if host == "https://tertiary.example":
            return FakeResponse(503)
        raise requests.ConnectionError("refused")

    client = AtomicClient(hosts, session=FakeSession(route))
    with pytest.raises(AllProvidersFailed) as excinfo:
        client.get_json("/x")

    assert isinstance(excinfo.value.last_error, ProviderHTTPError)
    assert excinfo.value.last_error.status_code == 503
    assert "HTTP 503" in str(excinfo.value)
    assert len(excinfo.value.targets) == 3


def test_absolute_url_is_not_expanded(hosts):
    session = FakeSession(lambda host, path, q: FakeResponse(200, [1]))
    client = AtomicClient(hosts, session=session)

    assert client.get_json("HTTPS://other.example/api") == [1]
    assert session.calls == ["HTTPS://other.example/api"]


def test_trailing_slash_on_host_is_dropped():
    client = AtomicClient(["https://a.example/"], session=FakeSession(None))
    assert client.targets("/p") == ["https://a.example/p"]


def test_empty_target_list_fails():
    with pytest.raises(AllProvidersFailed) as excinfo:
        first_success([], lambda url: url)
    assert str(excinfo.value)


def test_unexpected_errors_propagate():
    def attempt(url):
        raise KeyError("bug")

    with pytest.raises(KeyError):
        first_success(["https://a.example"], attempt)


def test_unwrap_data():
    assert unwrap_data({"success": True, "data": [3]}) == [3]
    assert unwrap_data({"data": None}) is None
    assert unwrap_data([1, 2]) == [1, 2]
    assert unwrap_data({"assets": 1}) == {"assets": 1}


def test_body_read_in_chunks_and_connection_released():
    response = FakeResponse(chunks=[b'{"data": ', b'{"assets": ', b'"9"}}'])
    session = FakeSession(lambda host, path, q: response)
    client = AtomicClient(["https://a.example"], session=session)

    assert client.get_json("/x") == {"assets": "9"}
    assert response.closed


def test_slow_body_exceeding_whole_call_timeout_falls_through(hosts):
    slow = FakeResponse(chunks=[b'{"data": ', b'[1]}'])

    def route(host, path, query):
        if host == "https://primary.example":
            return slow
        return FakeResponse(200, {"data": [2]})

    client = AtomicClient(hosts, timeout=12.0, session=FakeSession(route))
    # deadline set at t=0; first chunk at t=1, second chunk arrives at t=13
    with patch("nft_stats.fetcher.time.monotonic", side_effect=[0.0, 1.0, 13.0, 20.0, 20.0, 20.0]):
        assert client.get_json("/x") == [2]

    assert slow.closed


def test_slow_body_on_every_host_raises_timeout():
    client = AtomicClient(
        ["https://a.example"],
        timeout=12.0,
        session=FakeSession(lambda host, path, q: FakeResponse(chunks=[b"[", b"1]"])),
    )
    with patch("nft_stats.fetcher.time.monotonic", side_effect=[0.0, 5.0, 12.5]):
        with pytest.raises(AllProvidersFailed) as excinfo:
            client.get_json("/x")

    assert isinstance(excinfo.value.last_error, requests.Timeout)


def test_error_status_releases_connection():
    response = FakeResponse(502, {"error": "bad gateway"})
    client = AtomicClient(["https://a.example"], session=FakeSession(lambda host, path, q: response))

    with pytest.raises(AllProvidersFailed):
        client.get_json("/x")
    assert response.closed
