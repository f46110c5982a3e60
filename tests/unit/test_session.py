"""Tests for session records and their sidecar files."""

from __future__ import annotations

from knotcap.session.files import SessionFiles, header_value, parse_head
from knotcap.session.models import SessionRecord


class TestSessionRecord:
    def test_full_url_relative(self, record: SessionRecord):
        assert record.full_url() == "https://api.example.com/v1/items?a=1&b="

    def test_full_url_absolute(self):
        record = SessionRecord(host="a.com", uri="http://a.com/x")
        assert record.full_url() == "http://a.com/x"

    def test_full_url_host_only(self):
        assert SessionRecord(host="a.com", scheme="HTTPS").full_url() == "https://a.com"

    def test_full_url_without_host(self):
        assert SessionRecord(uri="/x").full_url() == ""

    def test_short_url(self):
        assert SessionRecord(host="a.com", uri="/x?y").short_url() == "/x?y"
        assert SessionRecord(host="a.com", uri="http://a.com/p").short_url() == "/p"

    def test_request_context(self, record: SessionRecord):
        ctx = record.request_context()
        assert ctx.host == "api.example.com"
        assert ctx.full_uri == "api.example.com/v1/items?a=1&b="
        assert ctx.client_identifier == "agent/1.0"

    def test_ids_are_unique(self):
        assert SessionRecord().id != SessionRecord().id


def test_parse_head():
    headers = parse_head("Host: a.com\r\nX-Empty:\r\nbroken line\r\nAccept: */*\r\n")
    assert headers == [("Host", "a.com"), ("X-Empty", ""), ("Accept", "*/*")]


def test_header_value_is_case_insensitive_and_last():
    headers = [("Set-Cookie", "a=1"), ("set-cookie", "b=2")]
    assert header_value(headers, "SET-COOKIE") == "b=2"
    assert header_value(headers, "Host") is None


class TestSessionFiles:
    def test_write_and_read(self, session_files: SessionFiles, record: SessionRecord):
        session_files.write(
            record, True, "GET /v1/items HTTP/1.1", [("Host", "api.example.com")], b"hi"
        )
        assert session_files.line(record) == "GET /v1/items HTTP/1.1"
        assert session_files.head(record) == [("Host", "api.example.com")]
        assert session_files.read_body(record) == b"hi"
        assert session_files.body_size(record) == 2

    def test_empty_body_has_no_path(self, session_files, record):
        session_files.write(record, False, "HTTP/1.1 204 No Content", [])
        assert session_files.body_path(record, request=False) is None
        assert session_files.read_body(record, request=False) is None
        assert session_files.body_size(record, request=False) == 0

    def test_missing_files(self, session_files, record):
        assert session_files.head(record) is None
        assert session_files.line(record, request=False) is None
        assert session_files.body_path(record) is None

    def test_no_path_for_direction(self, session_files):
        record = SessionRecord(host="a.com")
        assert session_files.base_path(record) is None
        assert session_files.head(record) is None

    def test_remove(self, session_files, record):
        session_files.write(record, True, "GET / HTTP/1.1", [], b"x")
        session_files.write(record, False, "HTTP/1.1 200 OK", [], b"y")
        assert session_files.remove(record) == 8
        assert session_files.remove(record) == 0
        assert session_files.head(record) is None
