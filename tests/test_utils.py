"""
Tests for utility helpers
"""
from fastapi import Request
from jose import jwt

from health_search.utils.formatting import format_time, strip_markdown_code_blocks, truncate_preview
from health_search.utils.validators import resolve_client_key, user_from_token

SECRET = "unit-test-secret"


def _request(headers=None, client=("10.0.0.7", 5000)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/query",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_client_key_from_remote_address():
    assert resolve_client_key(_request(), SECRET) == "ip:10.0.0.7"


def test_client_key_from_valid_token():
    token = jwt.encode({"sub": "abc"}, SECRET, algorithm="HS256")

    key = resolve_client_key(_request({"Authorization": f"Bearer {token}"}), SECRET)

    assert key == "user:abc"


def test_invalid_token_falls_back_to_address():
    token = jwt.encode({"sub": "abc"}, "some-other-secret", algorithm="HS256")

    key = resolve_client_key(_request({"Authorization": f"Bearer {token}"}), SECRET)

    assert key == "ip:10.0.0.7"


def test_token_ignored_without_secret():
    token = jwt.encode({"sub": "abc"}, SECRET, algorithm="HS256")

    assert user_from_token(f"Bearer {token}", "", "HS256") is None


def test_strip_markdown_code_blocks():
    assert strip_markdown_code_blocks('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_markdown_code_blocks("```\n[]\n```") == "[]"
    assert strip_markdown_code_blocks('  {"a": 1} ') == '{"a": 1}'


def test_format_time():
    assert format_time(0) == "0:00"
    assert format_time(1205) == "20:05"


def test_truncate_preview():
    assert truncate_preview("short", 10) == "short"
    assert truncate_preview("a" * 20, 10) == "a" * 10 + "..."
