"""Tests for signed search cursors."""

from datetime import date
from uuid import uuid4

import pytest

from magpie.config import Settings
from magpie.engines.search import Cursor, CursorCodec
from magpie.errors import ScholarshipSearchError


@pytest.fixture
def codec():
    return CursorCodec("cursor-test-secret")


def test_round_trip(codec):
    cursor = Cursor(deadline=date(2026, 4, 15), id=uuid4())

    assert codec.decode(codec.encode(cursor)) == cursor


def test_token_is_url_safe(codec):
    token = codec.encode(Cursor(deadline=date(2026, 4, 15), id=uuid4()))

    assert all(ch.isalnum() or ch in "-_." for ch in token)


def test_tampered_payload_is_rejected(codec):
    token = codec.encode(Cursor(deadline=date(2026, 4, 15), id=uuid4()))
    other = codec.encode(Cursor(deadline=date(2027, 1, 1), id=uuid4()))
    forged = f"{other.split('.')[0]}.{token.split('.')[1]}"

    with pytest.raises(ScholarshipSearchError) as exc_info:
        codec.decode(forged)
    assert exc_info.value.status_code == 400


def test_cursor_from_another_key_is_rejected(codec):
    token = CursorCodec("some-other-secret").encode(Cursor(deadline=date(2026, 4, 15), id=uuid4()))

    with pytest.raises(ScholarshipSearchError):
        codec.decode(token)


@pytest.mark.parametrize("token", ["", "abc", "a.b.c", "!!!.???", "e30.AAAA"])
def test_malformed_tokens_are_rejected(codec, token):
    with pytest.raises(ScholarshipSearchError) as exc_info:
        codec.decode(token)
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid cursor"


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        CursorCodec("")


def test_from_settings_derives_stable_key_without_cursor_secret():
    settings = Settings(database_url="postgresql+asyncpg://db/x", cursor_secret="")
    cursor = Cursor(deadline=date(2026, 4, 15), id=uuid4())

    token = CursorCodec.from_settings(settings).encode(cursor)

    assert CursorCodec.from_settings(settings).decode(token) == cursor
