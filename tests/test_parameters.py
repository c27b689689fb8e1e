"""Tests for request parameter ordering and signing."""

from __future__ import annotations

import hashlib

import pytest

from listenrelay.parameters import RequestParameterMap

SECRET = "0123456789abcdef0123456789abcdef"


def test_signature_matches_documented_scheme() -> None:
    params = RequestParameterMap({"method": "auth.getSession", "api_key": "KEY", "token": "TOK"})
    expected = hashlib.md5(f"api_keyKEYmethodauth.getSessiontokenTOK{SECRET}".encode()).hexdigest()
    assert params.signature(SECRET) == expected


def test_signature_ignores_insertion_order() -> None:
    a = RequestParameterMap([("track", "Song"), ("artist", "Band"), ("sk", "S")])
    b = RequestParameterMap([("sk", "S"), ("artist", "Band"), ("track", "Song")])
    assert a.signature(SECRET) == b.signature(SECRET)


def test_signature_changes_with_any_value() -> None:
    a = RequestParameterMap({"artist": "Band", "track": "Song"})
    b = RequestParameterMap({"artist": "Band", "track": "Song (Live)"})
    assert a.signature(SECRET) != b.signature(SECRET)


def test_meta_parameters_are_not_signed() -> None:
    plain = RequestParameterMap({"artist": "Band"})
    noisy = RequestParameterMap({"artist": "Band", "format": "json", "callback": "cb", "api_sig": "old"})
    assert plain.signature(SECRET) == noisy.signature(SECRET)


def test_sign_sets_api_sig_and_keeps_wire_order() -> None:
    params = RequestParameterMap([("track", "Song"), ("artist", "Band")])
    sig = params.sign(SECRET)
    assert params["api_sig"] == sig
    assert [name for name, _ in params.to_form()] == ["track", "artist", "api_sig"]


def test_duplicate_key_last_write_wins_in_original_position() -> None:
    params = RequestParameterMap()
    params.add("artist", "First")
    params.add("track", "Song")
    params["artist"] = "Second"

    assert params["artist"] == "Second"
    assert params.to_form() == [("artist", "Second"), ("track", "Song")]
    assert len(params) == 2
    assert params.signature(SECRET) == RequestParameterMap({"artist": "Second", "track": "Song"}).signature(SECRET)


def test_numbers_and_bools_are_formatted() -> None:
    params = RequestParameterMap({"timestamp[0]": 1700000000, "chosenByUser[0]": False, "duration[0]": 200})
    assert params.to_form() == [("timestamp[0]", "1700000000"), ("chosenByUser[0]", "0"), ("duration[0]", "200")]


def test_other_values_are_rejected() -> None:
    with pytest.raises(TypeError):
        RequestParameterMap({"artist": None})


def test_repr_masks_credentials() -> None:
    params = RequestParameterMap({"sk": "secret-session", "artist": "Band"})
    assert "secret-session" not in repr(params)
