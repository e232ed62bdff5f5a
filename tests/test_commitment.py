# tests/test_commitment.py
"""Tests for the game hash commitment."""

import datetime
import hashlib

import pytest

from hangmango.common import commitment
from hangmango.common.session import Role, Session

WHEN = datetime.datetime(2020, 5, 23, 4, 24, 37, tzinfo=datetime.timezone.utc)


def make_session():
    return Session(role=Role.CLIENT, client_address="127.0.0.1:39214",
                   server_address="127.0.0.1:4444")


def test_commitment_time_truncates_to_minute():
    assert commitment.commitment_time(WHEN) == "2020-05-23T04:24:00Z"


def test_commitment_time_converts_to_utc():
    local = WHEN.astimezone(datetime.timezone(datetime.timedelta(hours=10)))
    assert commitment.commitment_time(local) == "2020-05-23T04:24:00Z"


def test_game_hash_layout():
    """The hash covers time, answer and both addresses joined by slashes."""
    expected = hashlib.sha256(b"2020-05-23T04:24:00Z/apple/127.0.0.1:39214/127.0.0.1:4444").digest()
    assert commitment.game_hash("2020-05-23T04:24:00Z", "apple",
                                "127.0.0.1:39214", "127.0.0.1:4444") == expected


@pytest.mark.parametrize("index, value", [
    (0, "2020-05-23T04:25:00Z"),
    (1, "apply"),
    (2, "127.0.0.1:39215"),
    (3, "127.0.0.1:4445"),
])
def test_every_component_changes_the_hash(index, value):
    parts = ["2020-05-23T04:24:00Z", "apple", "127.0.0.1:39214", "127.0.0.1:4444"]
    base = commitment.game_hash(*parts)
    parts[index] = value
    assert commitment.game_hash(*parts) != base


def test_format_address():
    assert commitment.format_address(("127.0.0.1", 4444)) == "127.0.0.1:4444"
    assert commitment.format_address(("::1", 4444, 0, 0)) == "[::1]:4444"


@pytest.mark.parametrize("guess, hint, expected", [
    ("e", "appl_", "apple"),
    ("P", "a__le", "apple"),
    ("apple", "a___e", "apple"),
    ("x", "", "x"),
])
def test_candidate_answer(guess, hint, expected):
    assert commitment.candidate_answer(guess, hint) == expected


def test_generate_and_confirm():
    """The client confirms the commitment with the winning guess only."""
    session = make_session()
    session.game_hash_confirmed = True
    digest = commitment.generate(session, "apple", WHEN)
    assert session.game_hash == digest
    assert session.game_hash_confirmed is False

    session.game_hash_time = "2020-05-23T04:24:00Z"
    session.last_hint = "a__le"
    assert not commitment.confirms(session, "x")
    assert commitment.confirms(session, "p")
    assert commitment.confirms(session, "APPLE")
    assert not commitment.confirms(session, "apply")


def test_confirm_tolerates_previous_minute():
    """A hint generated at hh:mm:59 and received at hh:mm+1 still confirms."""
    session = make_session()
    commitment.generate(session, "apple", WHEN)
    session.game_hash_time = "2020-05-23T04:25:00Z"
    assert commitment.confirms(session, "apple")
    session.game_hash_time = "2020-05-23T04:26:00Z"
    assert not commitment.confirms(session, "apple")


def test_confirm_without_commitment():
    session = make_session()
    assert not commitment.confirms(session, "apple")
