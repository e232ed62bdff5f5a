# tests/test_scenarios.py
"""Whole games between a client and a server dispatcher, without sockets."""

import pytest

from conftest import Pair
from hangmango.client.dispatcher import Outcome
from hangmango.common.errors import CommitmentMismatch, ProtocolSequenceViolation
from hangmango.common.messages import Kind, Message
from hangmango.server.game import GUESS_TOO_LONG


def test_first_hint_carries_commitment(pair):
    pair.establish()
    assert pair.printed == ["_____"]
    assert pair.client.session.game_hash == pair.server.session.game_hash
    assert len(pair.client.session.game_hash) == 32
    assert pair.client.session.last_hint == "_____"


def test_letter_guesses_update_hint(pair):
    pair.establish()
    pair.turn("a")
    assert pair.printed[-1] == "a____"
    pair.turn("e")
    assert pair.printed[-1] == "a___e"
    assert pair.client.session.last_hint == "a___e"
    assert pair.outcomes == []


def test_word_guess_wins_with_confirmed_hash(pair):
    """One letter then the word scores 48; the echoed hash is accepted."""
    pair.establish()
    pair.turn("a")
    pair.turn("apple")
    assert pair.client.session.game_hash_confirmed
    assert pair.printed[-1] == "Game over! You scored: 48"
    assert pair.outcomes == [Outcome.COMPLETED]
    assert Outcome.COMPLETED.exit_code == 0


def test_letter_guesses_win(pair):
    """The last letter fills the hint, which confirms the hash."""
    pair.establish()
    for letter in "aple":
        pair.turn(letter)
    assert pair.printed[-1] == "Game over! You scored: 42"
    assert pair.outcomes == [Outcome.COMPLETED]


def test_oversized_guess_gets_fixed_reply(pair):
    pair.establish()
    pair.turn("a")
    pair.turn("b" * 101)
    assert pair.printed[-1] == GUESS_TOO_LONG
    assert pair.client.session.last_hint == "a____"
    game = pair.server.session.game
    assert game.hint == "a____"
    assert game.guesses == ["a"]
    assert game.in_progress


def test_guess_before_handshake(pair):
    with pytest.raises(ProtocolSequenceViolation):
        pair.client.send_guess("a")


def test_unconfirmed_game_over_is_tampering(pair):
    """A score without a confirmed hash exits non-zero."""
    pair.establish()
    pair.server.send(Message(kind=Kind.GAME_OVER, content=b"50"))
    pair.to_client()
    assert pair.outcomes == [Outcome.GAME_TAMPERED]
    assert Outcome.GAME_TAMPERED.exit_code == 1
    assert "never confirmed" in pair.printed[-1]


def test_swapped_answer_is_detected(pair):
    """The server changes its word mid-game; the winning guess cannot confirm."""
    pair.establish()
    pair.server.session.game.answer = "apply"
    pair.turn("apply")
    assert not pair.client.session.game_hash_confirmed
    assert pair.outcomes == [Outcome.GAME_TAMPERED]


def test_second_commitment_warns(pair):
    pair.establish()
    pair.server.send(Message(content=b"_____", commitment=b"\x01" * 32))
    pair.to_client()
    assert pair.client.tamper_suspected
    assert "new game hash" in pair.printed[-2]
    assert pair.client.session.game_hash == pair.server.session.game_hash


def test_second_commitment_strict(client_credentials, server_credentials):
    pair = Pair(client_credentials, server_credentials, strict=True)
    pair.establish()
    pair.server.send(Message(content=b"_____", commitment=b"\x01" * 32))
    with pytest.raises(CommitmentMismatch):
        pair.to_client()


def test_repeated_commitment_is_fine(pair):
    pair.establish()
    pair.server.send(Message(content=b"_____", commitment=pair.server.session.game_hash))
    pair.to_client()
    assert not pair.client.tamper_suspected


def test_wrong_echoed_commitment_is_fatal(pair):
    """The server drops a client that echoes a hash it never issued."""
    pair.establish()
    pair.client.send(Message(content=b"apple", commitment=b"\x00" * 32))
    with pytest.raises(CommitmentMismatch):
        pair.to_server()
    assert pair.server.session.game.in_progress


def test_messages_without_game_are_ignored(pair):
    pair.establish()
    pair.turn("apple")
    assert pair.outcomes == [Outcome.COMPLETED]
    pair.client.send(Message(content=b"a"))
    pair.to_server()
    assert Pair.drain(pair.server) == []


def test_guess_before_first_hint(pair):
    """Between the session key and the first hint, guesses are refused."""
    pair.client.start()
    for _ in range(2):
        pair.to_server()
        pair.to_client()
    assert pair.client.session.session_key is not None
    with pytest.raises(ProtocolSequenceViolation):
        pair.client.send_guess("a")
    pair.to_server()
    pair.to_client()
    pair.turn("a")
    assert pair.printed[-1] == "a____"
