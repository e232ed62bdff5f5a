# tests/test_game.py
"""Tests for the hangman rules."""

import random

import pytest

from hangmango.server.game import DEFAULT_POOL, GUESS_TOO_LONG, HangmanState


def new_game(answer="apple"):
    game = HangmanState((answer,))
    game.new_game()
    return game


def test_new_game_hides_answer():
    game = new_game()
    assert game.hint == "_____"
    assert game.in_progress


def test_answer_drawn_from_pool():
    game = HangmanState(DEFAULT_POOL, random.Random(7))
    for _ in range(20):
        game.new_game()
        assert game.answer in DEFAULT_POOL
        assert game.hint == "_" * len(game.answer)


def test_empty_pool():
    with pytest.raises(ValueError):
        HangmanState(()).new_game()


def test_letter_reveals_every_position():
    game = new_game()
    assert game.process("p") == "_pp__"
    assert game.process("A") == "app__"
    assert game.process("e") == "app_e"
    assert game.process("z") == "app_e"
    assert game.guesses == ["p", "a", "e", "z"]


def test_completing_by_letters():
    """Revealing the last letter ends the game and returns the score."""
    game = new_game("hello")
    for letter in "helo":
        reply = game.process(letter)
    assert reply == "42"
    assert not game.in_progress
    assert game.score == 42


def test_word_guess_scoring():
    """One letter, then the word: 10*5 - 2*1 = 48."""
    game = new_game()
    assert game.process("a") == "a____"
    assert game.process("apple") == "48"
    assert not game.in_progress


def test_wrong_word_costs_one_point():
    game = new_game()
    assert game.process("apply") == "_____"
    assert game.process("grape") == "_____"
    assert game.wordguesses == ["apply", "grape"]
    assert game.process("Apple") == "48"


def test_oversized_guess_leaves_state_alone():
    game = new_game()
    game.process("a")
    reply = game.process("b" * 101)
    assert reply == GUESS_TOO_LONG
    assert game.hint == "a____"
    assert game.guesses == ["a"]
    assert game.wordguesses == []
    assert game.in_progress


def test_guess_of_exactly_100_is_a_word_guess():
    game = new_game()
    assert game.process("c" * 100) == "_____"
    assert game.wordguesses == ["c" * 100]
