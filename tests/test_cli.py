# tests/test_cli.py
"""Tests for the entry points, the word list loader and server bookkeeping."""

import io
import logging
import threading
from pathlib import Path

import pytest

from conftest import make_sessions
from hangmango.client import main as client_main
from hangmango.client.net import validate_guess
from hangmango.common.certs import fingerprint
from hangmango.common.config import CA_CERT_FILE, DEFAULT_PORT
from hangmango.server import main as server_main
from hangmango.server.game import DEFAULT_POOL
from hangmango.server.state import ServerState


def test_load_wordlist(tmp_path):
    path = tmp_path / "words.txt"
    path.write_text("Banana\n\n  cherry \n")
    assert server_main.load_wordlist(path) == ("banana", "cherry")


def test_load_wordlist_falls_back(tmp_path):
    """A missing or empty list keeps the built-in words."""
    assert server_main.load_wordlist(None) == DEFAULT_POOL
    assert server_main.load_wordlist(tmp_path / "missing.txt") == DEFAULT_POOL
    empty = tmp_path / "empty.txt"
    empty.write_text("\n\n")
    assert server_main.load_wordlist(empty) == DEFAULT_POOL


def test_server_state_tracks_sessions():
    state = ServerState()
    _, session = make_sessions()
    assert state.register(session)
    assert not state.register(session)
    assert state.count() == 1
    assert state.all_sessions() == [session]
    state.unregister(session)
    assert state.count() == 0
    assert session.outbound.get_nowait() is None
    state.unregister(session)


def test_server_args():
    config, verbose = server_main.parse_args(["--lport", "5555", "--wordlist", "w.txt",
                                              "--idle-timeout", "30", "-v"])
    assert config.port == 5555
    assert config.wordlist == Path("w.txt")
    assert config.idle_timeout == 30.0
    assert verbose
    config, verbose = server_main.parse_args([])
    assert config.port == DEFAULT_PORT
    assert config.idle_timeout is None
    assert not verbose


def test_client_args():
    config, _ = client_main.parse_args(["--dhost", "::1", "--dport", "4000",
                                        "--fingerprint", "ab:cd", "--strict-commitment"])
    assert (config.host, config.port) == ("::1", 4000)
    assert config.fingerprint == "ab:cd"
    assert config.strict_commitment
    config, _ = client_main.parse_args([])
    assert config.cert_path == Path("certs") / "hangmango.crt"
    assert not config.strict_commitment


def test_server_exits_on_broken_credentials(tmp_path):
    (tmp_path / CA_CERT_FILE).write_text("orphaned certificate")
    assert server_main.main(["--certs", str(tmp_path), "--lport", "0"]) == 1


def test_client_exits_without_certificate(tmp_path, capsys):
    assert client_main.main(["--cert", str(tmp_path / "hangmango.crt")]) == 1
    out = capsys.readouterr().out
    assert "Welcome to hangmango" in out
    assert "ERROR - no certificate" in out


@pytest.mark.parametrize("text, ok", [
    ("a", True),
    ("Apple", True),
    ("", False),
    ("a b", False),
    ("ápple", False),
    ("a1", False),
    ("x" * 4096, False),
])
def test_validate_guess(text, ok):
    assert (validate_guess(text) is None) is ok


class FakeNet:
    def __init__(self, reject=()):
        self.finished = threading.Event()
        self.reject = reject
        self.sent = []
        self.closed = False

    def guess(self, text):
        if text in self.reject:
            raise ValueError(f"cannot send {text}")
        self.sent.append(text)

    def close(self):
        self.closed = True


def test_read_guesses(capsys):
    """Blank lines are skipped, rejected input is reported, EOF closes the client."""
    net = FakeNet(reject=("1",))
    client_main.read_guesses(net, io.StringIO("a\n\n1\napple\r\n"))
    assert net.sent == ["a", "apple"]
    assert "cannot send 1" in capsys.readouterr().out
    assert net.closed


def test_read_guesses_stops_after_game():
    net = FakeNet()
    net.finished.set()
    client_main.read_guesses(net, io.StringIO("a\n"))
    assert net.sent == []


def test_log_chain(server_credentials, caplog):
    """Startup logs the leaf and the authority with their fingerprints."""
    leaf, authority = server_credentials.chain
    with caplog.at_level(logging.INFO, logger="hangmango.server.main"):
        server_main.log_chain(server_credentials)
    assert len(caplog.records) == 2
    assert fingerprint(leaf) in caplog.records[0].getMessage()
    assert fingerprint(authority) in caplog.records[1].getMessage()
    assert "Hangmango Root Authority" in caplog.records[0].getMessage()
