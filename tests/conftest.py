# tests/conftest.py
"""Shared fixtures: credentials are generated once per test session."""

import queue

import pytest

from hangmango.client.dispatcher import ClientDispatcher
from hangmango.common.certs import load_client_credentials, load_server_credentials
from hangmango.common.config import LEAF_CERT_FILE
from hangmango.common.session import Role, Session
from hangmango.server.dispatcher import ServerDispatcher

CLIENT_ADDRESS = "127.0.0.1:50123"
SERVER_ADDRESS = "127.0.0.1:4444"


@pytest.fixture(scope="session")
def cert_dir(tmp_path_factory):
    return tmp_path_factory.mktemp("certs")


@pytest.fixture(scope="session")
def server_credentials(cert_dir):
    return load_server_credentials(cert_dir)


@pytest.fixture(scope="session")
def client_credentials(server_credentials, cert_dir):
    return load_client_credentials(cert_dir / LEAF_CERT_FILE, "127.0.0.1")


def make_sessions(sock_client=None, sock_server=None):
    client = Session(role=Role.CLIENT, sock=sock_client,
                     client_address=CLIENT_ADDRESS, server_address=SERVER_ADDRESS)
    server = Session(role=Role.SERVER, sock=sock_server,
                     client_address=CLIENT_ADDRESS, server_address=SERVER_ADDRESS)
    return client, server


class Pair:
    """A client and a server dispatcher wired together by hand, no sockets."""

    def __init__(self, client_credentials, server_credentials, pool=("apple",), strict=False):
        client_session, server_session = make_sessions()
        self.printed = []
        self.outcomes = []
        self.client = ClientDispatcher(client_session, client_credentials,
                                       on_finish=self.outcomes.append,
                                       strict_commitment=strict, out=self.printed.append)
        self.server = ServerDispatcher(server_session, server_credentials, pool)

    @staticmethod
    def drain(dispatcher):
        frames = []
        while True:
            try:
                data = dispatcher.session.outbound.get_nowait()
            except queue.Empty:
                return frames
            if data is not None:
                frames.append(data)

    def to_server(self):
        frames = self.drain(self.client)
        for data in frames:
            self.server.handle(data)
        return frames

    def to_client(self):
        frames = self.drain(self.server)
        for data in frames:
            self.client.handle(data)
        return frames

    def establish(self):
        """Run the handshake up to and including the first hint."""
        self.client.start()
        for _ in range(3):
            self.to_server()
            self.to_client()

    def turn(self, guess):
        self.client.send_guess(guess)
        self.to_server()
        self.to_client()


@pytest.fixture
def pair(client_credentials, server_credentials):
    return Pair(client_credentials, server_credentials)
