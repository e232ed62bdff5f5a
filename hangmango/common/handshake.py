'''
Handshake state machines.

    client                                   server
    INIT
      PubKeyRequest{client key}  -------->   AWAITING_CLIENT_KEY
    AWAITING_SERVER_KEY                        (plaintext, unsigned)
                       <--------  PubKeyResponse{server key}
                                     (plaintext, signed by the leaf key)
      SymKeyRequest  ----------------------> AWAITING_SESSION_KEY
    AWAITING_SESSION_KEY                       (RSA-OAEP to the server)
                       <--------  SymKeyResponse{session key}
                                     (RSA-OAEP to the client, signed)
    ESTABLISHED                              ESTABLISHED
      "START GAME" (AES-GCM) ------------->

Each side replies under the phase the peer is still in, then advances.
'''
import logging

from cryptography.exceptions import UnsupportedAlgorithm

from hangmango.common.config import RSA_BITS, SESSION_KEY_SIZE, START_GAME
from hangmango.common.crypto import aes_key, rsa_load_public_pem, rsa_public_pem
from hangmango.common.errors import MalformedEnvelope, ProtocolSequenceViolation
from hangmango.common.messages import Kind, Message
from hangmango.common.session import HandshakeState

logger = logging.getLogger(__name__)


def _load_peer_key(content: bytes):
    try:
        key = rsa_load_public_pem(content)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise MalformedEnvelope(f"peer public key does not deserialise: {exc}") from exc
    if key.key_size < RSA_BITS:
        raise MalformedEnvelope(f"peer public key is only {key.key_size} bits")
    return key


class _Handshake:
    handlers = {}

    def __init__(self, dispatcher):
        self.dispatcher = dispatcher
        self.session = dispatcher.session

    def _expect(self, state: HandshakeState, msg: Message) -> None:
        if self.session.handshake is not state:
            raise ProtocolSequenceViolation(
                f"{msg.kind.name} received while {self.session.handshake.value}")

    def _advance(self, state: HandshakeState) -> None:
        logger.info("%s - handshake %s -> %s", self.session.peer,
                    self.session.handshake.value, state.value)
        self.session.handshake = state

    def handle(self, msg: Message) -> None:
        handler = self.handlers.get(msg.kind)
        if handler is None:
            raise ProtocolSequenceViolation(f"{msg.kind.name} is not accepted by the {self.session.role.value}")
        handler(self, msg)


class ServerHandshake(_Handshake):

    def begin(self) -> None:
        self._advance(HandshakeState.AWAITING_CLIENT_KEY)

    def on_pubkey_request(self, msg: Message) -> None:
        self._expect(HandshakeState.AWAITING_CLIENT_KEY, msg)
        client_key = _load_peer_key(msg.content)
        # The client has no key of ours yet: answer in plaintext, signed.
        self.dispatcher.send(Message(kind=Kind.PUBKEY_RESPONSE,
                                     content=rsa_public_pem(self.dispatcher.credentials.public_key)))
        self.session.enter_asymmetric(client_key)
        self._advance(HandshakeState.AWAITING_SESSION_KEY)

    def on_symkey_request(self, msg: Message) -> None:
        self._expect(HandshakeState.AWAITING_SESSION_KEY, msg)
        key = aes_key()
        self.dispatcher.send(Message(kind=Kind.SYMKEY_RESPONSE, content=key))
        self.session.enter_symmetric(key)
        self._advance(HandshakeState.ESTABLISHED)

    handlers = {
        Kind.PUBKEY_REQUEST: on_pubkey_request,
        Kind.SYMKEY_REQUEST: on_symkey_request,
    }


class ClientHandshake(_Handshake):

    def start(self) -> None:
        if self.session.handshake is not HandshakeState.INIT:
            raise ProtocolSequenceViolation("handshake already started")
        # The reader thread is already running; the reply may land before send() returns.
        self._advance(HandshakeState.AWAITING_SERVER_KEY)
        self.dispatcher.send(Message(kind=Kind.PUBKEY_REQUEST,
                                     content=rsa_public_pem(self.dispatcher.credentials.public_key)))

    def on_pubkey_response(self, msg: Message) -> None:
        # The dispatcher has already checked the leaf signature on this envelope.
        self._expect(HandshakeState.AWAITING_SERVER_KEY, msg)
        server_key = _load_peer_key(msg.content)
        self.session.enter_asymmetric(server_key)
        self._advance(HandshakeState.AWAITING_SESSION_KEY)
        self.dispatcher.send(Message(kind=Kind.SYMKEY_REQUEST))

    def on_symkey_response(self, msg: Message) -> None:
        self._expect(HandshakeState.AWAITING_SESSION_KEY, msg)
        if len(msg.content) != SESSION_KEY_SIZE:
            raise MalformedEnvelope(f"session key is {len(msg.content)} bytes, expected {SESSION_KEY_SIZE}")
        self.session.enter_symmetric(msg.content)
        self._advance(HandshakeState.ESTABLISHED)
        self.dispatcher.send(Message(content=START_GAME))

    handlers = {
        Kind.PUBKEY_RESPONSE: on_pubkey_response,
        Kind.SYMKEY_RESPONSE: on_symkey_response,
    }
