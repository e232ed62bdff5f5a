import logging, threading

from hangmango.common.certs import Credentials
from hangmango.common.config import MAX_SEALS_PER_KEY
from hangmango.common.crypto import aes_open, aes_seal, rsa_decrypt, rsa_encrypt, rsa_sign, rsa_verify
from hangmango.common.errors import (AuthenticationFailure, CryptoError, MalformedEnvelope,
                                     ProtocolSequenceViolation)
from hangmango.common.messages import (Envelope, Message, decode_envelope, decode_message,
                                       encode_envelope, encode_message)
from hangmango.common.session import AsymmetricPhase, Session, SymmetricPhase, Unencrypted

logger = logging.getLogger(__name__)


class Dispatcher:
    '''
    Per-connection message pump shared by both roles.

    Inbound, handle() turns one frame into a Message: envelope decode, then
    decryption picked by the session's cipher phase, then message decode, then
    route(). Outbound, send() runs the same steps in reverse and queues the
    result for the connection's writer thread.

    Malformed input and out-of-order handshake messages are logged and dropped.
    Crypto failures propagate so the caller closes the connection.
    '''

    def __init__(self, session: Session, credentials: Credentials):
        self.session = session
        self.credentials = credentials
        self._send_lock = threading.Lock()

    def handle(self, data: bytes) -> None:
        peer = self.session.peer
        try:
            envelope = decode_envelope(data)
        except MalformedEnvelope as exc:
            logger.warning("FROM %s - dropping malformed envelope: %s", peer, exc)
            return
        plaintext = self.open(envelope)
        try:
            msg = decode_message(plaintext)
        except MalformedEnvelope as exc:
            logger.warning("FROM %s - dropping malformed message: %s", peer, exc)
            return
        logger.debug("FROM %s - %s %r", peer, msg.kind.name, msg.content[:64])
        try:
            self.route(msg)
        except (MalformedEnvelope, ProtocolSequenceViolation) as exc:
            logger.warning("FROM %s - ignoring %s: %s", peer, msg.kind.name, exc)

    def route(self, msg: Message) -> None:
        raise NotImplementedError

    def open(self, envelope: Envelope) -> bytes:
        '''
        Recover the serialized Message from an envelope.
        Before a session key exists, an envelope from a peer we hold a
        verification key for must carry a valid signature over its ciphertext.
        '''
        cipher = self.session.cipher
        if isinstance(cipher, SymmetricPhase):
            return aes_open(cipher.key, envelope.ciphertext, envelope.tag)
        self._verify(envelope)
        if isinstance(cipher, AsymmetricPhase):
            return rsa_decrypt(self.credentials.private_key, envelope.ciphertext)
        if isinstance(cipher, Unencrypted):
            return envelope.ciphertext
        raise TypeError(f"unknown cipher phase {cipher!r}")

    def _verify(self, envelope: Envelope) -> None:
        key = self.credentials.peer_verify_key
        if key is None:
            return
        if not envelope.tag or not rsa_verify(key, envelope.ciphertext, envelope.tag):
            raise AuthenticationFailure("envelope signature does not match the pinned certificate")

    def seal(self, plaintext: bytes) -> Envelope:
        cipher = self.session.cipher
        if isinstance(cipher, SymmetricPhase):
            if self.session.seals >= MAX_SEALS_PER_KEY:
                raise CryptoError("session key exhausted; reconnect to negotiate a new one")
            self.session.seals += 1
            ciphertext, nonce = aes_seal(cipher.key, plaintext)
            return Envelope(ciphertext=ciphertext, tag=nonce)
        if isinstance(cipher, AsymmetricPhase):
            ciphertext = rsa_encrypt(self.session.peer_public_key, plaintext)
        elif isinstance(cipher, Unencrypted):
            ciphertext = plaintext
        else:
            raise TypeError(f"unknown cipher phase {cipher!r}")
        tag = b""
        if self.credentials.signing_key is not None:
            tag = rsa_sign(self.credentials.signing_key, ciphertext)
        return Envelope(ciphertext=ciphertext, tag=tag)

    def send(self, msg: Message) -> None:
        ''' Seal msg under the current phase and queue it for the writer thread '''
        with self._send_lock:
            data = encode_envelope(self.seal(encode_message(msg)))
            self.session.queue(data)
        logger.debug("TO %s - %s %r", self.session.peer, msg.kind.name, msg.content[:64])
