'''
Exception types shared by the client and the server.

Fatal to a connection: TransportError, CryptoError, CommitmentMismatch.
Soft (logged, message dropped): MalformedEnvelope, ProtocolSequenceViolation.
Fatal to the process: TrustBootstrapFailure.
'''


class HangmangoError(Exception):
    """Base class for every error raised by this package."""
    pass


class TransportError(HangmangoError):
    """Raised when reading from or writing to a socket fails."""
    pass


class PeerClosed(TransportError):
    """Raised when the peer shuts the connection down in an orderly way."""
    pass


class FrameTooLarge(TransportError):
    """Raised when a peer sends more bytes than one frame may hold."""
    pass


class MalformedEnvelope(HangmangoError):
    """Raised when bytes on the wire are not a well-formed Envelope or Message."""
    pass


class CryptoError(HangmangoError):
    pass


class DecryptionError(CryptoError):
    """Raised when an RSA-OAEP ciphertext cannot be decrypted."""
    pass


class AuthenticationFailure(CryptoError):
    """Raised when an AEAD tag or a signature does not verify."""
    pass


class TrustBootstrapFailure(HangmangoError):
    """Raised when credential files are missing, unreadable or invalid."""
    pass


class ProtocolSequenceViolation(HangmangoError):
    """Raised when a message kind is unexpected for the current handshake state."""
    pass


class CommitmentMismatch(HangmangoError):
    """Raised when a peer presents a game hash that differs from the one on record."""
    pass
