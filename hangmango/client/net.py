import logging, re, socket, threading
from typing import Callable, Optional

from hangmango.client.dispatcher import ClientDispatcher, Outcome
from hangmango.common.certs import Credentials
from hangmango.common.config import ENC, MAX_INPUT_LENGTH, ClientConfig
from hangmango.common.connection import Connection
from hangmango.common.errors import CommitmentMismatch, CryptoError, ProtocolSequenceViolation, TransportError
from hangmango.common.session import Role, Session

logger = logging.getLogger(__name__)

LETTERS = re.compile(r"[A-Za-z]+")


def validate_guess(text: str) -> Optional[str]:
    ''' Return a message for the player if text can't be sent, else None '''
    if len(text.encode(ENC)) > MAX_INPUT_LENGTH:
        return f"Length of input must be less than {MAX_INPUT_LENGTH + 1} bytes."
    if not LETTERS.fullmatch(text):
        return "Input must be an upper or lowercase character in the english alphabet (a-z or A-Z)."
    return None


class NetClient:
    ''' Network side of the hangman client: one secure session with the server '''
    def __init__(self, config: ClientConfig, credentials: Credentials,
                 out: Callable[[str], None] = print):
        self.config = config
        self.credentials = credentials
        self.out = out
        self.sock: Optional[socket.socket] = None
        self.session: Optional[Session] = None
        self.dispatcher: Optional[ClientDispatcher] = None
        self.connection: Optional[Connection] = None
        self.finished = threading.Event()

    @property
    def outcome(self) -> Optional[Outcome]:
        return self.dispatcher.outcome if self.dispatcher else None

    def connect(self) -> None:
        ''' Open the TCP connection, start the I/O threads and send the first handshake message '''
        try:
            self.sock = socket.create_connection((self.config.host, self.config.port))
        except OSError as exc:
            raise TransportError(f"unable to connect to {self.config.host}:{self.config.port}: {exc}") from exc
        self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1) # send each frame immediately
        self.session = Session.from_socket(self.sock, Role.CLIENT)
        self.dispatcher = ClientDispatcher(self.session, self.credentials,
                                           on_finish=self._on_finish,
                                           strict_commitment=self.config.strict_commitment,
                                           out=self.out)
        self.connection = Connection(self.session, self.dispatcher, on_close=self._on_close,
                                     idle_timeout=self.config.idle_timeout)
        self.connection.start()
        self.dispatcher.start()

    def guess(self, text: str) -> None:
        '''
        Send one guess to the server.
        Raises ValueError with a player-facing message if the guess can't be sent yet.
        '''
        problem = validate_guess(text)
        if problem:
            raise ValueError(problem)
        try:
            self.dispatcher.send_guess(text)
        except ProtocolSequenceViolation as exc:
            raise ValueError("Still setting up a secure session with the server, try again in a moment.") from exc

    def wait(self, timeout: Optional[float] = None) -> Optional[Outcome]:
        self.finished.wait(timeout)
        return self.outcome

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()

    def _on_finish(self, outcome: Outcome) -> None:
        self.finished.set()
        self.close()

    def _on_close(self, connection: Connection, error: Optional[BaseException]) -> None:
        if isinstance(error, CommitmentMismatch):
            outcome = Outcome.GAME_TAMPERED
        elif isinstance(error, CryptoError):
            outcome = Outcome.SERVER_UNTRUSTED
        else:
            outcome = Outcome.CONNECTION_LOST
        self.dispatcher.finish(outcome)
        self.finished.set()
