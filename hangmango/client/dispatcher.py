import hmac, logging, re
from enum import Enum
from typing import Callable, Optional

from hangmango.common import commitment
from hangmango.common.certs import Credentials
from hangmango.common.config import ENC
from hangmango.common.dispatch import Dispatcher
from hangmango.common.errors import CommitmentMismatch, ProtocolSequenceViolation
from hangmango.common.handshake import ClientHandshake
from hangmango.common.messages import HANDSHAKE_KINDS, Kind, Message
from hangmango.common.session import HandshakeState, Session

logger = logging.getLogger(__name__)

HINT = re.compile(r"[a-z_]+")


class Outcome(Enum):
    COMPLETED = (0, "game complete")
    CONNECTION_LOST = (1, "connection lost")
    SERVER_UNTRUSTED = (1, "server untrusted")
    GAME_TAMPERED = (1, "game tampered with")

    @property
    def exit_code(self) -> int:
        return self.value[0]

    @property
    def description(self) -> str:
        return self.value[1]


class ClientDispatcher(Dispatcher):
    '''
    Client role: drives the handshake, shows hints to the player and keeps
    track of the server's game hash so the final score can be trusted.
    `out` receives every line meant for the player (print by default).
    '''
    def __init__(self, session: Session, credentials: Credentials,
                 on_finish: Optional[Callable[[Outcome], None]] = None,
                 strict_commitment: bool = False,
                 out: Callable[[str], None] = print):
        super().__init__(session, credentials)
        self.on_finish = on_finish
        self.strict_commitment = strict_commitment
        self.out = out
        self.outcome: Optional[Outcome] = None
        self.tamper_suspected = False
        self.handshake = ClientHandshake(self)

    def start(self) -> None:
        self.handshake.start()

    def finish(self, outcome: Outcome) -> None:
        ''' Record how the session ended; only the first outcome counts '''
        if self.outcome is not None:
            return
        self.outcome = outcome
        logger.info("Session finished: %s", outcome.description)
        if self.on_finish:
            self.on_finish(outcome)

    def route(self, msg: Message) -> None:
        if msg.kind in HANDSHAKE_KINDS:
            self.handshake.handle(msg)
        elif self.session.handshake is not HandshakeState.ESTABLISHED:
            raise ProtocolSequenceViolation("application data before a session key was agreed")
        elif msg.kind is Kind.GAME_OVER:
            self.game_over(msg)
        elif msg.kind in (Kind.UNTAGGED, Kind.APPLICATION) and msg.content:
            self.hint(msg)
        else:
            logger.info("Ignoring %s from the server", msg.kind.name)

    def hint(self, msg: Message) -> None:
        text = msg.content.decode(ENC, errors="replace")
        if msg.commitment:
            if not self.session.game_hash:
                # First hint of the game: remember the commitment and when it arrived.
                self.session.game_hash = msg.commitment
                self.session.game_hash_time = commitment.commitment_time()
            elif not hmac.compare_digest(msg.commitment, self.session.game_hash):
                self.tamper_suspected = True
                logger.warning("Server sent a second, different game hash")
                self.out("Server attempting to store a new game hash and may have had its current answer modified!")
                if self.strict_commitment:
                    raise CommitmentMismatch("server replaced its game hash mid-game")
        if HINT.fullmatch(text):
            self.session.last_hint = text
        self.out(text)

    def game_over(self, msg: Message) -> None:
        score = msg.content.decode(ENC, errors="replace")
        if self.session.game_hash_confirmed:
            self.out(f"Game over! You scored: {score}")
            self.finish(Outcome.COMPLETED)
        else:
            self.out("You received a GAME OVER message from the server, but the game hash was never "
                     "confirmed. The server may have changed the answer since you started your game.")
            self.finish(Outcome.GAME_TAMPERED)

    def send_guess(self, text: str) -> None:
        '''
        Send one guess. If it reproduces the server's game hash the commitment
        is marked confirmed and echoed back so the server can check it too.
        '''
        if self.session.handshake is not HandshakeState.ESTABLISHED:
            raise ProtocolSequenceViolation("secure session not established yet")
        if not self.session.game_hash:
            # START GAME may still be queued; a guess overtaking it would be dropped by the server.
            raise ProtocolSequenceViolation("no game started yet")
        echoed = b""
        if commitment.confirms(self.session, text):
            self.session.game_hash_confirmed = True
            echoed = self.session.game_hash
            logger.debug("Guess %r confirms the game hash", text)
        self.send(Message(content=text.encode(ENC), commitment=echoed))
