import hmac, logging, random
from typing import Iterable, Optional

from hangmango.common import commitment
from hangmango.common.certs import Credentials
from hangmango.common.config import ENC, START_GAME
from hangmango.common.dispatch import Dispatcher
from hangmango.common.errors import CommitmentMismatch, ProtocolSequenceViolation
from hangmango.common.handshake import ServerHandshake
from hangmango.common.messages import HANDSHAKE_KINDS, Kind, Message
from hangmango.common.session import HandshakeState, Session
from hangmango.server.game import DEFAULT_POOL, HangmanState

logger = logging.getLogger(__name__)


class ServerDispatcher(Dispatcher):
    '''
    Server role: answers the handshake, then runs one hangman game per
    "START GAME" and checks any game hash the client echoes back.
    '''
    def __init__(self, session: Session, credentials: Credentials,
                 pool: Iterable[str] = DEFAULT_POOL, rng: Optional[random.Random] = None):
        super().__init__(session, credentials)
        self.pool = tuple(pool)
        self.rng = rng
        self.handshake = ServerHandshake(self)
        self.handshake.begin()

    def route(self, msg: Message) -> None:
        if msg.kind in HANDSHAKE_KINDS:
            self.handshake.handle(msg)
            return
        if self.session.handshake is not HandshakeState.ESTABLISHED:
            raise ProtocolSequenceViolation("application data before a session key was agreed")
        if msg.kind not in (Kind.UNTAGGED, Kind.APPLICATION):
            raise ProtocolSequenceViolation(f"{msg.kind.name} is not accepted by the server")

        game = self.session.game
        if game is not None and game.in_progress and msg.content:
            self.play(game, msg)
        elif msg.content == START_GAME:
            self.start_game()
        else:
            logger.info("FROM %s - no game in progress, ignoring %r", self.session.peer, msg.content[:64])

    def start_game(self) -> None:
        game = HangmanState(self.pool, self.rng)
        game.new_game()
        self.session.game = game
        game_hash = commitment.generate(self.session, game.answer)
        logger.info("%s - new game created, hint %s", self.session.peer, game.hint)
        self.send(Message(content=game.hint.encode(ENC), commitment=game_hash))

    def play(self, game: HangmanState, msg: Message) -> None:
        if msg.commitment:
            if not hmac.compare_digest(msg.commitment, self.session.game_hash):
                raise CommitmentMismatch("game hash from the client does not match this game")
            logger.info("%s - client game hash matches", self.session.peer)
        response = game.process(msg.content.decode(ENC, errors="replace"))
        if game.in_progress:
            self.send(Message(content=response.encode(ENC)))
        else:
            logger.info("%s - game over, score %s", self.session.peer, response)
            self.send(Message(kind=Kind.GAME_OVER, content=response.encode(ENC)))
