import logging
from typing import Dict, List
from threading import Lock

from hangmango.common.session import Session

logger = logging.getLogger(__name__)


class ServerState:
    # Bookkeeping of live sessions only; key material inside a Session is never touched here.
    def __init__(self):
        self.lock = Lock()  # guards sessions; accept loop and reader threads both mutate it
        self.sessions: Dict[str, Session] = {}   # peer "host:port" -> Session

    def register(self, session: Session) -> bool:
        ''' This function records a freshly accepted connection '''
        with self.lock:
            if session.peer in self.sessions:
                return False
            self.sessions[session.peer] = session
        logger.info("Client connected from %s", session.peer)
        return True

    def unregister(self, session: Session) -> None:
        ''' This function forgets a connection and wakes its writer thread '''
        with self.lock:
            known = self.sessions.pop(session.peer, None) is not None
        session.close_queue()
        if known:
            logger.info("Client disconnected from %s", session.peer)

    def count(self) -> int:
        with self.lock:
            return len(self.sessions)

    def all_sessions(self) -> List[Session]:
        ''' This function retrieves a snapshot of the live sessions '''
        with self.lock:
            return list(self.sessions.values())
