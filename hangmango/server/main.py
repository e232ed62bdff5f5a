"""
Hangmango server.
Bootstraps credentials, then serves one hangman game per connection over the secure session protocol.
"""
import argparse, logging, socket, sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from hangmango.common.certs import Credentials, fingerprint, load_server_credentials
from hangmango.common.config import CERT_DIR, DEFAULT_PORT, ENC, LOG_FORMAT, ServerConfig
from hangmango.common.connection import Connection
from hangmango.common.errors import TrustBootstrapFailure
from hangmango.common.session import Role, Session
from hangmango.server.dispatcher import ServerDispatcher
from hangmango.server.game import DEFAULT_POOL
from hangmango.server.state import ServerState

HOST = ""   # all interfaces

logger = logging.getLogger(__name__)


def load_wordlist(path: Optional[Path]) -> Tuple[str, ...]:
    '''
    Read a newline separated list of answers. Blank lines are skipped.
    If the file can't be read or is empty, the built-in pool is used.
    '''
    if path is None:
        return DEFAULT_POOL
    try:
        with open(path, encoding=ENC) as f:
            words = tuple(line.strip().lower() for line in f if line.strip())
    except OSError as exc:
        logger.error("Cannot read wordlist %s: %s; using the built-in words", path, exc)
        return DEFAULT_POOL
    if not words:
        logger.error("Wordlist %s is empty; using the built-in words", path)
        return DEFAULT_POOL
    logger.info("Loaded %d words from %s", len(words), path)
    return words

def log_chain(credentials: Credentials) -> None:
    ''' Log the server's certificate chain, leaf first; clients pin the leaf '''
    for cert in credentials.chain:
        logger.info("Certificate %s issued by %s, fingerprint %s", cert.subject.rfc4514_string(),
                    cert.issuer.rfc4514_string(), fingerprint(cert))

def handle_client(conn: socket.socket, credentials: Credentials, pool: Sequence[str],
                  state: ServerState, idle_timeout: Optional[float] = None) -> Connection:
    ''' This function wires an accepted socket to its session, dispatcher and I/O threads '''
    session = Session.from_socket(conn, Role.SERVER)
    dispatcher = ServerDispatcher(session, credentials, pool)
    state.register(session)

    def on_close(connection: Connection, error: Optional[BaseException]) -> None:
        state.unregister(session)

    connection = Connection(session, dispatcher, on_close=on_close, idle_timeout=idle_timeout)
    connection.start()
    return connection

def serve(config: ServerConfig, credentials: Credentials, pool: Sequence[str]) -> None:
    state = ServerState()
    with socket.create_server((HOST, config.port)) as srv:
        logger.info("Started server on %d", config.port)
        while True:
            try:
                conn, addr = srv.accept()
            except OSError as exc:
                logger.error("Error accepting connection: %s", exc)
                continue
            conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            try:
                handle_client(conn, credentials, pool, state, config.idle_timeout)
            except OSError as exc:   # peer vanished between accept() and getpeername()
                logger.warning("Dropping connection from %s: %s", addr, exc)
                conn.close()

def parse_args(argv: Optional[Sequence[str]] = None) -> Tuple[ServerConfig, bool]:
    ap = argparse.ArgumentParser(description="Hangmango server")
    ap.add_argument("--lport", type=int, default=DEFAULT_PORT, help="Port to listen for incoming connections on.")
    ap.add_argument("--wordlist", type=Path, default=None,
                    help="Path to a newline separated list of words to use as answers. (optional)")
    ap.add_argument("--certs", type=Path, default=CERT_DIR, help="Directory holding the server's keys and certificates.")
    ap.add_argument("--idle-timeout", type=float, default=None,
                    help="Close connections that stay silent for this many seconds. (default: never)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log every message sent and received.")
    args = ap.parse_args(argv)
    config = ServerConfig(port=args.lport, wordlist=args.wordlist, cert_dir=args.certs,
                          idle_timeout=args.idle_timeout)
    return config, args.verbose

def main(argv: Optional[Sequence[str]] = None) -> int:
    config, verbose = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)

    logger.info("Starting server...")
    try:
        credentials = load_server_credentials(config.cert_dir)
    except TrustBootstrapFailure as exc:
        logger.error("Credential bootstrap failed: %s", exc)
        return 1
    log_chain(credentials)
    pool = load_wordlist(config.wordlist)
    try:
        serve(config, credentials, pool)
    except OSError as exc:
        logger.error("Cannot listen on port %d: %s", config.port, exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Server exiting.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
