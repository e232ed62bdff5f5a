"""
Main entry point for the hangmango client.
Load the pinned server certificate, connect, then read guesses from stdin until the game ends.
"""
import argparse, logging, sys, threading
from pathlib import Path
from typing import Optional, Sequence, TextIO

from hangmango.common.certs import load_client_credentials
from hangmango.common.config import CERT_DIR, DEFAULT_HOST, DEFAULT_PORT, LEAF_CERT_FILE, LOG_FORMAT, ClientConfig
from hangmango.common.errors import TransportError, TrustBootstrapFailure
from hangmango.client.net import NetClient

WELCOME = """STARTUP - Welcome to hangmango! You will be presented with hints to guess a word selected by the server.
  You can enter guesses as individual english alphabet characters or an entire word.
  Incorrect guesses will deduct from your score per the following formula:
  10 * (number of letters in secret word) - 2 * (number of characters guessed) - (number of wrong words guessed)"""


def read_guesses(net: NetClient, stream: TextIO = sys.stdin) -> None:
    ''' Forward each line typed by the player; runs on its own daemon thread '''
    for line in stream:
        if net.finished.is_set():
            return
        text = line.rstrip("\r\n")
        if not text:
            continue
        try:
            net.guess(text)
        except ValueError as exc:
            print(exc)
    # stdin closed: nothing more to play
    net.close()

def parse_args(argv: Optional[Sequence[str]] = None) -> tuple:
    ap = argparse.ArgumentParser(description="Hangmango client")
    ap.add_argument("--dhost", default=DEFAULT_HOST, help="Hangmango server address to connect to.")
    ap.add_argument("--dport", type=int, default=DEFAULT_PORT, help="Port that the target server is listening on.")
    ap.add_argument("--cert", type=Path, default=CERT_DIR / LEAF_CERT_FILE,
                    help="The server's certificate, distributed with the client.")
    ap.add_argument("--fingerprint", default=None,
                    help="Expected SHA-256 fingerprint of the certificate (hex). (optional)")
    ap.add_argument("--strict-commitment", action="store_true",
                    help="Disconnect if the server replaces its game hash mid-game.")
    ap.add_argument("--idle-timeout", type=float, default=None,
                    help="Give up if the server stays silent for this many seconds.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Show protocol diagnostics.")
    args = ap.parse_args(argv)
    config = ClientConfig(host=args.dhost, port=args.dport, cert_path=args.cert,
                          fingerprint=args.fingerprint, strict_commitment=args.strict_commitment,
                          idle_timeout=args.idle_timeout)
    return config, args.verbose

def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Start the hangmango client.

    Step 1: Load the server certificate (exit 1 if it is missing or invalid)
    Step 2: Connect and run the handshake
    Step 3: Read guesses until the server ends the game or the session fails
    """
    config, verbose = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)
    print(WELCOME)

    try:
        credentials = load_client_credentials(config.cert_path, config.host, config.fingerprint)
    except TrustBootstrapFailure as exc:
        print(f"ERROR - {exc}")
        print("CLIENT - Exiting hangmango client")
        return 1

    net = NetClient(config, credentials)
    try:
        net.connect()
    except TransportError as exc:
        print("ERROR - Unable to connect to the hangmango server; it is likely not running or "
              "a network device is preventing the connection.")
        print(f"ERROR - {exc}")
        print("CLIENT - Exiting hangmango client")
        return 1

    threading.Thread(target=read_guesses, args=(net,), daemon=True).start()
    try:
        outcome = net.wait()
    except KeyboardInterrupt:
        net.close()
        outcome = net.wait()

    if outcome.exit_code != 0:
        print(f"CLIENT - Session ended: {outcome.description}")
    print("CLIENT - Exiting hangmango client")
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
