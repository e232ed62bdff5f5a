'''
Game hash: a commitment the server publishes with the first hint so the client
can later tell whether the answer was swapped mid-game.

    SHA-256("2020-05-23T04:24:00Z/apple/127.0.0.1:39214/127.0.0.1:4444")

The server hashes its answer when the game starts. The client cannot see the
answer, so it hashes its own candidate for every guess using the minute the
commitment arrived and its own view of the two addresses; a match proves the
server committed to the word the player just found.
'''
import datetime, hashlib, hmac
from typing import Optional, Tuple

from hangmango.common.config import ENC

DELIM = "/"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def commitment_time(now: Optional[datetime.datetime] = None) -> str:
    '''UTC time truncated to the minute, RFC 3339.'''
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    else:
        now = now.astimezone(datetime.timezone.utc)
    return now.replace(second=0, microsecond=0).strftime(TIME_FORMAT)

def format_address(addr: Tuple) -> str:
    ''' (host, port[, flow, scope]) -> "host:port", brackets for IPv6 '''
    host, port = addr[0], addr[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"

def game_hash(timestamp: str, answer: str, client_address: str, server_address: str) -> bytes:
    # None of the components can contain the delimiter except the answer, which is letters only.
    formatted = DELIM.join((timestamp, answer, client_address, server_address))
    return hashlib.sha256(formatted.encode(ENC)).digest()

def candidate_answer(guess: str, hint: str) -> str:
    '''
    What the answer would be if this guess finished the game: a single letter
    fills every blank of the last hint, anything longer is a whole-word guess.
    '''
    guess = guess.lower()
    if len(guess) == 1 and hint:
        return hint.replace("_", guess)
    return guess

def generate(session, answer: str, now: Optional[datetime.datetime] = None) -> bytes:
    ''' Server side: commit to answer for this session and remember the value '''
    session.game_hash = game_hash(commitment_time(now), answer,
                                  session.client_address, session.server_address)
    session.game_hash_confirmed = False
    return session.game_hash

def _previous_minute(timestamp: str) -> str:
    then = datetime.datetime.strptime(timestamp, TIME_FORMAT).replace(tzinfo=datetime.timezone.utc)
    return commitment_time(then - datetime.timedelta(minutes=1))

def confirms(session, guess: str) -> bool:
    '''
    Client side: does this guess reproduce the stored commitment?
    The hint may have crossed a minute boundary in flight, so the minute
    before arrival is tried as well.
    '''
    if not session.game_hash or not session.game_hash_time:
        return False
    candidate = candidate_answer(guess, session.last_hint)
    for timestamp in (session.game_hash_time, _previous_minute(session.game_hash_time)):
        computed = game_hash(timestamp, candidate, session.client_address, session.server_address)
        if hmac.compare_digest(computed, session.game_hash):
            return True
    return False
