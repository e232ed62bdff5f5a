import socket
from dataclasses import dataclass, field
from enum import Enum
from queue import Queue
from typing import Any, Optional, Union

from cryptography.hazmat.primitives.asymmetric import rsa

from hangmango.common.commitment import format_address


# Which protection applies to envelopes in each direction. Exactly one at a time.
@dataclass(frozen=True)
class Unencrypted:
    pass

@dataclass(frozen=True)
class AsymmetricPhase:
    pass

@dataclass(frozen=True)
class SymmetricPhase:
    key: bytes = field(repr=False)

CipherPhase = Union[Unencrypted, AsymmetricPhase, SymmetricPhase]


class HandshakeState(Enum):
    INIT = "init"
    AWAITING_SERVER_KEY = "awaiting server key"     # client only
    AWAITING_CLIENT_KEY = "awaiting client key"     # server only
    AWAITING_SESSION_KEY = "awaiting session key"
    ESTABLISHED = "established"


class Role(Enum):
    CLIENT = "client"
    SERVER = "server"


@dataclass
class Session:
    '''
    State of one connection. Owned by that connection's dispatcher and mutated
    only from its read/dispatch thread; the writer thread only drains `outbound`.
    Addresses are stored as the commitment sees them: client first, server second,
    whichever side of the socket we are on.
    '''
    role: Role
    sock: Optional[socket.socket] = None
    client_address: str = ""
    server_address: str = ""
    outbound: "Queue[Optional[bytes]]" = field(default_factory=Queue)
    cipher: CipherPhase = field(default_factory=Unencrypted)
    handshake: HandshakeState = HandshakeState.INIT
    peer_public_key: Optional[rsa.RSAPublicKey] = None
    game_hash: bytes = b""
    game_hash_time: str = ""        # client: minute the commitment arrived
    game_hash_confirmed: bool = False
    last_hint: str = ""             # client: latest hint printed to the player
    game: Any = None                # server: game collaborator, opaque here
    seals: int = 0                  # AEAD seals under the current session key

    @classmethod
    def from_socket(cls, sock: socket.socket, role: Role) -> "Session":
        local, remote = format_address(sock.getsockname()), format_address(sock.getpeername())
        if role is Role.SERVER:
            return cls(role=role, sock=sock, client_address=remote, server_address=local)
        return cls(role=role, sock=sock, client_address=local, server_address=remote)

    @property
    def peer(self) -> str:
        return self.client_address if self.role is Role.SERVER else self.server_address

    @property
    def encrypted(self) -> bool:
        return not isinstance(self.cipher, Unencrypted)

    @property
    def session_key(self) -> Optional[bytes]:
        if isinstance(self.cipher, SymmetricPhase):
            return self.cipher.key
        return None

    def enter_asymmetric(self, peer_key: rsa.RSAPublicKey) -> None:
        self.peer_public_key = peer_key
        self.cipher = AsymmetricPhase()

    def enter_symmetric(self, key: bytes) -> None:
        self.cipher = SymmetricPhase(key)
        self.seals = 0

    def queue(self, data: bytes) -> None:
        self.outbound.put(data)

    def close_queue(self) -> None:
        ''' Wake the writer thread so it can exit '''
        self.outbound.put(None)
