import socket
from typing import List

from hangmango.common.config import MAX_FRAME_SIZE, READ_CHUNK_SIZE
from hangmango.common.errors import FrameTooLarge, PeerClosed, TransportError

DELIM = b"\n"    # encoded envelopes are JSON with base64 fields, so they never contain a newline


class FrameBuffer:
    '''
    Per-connection reassembly buffer. Chunks read from the socket go in, complete
    frames (without the delimiter) come out, regardless of how the peer's writes
    were split or coalesced by the stream.
    '''
    def __init__(self, max_frame: int = MAX_FRAME_SIZE):
        self.max_frame = max_frame
        self._buf = bytearray()

    def feed(self, chunk: bytes) -> List[bytes]:
        '''
        Append a chunk and return every frame it completed, in order.
        Raises FrameTooLarge when a frame, or the undelimited tail, exceeds max_frame.
        '''
        self._buf.extend(chunk)
        frames = []
        while True:
            nl = self._buf.find(DELIM)
            if nl == -1:
                break
            if nl > self.max_frame:
                raise FrameTooLarge(f"frame of {nl} bytes exceeds {self.max_frame}")
            line = bytes(self._buf[:nl])
            del self._buf[:nl + 1]
            if line:   # tolerate stray blank lines
                frames.append(line)
        if len(self._buf) > self.max_frame:
            raise FrameTooLarge(f"{len(self._buf)} bytes without a delimiter")
        return frames

    def pending(self) -> int:
        return len(self._buf)


def frame(data: bytes) -> bytes:
    ''' Add the delimiter to one encoded envelope '''
    if len(data) > MAX_FRAME_SIZE:
        raise FrameTooLarge(f"refusing to send {len(data)} byte frame")
    if DELIM in data:
        raise ValueError("encoded envelope must not contain the frame delimiter")
    return data + DELIM

def send_frame(sock: socket.socket, data: bytes) -> None:
    '''
    The function sends one encoded envelope followed by the delimiter.
    Inputs:
        - sock: socket.socket - the socket to send the data through
        - data: bytes - output of encode_envelope()
    Raises TransportError if the socket write fails.
    '''
    try:
        sock.sendall(frame(data))
    except OSError as exc:
        raise TransportError(f"write failed: {exc}") from exc

def recv_chunk(sock: socket.socket, size: int = READ_CHUNK_SIZE) -> bytes:
    '''
    The function performs one blocking read of at most `size` bytes.
    An orderly shutdown by the peer (empty read) raises PeerClosed.
    '''
    try:
        chunk = sock.recv(size)
    except socket.timeout as exc:
        raise TransportError("connection idle for too long") from exc
    except OSError as exc:
        raise TransportError(f"read failed: {exc}") from exc
    if not chunk:
        raise PeerClosed("socket closed")
    return chunk
