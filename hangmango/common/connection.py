import logging, socket, threading
from typing import Callable, Optional

from hangmango.common.errors import HangmangoError, PeerClosed
from hangmango.common.protocol import FrameBuffer, recv_chunk, send_frame
from hangmango.common.session import Session

logger = logging.getLogger(__name__)


class Connection:
    '''
    The two threads that serve one socket.

    The reader thread blocks on recv(), reassembles frames and hands each one to
    the dispatcher in the same thread, so dispatch never runs concurrently for
    one session. The writer thread drains session.outbound and writes frames in
    the order they were queued.

    Any transport error or fatal dispatcher error closes the socket and stops
    both threads; on_close(connection, error) runs exactly once afterwards.
    '''
    def __init__(self, session: Session, dispatcher,
                 on_close: Optional[Callable[["Connection", Optional[BaseException]], None]] = None,
                 idle_timeout: Optional[float] = None):
        self.session = session
        self.dispatcher = dispatcher
        self.on_close = on_close
        self.idle_timeout = idle_timeout
        self.error: Optional[BaseException] = None
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self.reader: Optional[threading.Thread] = None
        self.writer: Optional[threading.Thread] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> None:
        if self.idle_timeout:
            self.session.sock.settimeout(self.idle_timeout)
        peer = self.session.peer
        self.reader = threading.Thread(target=self._read_loop, name=f"read-{peer}", daemon=True)
        self.writer = threading.Thread(target=self._write_loop, name=f"write-{peer}", daemon=True)
        self.writer.start()
        self.reader.start()

    def _read_loop(self) -> None:
        frames = FrameBuffer()
        try:
            while not self.closed:
                chunk = recv_chunk(self.session.sock)
                for data in frames.feed(chunk):
                    self.dispatcher.handle(data)
                    if self.closed:
                        return
        except HangmangoError as exc:
            self.close(exc)
        except Exception as exc:
            # A bug in one connection must not take the process down with it.
            logger.exception("%s - unexpected error while dispatching", self.session.peer)
            self.close(exc)

    def _write_loop(self) -> None:
        try:
            while True:
                data = self.session.outbound.get()
                if data is None or self.closed:
                    return
                send_frame(self.session.sock, data)
        except HangmangoError as exc:
            self.close(exc)

    def close(self, error: Optional[BaseException] = None) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self.error = error
        if error is not None and not isinstance(error, PeerClosed):
            logger.warning("%s - closing connection: %s: %s", self.session.peer,
                           type(error).__name__, error)
        sock = self.session.sock
        try:
            sock.shutdown(socket.SHUT_RDWR)   # unblocks a reader stuck in recv()
        except OSError:
            pass
        sock.close()
        self.session.close_queue()
        if self.on_close:
            self.on_close(self, error)

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in (self.reader, self.writer):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout)
