"""Non-blocking line assembly for child process output."""

import os
from typing import Callable, Union

CHUNK_SIZE = 4096

# Reads per read_available() call; a child writing faster than we consume
# must not keep the caller from its other checks
MAX_CHUNKS = 16


class NonBlockingLineReader:
    """Assemble complete lines from a non-blocking stream.

    Bytes are kept until a newline arrives, so a line split across several
    reads (or a multi-byte character split across reads) is delivered to
    on_line exactly once, whole. Decoding is lossy: undecodable bytes become
    U+FFFD instead of raising.
    """

    def __init__(self, stream: Union[int, object], on_line: Callable[[str], None],
                 encoding: str = 'utf-8', chunk_size: int = CHUNK_SIZE,
                 max_chunks: int = MAX_CHUNKS):
        """Initialize reader.

        Args:
            stream: File descriptor or object with fileno(); switched to
                non-blocking mode
            on_line: Called with each complete line, terminator removed
            encoding: Text encoding of the stream
            chunk_size: Bytes requested per read
            max_chunks: Reads performed by one read_available() call
        """
        self.fd = stream if isinstance(stream, int) else stream.fileno()
        self.on_line = on_line
        self.encoding = encoding
        self.chunk_size = chunk_size
        self.max_chunks = max_chunks
        self.buffer = bytearray()
        self.eof = False
        os.set_blocking(self.fd, False)

    def read_available(self) -> bool:
        """Read what is currently available, at most max_chunks reads.

        Returns on "would block", end of data or once max_chunks reads were
        made. On any other OSError the pending fragment is dropped and the
        error is raised.

        Returns:
            True if the read limit was hit and more data may be waiting
        """
        for _ in range(self.max_chunks):
            try:
                chunk = os.read(self.fd, self.chunk_size)
            except BlockingIOError:
                return False
            except OSError:
                self.buffer.clear()
                raise

            if not chunk:
                self.eof = True
                return False

            self.buffer += chunk
            self._emit_lines()
        return True

    def drain(self):
        """Read until "would block" or end of data, with no read limit."""
        while self.read_available():
            pass

    def flush(self):
        """Deliver a trailing fragment that never got its newline."""
        if self.buffer:
            line = self._decode(bytes(self.buffer))
            self.buffer.clear()
            self.on_line(line)

    def _emit_lines(self):
        while True:
            end = self.buffer.find(b'\n')
            if end < 0:
                return
            raw = bytes(self.buffer[:end])
            del self.buffer[:end + 1]
            self.on_line(self._decode(raw))

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors='replace').rstrip('\r')
