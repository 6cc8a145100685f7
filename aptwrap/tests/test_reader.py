"""Tests for NonBlockingLineReader"""

import os

import pytest

from aptwrap.core.reader import NonBlockingLineReader


@pytest.fixture
def pipe():
    """A pipe (read_fd, write_fd), both closed afterwards if still open."""
    read_fd, write_fd = os.pipe()
    fds = {'r': read_fd, 'w': write_fd}
    yield fds
    for fd in fds.values():
        try:
            os.close(fd)
        except OSError:
            pass


class TestNonBlockingLineReader:
    """Tests for line assembly."""

    def test_empty_pipe_does_not_block(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)
        reader.read_available()
        assert lines == []
        assert not reader.eof

    def test_line_split_across_reads(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)

        os.write(pipe['w'], b"50% ins")
        reader.read_available()
        assert lines == []
        assert bytes(reader.buffer) == b"50% ins"

        os.write(pipe['w'], b"talling pkg\n")
        reader.read_available()
        assert lines == ["50% installing pkg"]
        assert reader.buffer == bytearray()

    def test_several_lines_in_one_read(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)
        os.write(pipe['w'], b"one\ntwo\r\nthree\nfour")
        reader.read_available()
        assert lines == ["one", "two", "three"]
        assert bytes(reader.buffer) == b"four"

    def test_small_chunks(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append, chunk_size=3)
        os.write(pipe['w'], b"Setting up vim (2:9.0) ...\nabc\n")
        reader.read_available()
        assert lines == ["Setting up vim (2:9.0) ...", "abc"]

    def test_split_multibyte_character(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)
        data = "Paramètres\n".encode('utf-8')
        cut = data.index(b'\xc3') + 1
        os.write(pipe['w'], data[:cut])
        reader.read_available()
        os.write(pipe['w'], data[cut:])
        reader.read_available()
        assert lines == ["Paramètres"]

    def test_invalid_bytes_are_replaced(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)
        os.write(pipe['w'], b"bad \xff\xfe bytes\n")
        reader.read_available()
        assert lines == ["bad �� bytes"]

    def test_eof(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)
        os.write(pipe['w'], b"last\npartial")
        os.close(pipe['w'])
        del pipe['w']
        reader.read_available()
        assert reader.eof
        assert lines == ["last"]

        reader.flush()
        assert lines == ["last", "partial"]
        reader.flush()
        assert lines == ["last", "partial"]

    def test_read_error_clears_buffer(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append)
        os.write(pipe['w'], b"fragment")
        reader.read_available()
        assert reader.buffer

        os.close(pipe['r'])
        del pipe['r']
        with pytest.raises(OSError):
            reader.read_available()
        assert reader.buffer == bytearray()
        assert lines == []

    def test_accepts_file_objects(self, pipe):
        lines = []
        stream = os.fdopen(pipe['r'], 'rb', buffering=0)
        del pipe['r']
        try:
            reader = NonBlockingLineReader(stream, lines.append)
            assert not os.get_blocking(stream.fileno())
            os.write(pipe['w'], b"hello\n")
            reader.read_available()
        finally:
            stream.close()
        assert lines == ["hello"]

    def test_read_limit_returns_control(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append, chunk_size=4, max_chunks=2)
        os.write(pipe['w'], b"aaa\nbbb\nccc\n")
        assert reader.read_available() is True
        assert lines == ["aaa", "bbb"]
        assert reader.read_available() is False
        assert lines == ["aaa", "bbb", "ccc"]

    def test_drain_ignores_read_limit(self, pipe):
        lines = []
        reader = NonBlockingLineReader(pipe['r'], lines.append, chunk_size=4, max_chunks=1)
        os.write(pipe['w'], b"aaa\nbbb\nccc\n")
        reader.drain()
        assert lines == ["aaa", "bbb", "ccc"]
        assert not reader.eof
