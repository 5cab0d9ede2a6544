"""Iterating over the parts of a MIME multipart body."""

from __future__ import annotations

import enum
import io
from typing import BinaryIO, Iterator, Optional, Union

from .header import Header, read_header

_CHUNK_SIZE = 4096
_LWSP = b" \t"


class MultipartError(ValueError):
    """Raised when a multipart body is malformed or ends too early."""


class _Stop(enum.Enum):
    END = "end"
    UNEXPECTED = "unexpected"


class _Source:
    """A growable read-ahead buffer over a binary stream."""

    def __init__(self, raw: BinaryIO) -> None:
        self._raw = raw
        self._buf = bytearray()
        self._eof = False

    def fill(self) -> bool:
        """Read one more chunk into the buffer; return False at end of input."""
        if self._eof:
            return False
        data = self._raw.read(_CHUNK_SIZE)
        if not data:
            self._eof = True
            return False
        self._buf.extend(data)
        return True

    def buffered(self) -> bytes:
        return bytes(self._buf)

    def peek(self, size: int = 1) -> bytes:
        while len(self._buf) < size and self.fill():
            pass
        return bytes(self._buf[: max(size, 1)])

    def read(self, size: int) -> bytes:
        while len(self._buf) < size and self.fill():
            pass
        data = bytes(self._buf[:size])
        del self._buf[:size]
        return data

    def readline(self) -> bytes:
        start = 0
        while True:
            i = self._buf.find(b"\n", start)
            if i >= 0:
                line = bytes(self._buf[: i + 1])
                del self._buf[: i + 1]
                return line
            start = len(self._buf)
            if not self.fill():
                line = bytes(self._buf)
                self._buf.clear()
                return line


def _match_after_prefix(buf: bytes, prefix: bytes, read_err: Optional[_Stop]) -> int:
    """+1 if buf matches the boundary, -1 if it cannot, 0 if more input is needed."""
    if len(buf) == len(prefix):
        return 1 if read_err is not None else 0
    if buf[len(prefix)] in b" \t\r\n-":
        return 1
    return -1


def _scan_until_boundary(
    buf: bytes,
    dash_boundary: bytes,
    nl_dash_boundary: bytes,
    total: int,
    read_err: Optional[_Stop],
) -> tuple[int, Optional[_Stop]]:
    """Return how many bytes of buf belong to the part body, and why reading stops."""
    if total == 0:
        if buf.startswith(dash_boundary):
            match = _match_after_prefix(buf, dash_boundary, read_err)
            if match < 0:
                return len(dash_boundary), None
            if match == 0:
                return 0, None
            return 0, _Stop.END
        if dash_boundary.startswith(buf):
            return 0, read_err

    i = buf.find(nl_dash_boundary)
    if i >= 0:
        match = _match_after_prefix(buf[i:], nl_dash_boundary, read_err)
        if match < 0:
            return i + len(nl_dash_boundary), None
        if match == 0:
            return i, None
        return i, _Stop.END
    if nl_dash_boundary.startswith(buf):
        return 0, read_err

    i = buf.rfind(nl_dash_boundary[:1])
    if i >= 0 and nl_dash_boundary.startswith(buf[i:]):
        return i, None
    return len(buf), read_err


class Part:
    """One part of a multipart body: its header and a readable body."""

    def __init__(self, reader: "MultipartReader") -> None:
        self._reader = reader
        self._pending = 0
        self._total = 0
        self._stop: Optional[_Stop] = None
        self._read_err: Optional[_Stop] = None
        try:
            self.header: Header = read_header(reader._source)
        except (ValueError, EOFError) as exc:
            raise MultipartError(str(exc)) from exc

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes of the body (all of it when negative)."""
        if size is None or size < 0:
            chunks = []
            while True:
                chunk = self.read(_CHUNK_SIZE)
                if not chunk:
                    return b"".join(chunks)
                chunks.append(chunk)
        if size == 0:
            return b""

        reader = self._reader
        source = reader._source
        while self._pending == 0 and self._stop is None:
            self._pending, self._stop = _scan_until_boundary(
                source.buffered(),
                reader._dash_boundary,
                reader._nl_dash_boundary,
                self._total,
                self._read_err,
            )
            if self._pending == 0 and self._stop is None:
                if not source.fill():
                    self._read_err = _Stop.UNEXPECTED

        if self._pending == 0:
            if self._stop is _Stop.UNEXPECTED:
                raise MultipartError("multipart: unexpected EOF")
            return b""

        data = source.read(min(size, self._pending))
        self._total += len(data)
        self._pending -= len(data)
        return data

    def close(self) -> None:
        """Skip whatever is left of the body."""
        try:
            while self.read(_CHUNK_SIZE):
                pass
        except MultipartError:
            pass

    def __enter__(self) -> "Part":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MultipartReader:
    """Iterates over the parts of a multipart body separated by ``boundary``."""

    def __init__(self, stream: Union[BinaryIO, bytes, bytearray], boundary: str) -> None:
        if isinstance(stream, (bytes, bytearray)):
            stream = io.BytesIO(bytes(stream))
        self._source = _Source(stream)
        b = b"\r\n--" + boundary.encode("utf-8") + b"--"
        self._nl = b[:2]
        self._nl_dash_boundary = b[:-2]
        self._dash_boundary_dash = b[2:]
        self._dash_boundary = b[2:-2]
        self._current: Optional[Part] = None
        self._parts_read = 0

    def next_part(self) -> Optional[Part]:
        """Return the next part, or None when the final boundary is reached."""
        if self._current is not None:
            self._current.close()
        if self._dash_boundary == b"--":
            raise MultipartError("multipart: boundary is empty")
        expect_new_part = False

        while True:
            line = self._source.readline()
            at_eof = not line.endswith(b"\n")
            if at_eof and self._is_final_boundary(line):
                return None
            if at_eof:
                raise MultipartError("multipart: NextPart: EOF")

            if self._is_boundary_delimiter_line(line):
                self._parts_read += 1
                part = Part(self)
                self._current = part
                return part

            if self._is_final_boundary(line):
                return None

            if expect_new_part:
                raise MultipartError(
                    f"multipart: expecting a new Part; got line {line!r}"
                )

            if self._parts_read == 0:
                continue

            if line == self._nl:
                expect_new_part = True
                continue

            raise MultipartError(f"multipart: unexpected line in Next(): {line!r}")

    def __iter__(self) -> Iterator[Part]:
        while True:
            part = self.next_part()
            if part is None:
                return
            yield part

    def _is_final_boundary(self, line: bytes) -> bool:
        if not line.startswith(self._dash_boundary_dash):
            return False
        rest = line[len(self._dash_boundary_dash):].lstrip(_LWSP)
        return not rest or rest == self._nl

    def _is_boundary_delimiter_line(self, line: bytes) -> bool:
        if not line.startswith(self._dash_boundary):
            return False
        rest = line[len(self._dash_boundary):].lstrip(_LWSP)
        # Switch to bare "\n" line endings if the first boundary uses them.
        if self._parts_read == 0 and rest == b"\n":
            self._nl = self._nl[1:]
            self._nl_dash_boundary = self._nl_dash_boundary[1:]
        return rest == self._nl