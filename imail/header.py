"""Reading MIME message headers while keeping each field's raw bytes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Iterator

_TOKEN_PUNCTUATION = frozenset(b"!#$%&'*+-.^_`|~")
_SPACE = b" \t"


def _is_token_byte(c: int) -> bool:
    return (
        0x30 <= c <= 0x39
        or 0x41 <= c <= 0x5A
        or 0x61 <= c <= 0x7A
        or c in _TOKEN_PUNCTUATION
    )


def canonical_mime_header_key(key: str) -> str:
    """Return the canonical form of a header key, e.g. ``content-type`` -> ``Content-Type``.

    Keys holding characters that are not valid in a header field name are
    returned unchanged.
    """
    raw = key.encode("utf-8", "surrogateescape")
    if not all(_is_token_byte(c) for c in raw):
        return key
    parts = []
    upper = True
    for ch in key:
        if upper:
            parts.append(ch.upper())
        else:
            parts.append(ch.lower())
        upper = ch == "-"
    return "".join(parts)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


@dataclass(frozen=True)
class HeaderField:
    """A single header field: canonical key, unfolded value and raw bytes."""

    key: str
    value: str
    raw: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", canonical_mime_header_key(self.key))


def make_header_map(fields: Iterable[HeaderField]) -> dict[str, list[HeaderField]]:
    """Group header fields by key, keeping their order within each key."""
    mapping: dict[str, list[HeaderField]] = {}
    for f in fields:
        mapping.setdefault(f.key, []).append(f)
    return mapping


@dataclass
class Header:
    """The fields of a message header, in the order they appeared."""

    fields: list[HeaderField] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.fields = list(self.fields)
        self._map = make_header_map(self.fields)

    def get(self, key: str) -> str:
        """Return the value of the first field named ``key``, or ``""``."""
        matches = self._map.get(canonical_mime_header_key(key))
        if not matches:
            return ""
        return matches[0].value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and canonical_mime_header_key(key) in self._map

    def __iter__(self) -> Iterator[HeaderField]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __bytes__(self) -> bytes:
        return b"".join(f.raw for f in self.fields)


def _peek_byte(stream: BinaryIO) -> bytes:
    peek = getattr(stream, "peek", None)
    if peek is not None:
        return peek(1)[:1]
    pos = stream.tell()
    data = stream.read(1)
    stream.seek(pos)
    return data


def _read_line(stream: BinaryIO) -> bytes:
    """Read one line without its line ending; raise EOFError at end of input."""
    line = stream.readline()
    if not line:
        raise EOFError("unexpected end of input")
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


def _has_continuation_line(stream: BinaryIO) -> bool:
    c = _peek_byte(stream)
    return bool(c) and c in (b" ", b"\t")


def _read_continued_line(stream: BinaryIO) -> bytes:
    line = _read_line(stream)
    if not line:
        return line
    chunks = [line, b"\r\n"]
    while _has_continuation_line(stream):
        try:
            chunks.append(_read_line(stream))
        except EOFError:
            break
        chunks.append(b"\r\n")
    return b"".join(chunks)


def _check_initial_line(stream: BinaryIO) -> None:
    first = _peek_byte(stream)
    if first and first in (b" ", b"\t"):
        line = _read_line(stream)
        raise ValueError(
            f"message: malformed MIME header initial line: {_decode(line)}"
        )


def _trim_around_newlines(value: bytes) -> str:
    pieces = []
    for piece in value.split(b"\n"):
        if piece.endswith(b"\r"):
            piece = piece[:-1]
        piece = piece.strip(_SPACE)
        if piece:
            pieces.append(piece)
    return _decode(b" ".join(pieces))


def _header_lines(stream: BinaryIO) -> Iterator[tuple[str, bytes]]:
    """Yield (canonical key, raw field bytes) up to the blank line ending the header."""
    _check_initial_line(stream)
    while True:
        kv = _read_continued_line(stream)
        if not kv:
            return
        colon = kv.find(b":")
        if colon < 0:
            raise ValueError(f"message: malformed MIME header line: {_decode(kv)}")
        key = canonical_mime_header_key(_decode(kv[:colon].strip(_SPACE)))
        if not key:
            continue
        yield key, kv


def read_header(stream: BinaryIO) -> Header:
    """Read a header from a binary stream, leaving the stream at the body.

    Raises ValueError on a malformed header and EOFError when the input ends
    before the blank line that closes the header.
    """
    fields = [
        HeaderField(key, _trim_around_newlines(kv[kv.find(b":") + 1 :]), kv)
        for key, kv in _header_lines(stream)
    ]
    return Header(fields)


def read_header_string(stream: BinaryIO) -> str:
    """Read a header from a binary stream and return its raw text."""
    return _decode(b"".join(kv for _, kv in _header_lines(stream)))