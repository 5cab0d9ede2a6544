"""IMAP body structures, envelopes and addresses built from MIME messages."""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Optional, Union

from .header import Header
from .multipart import MultipartReader

_TSPECIALS = '()<>@,;:\\"/[]?='
_MAX_Q_CONTENT_LEN = 75 - len("=?UTF-8?q?") - len("?=")
_HEX_UPPER = "0123456789ABCDEF"


class ParseError(ValueError):
    """Raised when a field cannot be read as the expected kind of value."""


class _CharsetError(LookupError):
    """Raised when an encoded word uses a charset that cannot be decoded."""


class _InvalidMediaParameter(ValueError):
    """A media type was read but one of its parameters is malformed."""

    def __init__(self, media_type: str) -> None:
        super().__init__("mime: invalid media parameter")
        self.media_type = media_type


def parse_string(value: Any) -> str:
    """Return ``value`` as a string; it may be a string, bytes or a readable literal."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", "surrogateescape")
    read = getattr(value, "read", None)
    if callable(read):
        data = read()
        if isinstance(data, str):
            return data
        return bytes(data).decode("utf-8", "surrogateescape")
    raise ParseError("expected a string")


# ----- encoded words (RFC 2047) -----


def _q_byte_plain(b: int) -> bool:
    return 0x21 <= b <= 0x7E and b not in b"=?_"


def _q_encode_bytes(data: bytes) -> str:
    out = []
    for b in data:
        if b == 0x20:
            out.append("_")
        elif _q_byte_plain(b):
            out.append(chr(b))
        else:
            out.append("=" + _HEX_UPPER[b >> 4] + _HEX_UPPER[b & 0x0F])
    return "".join(out)


def encode_header(text: str) -> str:
    """Q-encode ``text`` as UTF-8 encoded words when it holds non-printable characters."""
    if not any((ch < " " or ch > "~") and ch != "\t" for ch in text):
        return text
    words: list[str] = []
    current: list[str] = []
    current_len = 0
    for ch in text:
        data = ch.encode("utf-8", "surrogateescape")
        if data[0] >= 0x80:
            enc_len = 3 * len(data)
        else:
            enc_len = 1 if data[0] == 0x20 or _q_byte_plain(data[0]) else 3
        if current_len + enc_len > _MAX_Q_CONTENT_LEN:
            words.append("".join(current))
            current = []
            current_len = 0
        current.append(_q_encode_bytes(data))
        current_len += enc_len
    words.append("".join(current))
    return " ".join(f"=?utf-8?q?{word}?=" for word in words)


def _q_decode(text: str) -> bytes:
    raw = text.encode("utf-8")
    out = bytearray()
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == 0x5F:  # "_"
            out.append(0x20)
        elif c == 0x3D:  # "="
            if i + 2 >= len(raw) + 0 and i + 2 > len(raw) - 1 + 1:
                raise ValueError("mime: invalid RFC 2047 encoded-word")
            try:
                out.append(int(raw[i + 1 : i + 3].decode("ascii"), 16))
            except (ValueError, UnicodeDecodeError):
                raise ValueError("mime: invalid RFC 2047 encoded-word") from None
            if len(raw[i + 1 : i + 3]) != 2:
                raise ValueError("mime: invalid RFC 2047 encoded-word")
            i += 2
        elif 0x20 <= c <= 0x7E or c in b"\n\r\t":
            out.append(c)
        else:
            raise ValueError("mime: invalid RFC 2047 encoded-word")
        i += 1
    return bytes(out)


def _decode_word_text(encoding: str, text: str) -> bytes:
    if encoding in "bB":
        return base64.b64decode(text.encode("ascii", "strict"), validate=True)
    if encoding in "qQ":
        return _q_decode(text)
    raise ValueError("mime: invalid RFC 2047 encoded-word")


def _convert_charset(charset: str, content: bytes) -> str:
    name = charset.lower()
    if name in ("utf-8", "ascii"):
        return content.decode("utf-8", "replace")
    if name == "iso-8859-1":
        return content.decode("latin-1")
    if name == "us-ascii":
        return "".join(chr(b) if b < 0x80 else "\ufffd" for b in content)
    raise _CharsetError(f"message: unhandled charset {name!r}")


def _decode_words(header: str) -> str:
    out: list[str] = []
    between_words = False
    while True:
        start = header.find("=?")
        if start < 0:
            break
        cur = start + 2
        i = header.find("?", cur)
        if i < 0:
            break
        charset = header[cur:i]
        cur = i + 1
        if len(header) < cur + len("Q??="):
            break
        encoding = header[cur]
        cur += 1
        if header[cur] != "?":
            break
        cur += 1
        j = header.find("?=", cur)
        if j < 0:
            break
        text = header[cur:j]
        end = j + 2
        try:
            content = _decode_word_text(encoding, text)
        except (ValueError, UnicodeEncodeError):
            between_words = False
            out.append(header[: start + 2])
            header = header[start + 2 :]
            continue
        gap = header[:start]
        if start > 0 and (not between_words or gap.strip(" \t\r\n")):
            out.append(gap)
        out.append(_convert_charset(charset, content))
        header = header[end:]
        between_words = True
    out.append(header)
    return "".join(out)


def decode_header(text: str) -> str:
    """Decode the encoded words in ``text``; on an unknown charset return it unchanged."""
    try:
        return _decode_words(text)
    except _CharsetError:
        return text


# ----- media types -----


def _is_token_char(c: str) -> bool:
    return " " < c < "\x7f" and c not in _TSPECIALS


def _consume_token(v: str) -> tuple[str, str]:
    i = 0
    while i < len(v) and _is_token_char(v[i]):
        i += 1
    return v[:i], v[i:]


def _consume_value(v: str) -> tuple[str, str]:
    if not v:
        return "", v
    if v[0] != '"':
        return _consume_token(v)
    buf: list[str] = []
    i = 1
    while i < len(v):
        c = v[i]
        if c == '"':
            return "".join(buf), v[i + 1 :]
        if c == "\\" and i + 1 < len(v) and v[i + 1] in _TSPECIALS:
            buf.append(v[i + 1])
            i += 2
            continue
        if c in "\r\n":
            return "", v
        buf.append(c)
        i += 1
    return "", v


def _consume_media_param(v: str) -> tuple[str, str, str]:
    rest = v.lstrip()
    if not rest.startswith(";"):
        return "", "", v
    rest = rest[1:].lstrip()
    param, rest = _consume_token(rest)
    param = param.lower()
    if not param:
        return "", "", v
    rest = rest.lstrip()
    if not rest.startswith("="):
        return "", "", v
    rest = rest[1:].lstrip()
    value, rest2 = _consume_value(rest)
    if value == "" and rest2 == rest:
        return "", "", v
    return param, value, rest2


def _percent_hex_unescape(s: str) -> str:
    raw = s.encode("utf-8")
    out = bytearray()
    i = 0
    while i < len(raw):
        if raw[i] == 0x25:  # "%"
            pair = raw[i + 1 : i + 3]
            if len(pair) != 2 or not all(chr(b) in "0123456789abcdefABCDEF" for b in pair):
                raise ValueError("mime: bogus characters after %")
            out.append(int(pair.decode("ascii"), 16))
            i += 3
        else:
            out.append(raw[i])
            i += 1
    return out.decode("utf-8", "replace")


def _decode_2231(v: str) -> Optional[str]:
    parts = v.split("'", 2)
    if len(parts) != 3:
        return None
    charset = parts[0].lower()
    if charset not in ("us-ascii", "utf-8"):
        return None
    try:
        return _percent_hex_unescape(parts[2])
    except ValueError:
        return None


def _check_media_type(media: str) -> None:
    token, rest = _consume_token(media)
    if not token:
        raise ValueError("mime: no media type")
    if not rest:
        return
    if not rest.startswith("/"):
        raise ValueError("mime: expected slash after first token")
    subtype, rest = _consume_token(rest[1:])
    if not subtype:
        raise ValueError("mime: expected token after slash")
    if rest:
        raise ValueError("mime: unexpected content after media subtype")


def _parse_media_type(value: str) -> tuple[str, dict[str, str]]:
    i = value.find(";")
    if i < 0:
        i = len(value)
    media = value[:i].strip().lower()
    _check_media_type(media)

    params: dict[str, str] = {}
    continuation: dict[str, dict[str, str]] = {}
    v = value[i:]
    while v:
        v = v.lstrip()
        if not v:
            break
        key, val, rest = _consume_media_param(v)
        if not key:
            if v.strip() == ";":
                break
            raise _InvalidMediaParameter(media)
        base, star, _ = key.partition("*")
        target = continuation.setdefault(base, {}) if star else params
        if key in target and target[key] != val:
            raise ValueError("mime: duplicate parameter name")
        target[key] = val
        v = rest

    for key, pieces in continuation.items():
        single = pieces.get(key + "*")
        if single is not None:
            decoded = _decode_2231(single)
            if decoded is not None:
                params[key] = decoded
            continue
        buf: list[str] = []
        valid = False
        n = 0
        while True:
            simple = f"{key}*{n}"
            if simple in pieces:
                valid = True
                buf.append(pieces[simple])
            elif simple + "*" in pieces:
                valid = True
                encoded = pieces[simple + "*"]
                if n == 0:
                    decoded = _decode_2231(encoded)
                    if decoded is not None:
                        buf.append(decoded)
                else:
                    try:
                        buf.append(_percent_hex_unescape(encoded))
                    except ValueError:
                        pass
            else:
                break
            n += 1
        if valid:
            params[key] = "".join(buf)
    return media, params


# ----- field lists -----


def format_string_list(items: list[str]) -> list[Any]:
    """Return a string list as a field list."""
    return list(items)


def format_param_list(params: Optional[dict[str, str]]) -> list[Any]:
    """Flatten parameters into ``[key, value, key, value, ...]``."""
    fields: list[Any] = []
    for key, value in (params or {}).items():
        fields.extend((key, value))
    return fields


def _format_header_param_list(params: Optional[dict[str, str]]) -> list[Any]:
    return format_param_list({k: encode_header(v) for k, v in (params or {}).items()})


def _merge_fields(fields: list[Any]) -> str:
    out = ["("]
    for item in fields:
        if item is None:
            out.append("NIL ")
        elif isinstance(item, str):
            out.append(f'"{item}" ')
        elif isinstance(item, int):
            out.append(f"{item} ")
        elif isinstance(item, (list, tuple)):
            out.append(_merge_fields(list(item)) + " ")
        else:
            raise TypeError(f"unsupported field type: {type(item).__name__}")
    out.append(")")
    return "".join(out)


# ----- addresses and envelopes -----


@dataclass
class Address:
    """A mail address as four IMAP fields."""

    personal_name: str = ""
    at_domain_list: str = ""
    mailbox_name: str = ""
    host_name: str = ""

    def parse(self, fields: list[Any]) -> None:
        """Fill the address from four fields, decoding encoded words."""
        if len(fields) < 4:
            raise ValueError("Address doesn't contain 4 fields")
        names = ("personal_name", "at_domain_list", "mailbox_name", "host_name")
        for name, value in zip(names, fields):
            try:
                text = parse_string(value)
            except ParseError:
                continue
            setattr(self, name, decode_header(text))

    def format(self) -> list[Any]:
        """Return the address as four fields, with None for empty ones."""
        return [
            encode_header(self.personal_name) if self.personal_name else None,
            self.at_domain_list or None,
            self.mailbox_name or None,
            self.host_name or None,
        ]


def parse_address_list(fields: list[Any]) -> list[Optional[Address]]:
    """Parse each field as an address; fields that are not addresses give None."""
    addresses: list[Optional[Address]] = []
    for item in fields:
        address: Optional[Address] = None
        if isinstance(item, list):
            candidate = Address()
            try:
                candidate.parse(item)
            except ValueError:
                pass
            else:
                address = candidate
        addresses.append(address)
    return addresses


def format_address_list(addresses: list[Address]) -> list[Any]:
    """Return each address as its field list."""
    return [address.format() for address in addresses]


@dataclass
class Envelope:
    """Message metadata taken from its headers."""

    date: Optional[datetime] = None
    subject: str = ""
    from_: list[Address] = field(default_factory=list)
    sender: list[Address] = field(default_factory=list)
    reply_to: list[Address] = field(default_factory=list)
    to: list[Address] = field(default_factory=list)
    cc: list[Address] = field(default_factory=list)
    bcc: list[Address] = field(default_factory=list)
    in_reply_to: str = ""
    message_id: str = ""

    def format(self) -> list[Any]:
        """Return the envelope as an IMAP field list."""
        return [
            self.date,
            encode_header(self.subject),
            format_address_list(self.from_),
            format_address_list(self.sender),
            format_address_list(self.reply_to),
            format_address_list(self.to),
            format_address_list(self.cc),
            format_address_list(self.bcc),
            self.in_reply_to,
            self.message_id,
        ]


# ----- body structures -----


@dataclass
class BodyStructure:
    """The MIME structure of a message body."""

    mime_type: str = ""
    mime_sub_type: str = ""
    params: Optional[dict[str, str]] = None
    id: str = ""
    description: str = ""
    encoding: str = ""
    size: int = 0
    parts: list["BodyStructure"] = field(default_factory=list)
    envelope: Optional[Envelope] = None
    body_structure: Optional["BodyStructure"] = None
    lines: int = 0
    extended: bool = False
    disposition: str = ""
    disposition_params: Optional[dict[str, str]] = None
    language: Optional[list[str]] = None
    location: Optional[list[str]] = None
    md5: str = ""

    def _disposition_field(self) -> Optional[list[Any]]:
        if not self.disposition:
            return None
        return [
            encode_header(self.disposition),
            _format_header_param_list(self.disposition_params),
        ]

    def _language_field(self) -> Optional[list[Any]]:
        return format_string_list(self.language) if self.language is not None else None

    def format(self) -> list[Any]:
        """Return the structure as an IMAP BODYSTRUCTURE field list."""
        if self.mime_type.lower() == "multipart":
            fields: list[Any] = [part.format() for part in self.parts]
            fields.append(self.mime_sub_type)
            if self.extended:
                fields.extend(
                    [
                        _format_header_param_list(self.params)
                        if self.params is not None
                        else None,
                        self._disposition_field(),
                        self._language_field(),
                    ]
                )
            return fields

        fields = [
            self.mime_type,
            self.mime_sub_type,
            _format_header_param_list(self.params),
            self.id or None,
            encode_header(self.description) if self.description else None,
            self.encoding or None,
            self.size,
        ]
        if self.mime_type.lower() == "message" and self.mime_sub_type.lower() == "rfc822":
            fields.extend(
                [
                    self.envelope.format() if self.envelope is not None else None,
                    self.body_structure.format()
                    if self.body_structure is not None
                    else None,
                    self.lines,
                ]
            )
        if self.mime_type.lower() == "text":
            fields.append(self.lines)
        if self.extended:
            fields.extend(
                [self.md5 or None, self._disposition_field(), self._language_field()]
            )
        return fields

    def to_string(self) -> str:
        """Render the structure as a parenthesised IMAP list."""
        return _merge_fields(self.format())


def fetch_body_structure(
    header: Header, body: Union[BinaryIO, bytes, bytearray], extended: bool
) -> BodyStructure:
    """Compute the body structure of a message from its header and body."""
    if isinstance(body, (bytes, bytearray)):
        body = io.BytesIO(bytes(body))
    bs = BodyStructure()

    content_type = header.get("Content-Type")
    params: Optional[dict[str, str]] = None
    try:
        media_type, params = _parse_media_type(content_type)
    except ValueError:
        bs.mime_type, bs.mime_sub_type = "text", "plain"
    else:
        main, _, sub = media_type.partition("/")
        bs.mime_type = main
        bs.mime_sub_type = sub
        bs.params = params

    bs.id = header.get("Content-Id")
    bs.description = header.get("Content-Description")
    bs.encoding = header.get("Content-Transfer-Encoding")

    if content_type.startswith("multipart/") and params is not None:
        reader = MultipartReader(body, params.get("boundary", ""))
        bs.parts = [
            fetch_body_structure(part.header, part, extended) for part in reader
        ]

    if extended:
        bs.extended = True
        try:
            bs.disposition, bs.disposition_params = _parse_media_type(
                header.get("Content-Disposition")
            )
        except _InvalidMediaParameter as exc:
            bs.disposition, bs.disposition_params = exc.media_type, None
        except ValueError:
            bs.disposition, bs.disposition_params = "", None
        bs.md5 = ""
    return bs