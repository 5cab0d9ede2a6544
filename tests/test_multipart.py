import io

import pytest

from imail.multipart import MultipartError, MultipartReader

TEXT_BODY = b"What's your name?"
HTML_BODY = b"<div>What's <i>your</i> name?</div>"
ATTACHMENT_BODY = b"My name is Mitsuha."

SIMPLE = (
    b"--message-boundary\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n" + TEXT_BODY + b"\r\n--message-boundary\r\n"
    b"Content-Disposition: attachment; filename=note.txt\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n" + ATTACHMENT_BODY + b"\r\n--message-boundary--\r\n"
)

NESTED = (
    b"--message-boundary\r\n"
    b"Content-Type: multipart/alternative; boundary=b2\r\n"
    b"\r\n"
    b"\r\n--b2\r\n"
    b"Content-Disposition: inline\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n" + TEXT_BODY + b"\r\n--b2\r\n"
    b"Content-Disposition: inline\r\n"
    b"Content-Type: text/html\r\n"
    b"\r\n" + HTML_BODY + b"\r\n--b2--\r\n"
    b"\r\n--message-boundary\r\n"
    b"Content-Disposition: attachment; filename=note.txt\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n" + ATTACHMENT_BODY + b"\r\n--message-boundary--\r\n"
)


def _bodies(data, boundary):
    return [part.read() for part in MultipartReader(io.BytesIO(data), boundary)]


def test_reads_bodies_of_each_part():
    assert _bodies(SIMPLE, "message-boundary") == [TEXT_BODY, ATTACHMENT_BODY]


def test_part_headers_are_parsed():
    parts = list(MultipartReader(SIMPLE, "message-boundary"))
    first = parts[0]
    assert first.header.get("content-type") == "text/plain"


def test_second_part_header_available_while_reading():
    reader = MultipartReader(SIMPLE, "message-boundary")
    reader.next_part()
    second = reader.next_part()
    assert second.header.get("Content-Disposition") == "attachment; filename=note.txt"
    assert second.read() == ATTACHMENT_BODY
    assert reader.next_part() is None


def test_unread_part_is_skipped_by_next_part():
    reader = MultipartReader(SIMPLE, "message-boundary")
    first = reader.next_part()
    first.read(3)
    second = reader.next_part()
    assert second.read() == ATTACHMENT_BODY


@pytest.mark.parametrize("size", [1, 2, 3, 7, 64, 4096])
def test_chunked_reads_match_whole_read(size):
    reader = MultipartReader(SIMPLE, "message-boundary")
    collected = []
    for part in reader:
        chunks = []
        while True:
            chunk = part.read(size)
            if not chunk:
                break
            assert len(chunk) <= size
            chunks.append(chunk)
        collected.append(b"".join(chunks))
    assert collected == [TEXT_BODY, ATTACHMENT_BODY]


def test_bare_newline_mode():
    data = SIMPLE.replace(b"\r\n", b"\n")
    assert _bodies(data, "message-boundary") == [TEXT_BODY, ATTACHMENT_BODY]


def test_preamble_is_skipped():
    data = b"This is a preamble.\r\nAnother line.\r\n" + SIMPLE
    assert _bodies(data, "message-boundary") == [TEXT_BODY, ATTACHMENT_BODY]


def test_final_boundary_without_trailing_newline():
    data = SIMPLE[: -len(b"\r\n")]
    assert _bodies(data, "message-boundary") == [TEXT_BODY, ATTACHMENT_BODY]


def test_empty_part_body():
    data = b"--b\r\nContent-Type: text/plain\r\n\r\n\r\n--b--"
    parts = list(MultipartReader(data, "b"))
    assert len(parts) == 1
    assert parts[0].read() == b""


def test_longer_boundary_lookalike_stays_in_body():
    body = b"start\r\n--foobar is not the end"
    data = b"--foo\r\n\r\n" + body + b"\r\n--foo--\r\n"
    assert _bodies(data, "foo") == [body]


def test_nested_multipart():
    outer = MultipartReader(NESTED, "message-boundary")
    alternative = outer.next_part()
    assert alternative.header.get("Content-Type") == "multipart/alternative; boundary=b2"
    inner = MultipartReader(alternative, "b2")
    inner_parts = [(p.header.get("Content-Type"), p.read()) for p in inner]
    assert inner_parts == [("text/plain", TEXT_BODY), ("text/html", HTML_BODY)]
    attachment = outer.next_part()
    assert attachment.read() == ATTACHMENT_BODY
    assert outer.next_part() is None


def test_empty_boundary_is_rejected():
    with pytest.raises(MultipartError, match="boundary is empty"):
        MultipartReader(SIMPLE, "").next_part()


def test_input_without_boundaries_raises():
    with pytest.raises(MultipartError, match="NextPart"):
        MultipartReader(b"no boundaries here", "b").next_part()


def test_truncated_part_body_raises():
    data = b"--b\r\nContent-Type: text/plain\r\n\r\nbody without an end"
    part = MultipartReader(data, "b").next_part()
    with pytest.raises(MultipartError, match="unexpected EOF"):
        part.read()


def test_close_swallows_truncation():
    data = b"--b\r\n\r\nunterminated"
    reader = MultipartReader(data, "b")
    part = reader.next_part()
    part.close()
    with pytest.raises(MultipartError):
        reader.next_part()


def test_junk_after_boundary_raises():
    data = b"--b\r\n\r\nbody\r\n--b junk\r\n\r\nmore\r\n--b--\r\n"
    reader = MultipartReader(data, "b")
    assert reader.next_part().read() == b"body"
    with pytest.raises(MultipartError, match="expecting a new Part"):
        reader.next_part()


def test_malformed_part_header_raises():
    data = b"--b\r\nno colon here\r\n\r\nbody\r\n--b--\r\n"
    with pytest.raises(MultipartError, match="malformed MIME header line"):
        MultipartReader(data, "b").next_part()


def test_part_as_context_manager_drains_body():
    reader = MultipartReader(SIMPLE, "message-boundary")
    with reader.next_part() as part:
        assert part.read(4) == TEXT_BODY[:4]
    assert part.read() == b""