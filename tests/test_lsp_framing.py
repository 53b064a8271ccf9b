"""Tests for LSP message framing."""

from __future__ import annotations

import os

import pytest

from spectre_lsp.transport import framing
from spectre_lsp.transport.channel import Channel, Owner
from spectre_lsp.transport.framing import (
    MAX_HEADER_SIZE,
    LSPFramingError,
    MessageDecoder,
    encode_header,
    frame_message,
    parse_header,
    write_message,
)


@pytest.fixture
def channel():
    c = Channel.open(reader=Owner.PARENT, writer=Owner.PARENT)
    c.read_end.set_blocking(False)
    yield c
    c.close()


def _drain(channel: Channel) -> bytes:
    data = bytearray()
    while True:
        try:
            chunk = os.read(channel.read_end.fileno(), 65536)
        except BlockingIOError:
            return bytes(data)
        if not chunk:
            return bytes(data)
        data += chunk


class TestEncodeHeader:
    """Tests for header encoding."""

    def test_header_format(self) -> None:
        assert encode_header(4) == b"Content-Length: 4\r\n\r\n"

    def test_zero_length(self) -> None:
        assert encode_header(0) == b"Content-Length: 0\r\n\r\n"

    def test_negative_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            encode_header(-1)

    def test_frame_message_counts_bytes_not_characters(self) -> None:
        payload = '{"text":"héllo"}'.encode("utf-8")
        framed = frame_message(payload)
        assert framed == f"Content-Length: {len(payload)}\r\n\r\n".encode() + payload
        assert b"Content-Length: 17\r\n" in framed


class TestWriteMessage:
    """Tests for write_message on a real pipe."""

    def test_writes_header_then_payload(self, channel: Channel) -> None:
        assert write_message(channel.write_end, b"ping") is True
        assert _drain(channel) == b"Content-Length: 4\r\n\r\nping"

    def test_byte_count_matches_header(self, channel: Channel) -> None:
        payload = b'{"jsonrpc":"2.0","id":1,"method":"initialize","params":{}}'
        assert write_message(channel.write_end, payload)

        data = _drain(channel)
        header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
        assert len(data) == len(header) + len(payload)
        assert data == header + payload

    def test_accepts_bytearray_and_memoryview(self, channel: Channel) -> None:
        assert write_message(channel.write_end, bytearray(b"ab"))
        assert write_message(channel.write_end, memoryview(b"cd"))
        assert _drain(channel) == frame_message(b"ab") + frame_message(b"cd")

    def test_sequential_writes_do_not_interleave(self, channel: Channel) -> None:
        assert write_message(channel.write_end, b"first")
        assert write_message(channel.write_end, b"second message")

        data = _drain(channel)
        assert data == frame_message(b"first") + frame_message(b"second message")
        assert MessageDecoder().feed(data) == [b"first", b"second message"]

    def test_empty_payload(self, channel: Channel) -> None:
        assert write_message(channel.write_end, b"")
        assert _drain(channel) == b"Content-Length: 0\r\n\r\n"

    def test_closed_end_fails_without_writing(self, channel: Channel) -> None:
        channel.write_end.close()

        assert write_message(channel.write_end, b"ping") is False
        # Only EOF is visible: nothing was written before the close
        assert _drain(channel) == b""

    def test_broken_pipe_returns_false(self, channel: Channel) -> None:
        channel.read_end.close()
        assert write_message(channel.write_end, b"ping") is False

    def test_short_write_returns_false(
        self, channel: Channel, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_write = os.write

        def short_write(fd: int, data: bytes) -> int:
            return real_write(fd, bytes(data)[:-1])

        monkeypatch.setattr(framing.os, "write", short_write)

        assert write_message(channel.write_end, b"ping") is False

    def test_str_payload_is_rejected(self, channel: Channel) -> None:
        with pytest.raises(TypeError):
            write_message(channel.write_end, "ping")  # type: ignore[arg-type]
        assert _drain(channel) == b""


class TestParseHeader:
    """Tests for parse_header function."""

    def test_basic_content_length(self) -> None:
        assert parse_header(b"Content-Length: 42") == {"Content-Length": "42"}

    def test_content_length_with_content_type(self) -> None:
        header = b"Content-Length: 100\r\nContent-Type: application/json"
        assert parse_header(header) == {
            "Content-Length": "100",
            "Content-Type": "application/json",
        }

    def test_whitespace_handling(self) -> None:
        assert parse_header(b"Content-Length:   42  ")["Content-Length"] == "42"

    def test_missing_content_length_raises(self) -> None:
        with pytest.raises(LSPFramingError, match="Missing required Content-Length"):
            parse_header(b"Content-Type: application/json")

    def test_empty_header_raises(self) -> None:
        with pytest.raises(LSPFramingError, match="Empty header block"):
            parse_header(b"")

    def test_invalid_content_length_raises(self) -> None:
        with pytest.raises(LSPFramingError, match="Invalid Content-Length"):
            parse_header(b"Content-Length: abc")

    def test_negative_content_length_raises(self) -> None:
        with pytest.raises(LSPFramingError, match="Negative Content-Length"):
            parse_header(b"Content-Length: -5")

    def test_malformed_header_line_raises(self) -> None:
        with pytest.raises(LSPFramingError, match="no colon"):
            parse_header(b"Content-Length 42")

    def test_non_ascii_header_raises(self) -> None:
        with pytest.raises(LSPFramingError, match="non-ASCII"):
            parse_header("Content-Length: 4\r\nX-Name: é".encode("utf-8"))


class TestMessageDecoder:
    """Tests for incoming message reassembly."""

    def test_single_message(self) -> None:
        decoder = MessageDecoder()
        assert decoder.feed(b"Content-Length: 4\r\n\r\nping") == [b"ping"]
        assert decoder.pending == 0

    def test_byte_at_a_time(self) -> None:
        decoder = MessageDecoder()
        data = frame_message(b'{"id":1}') + frame_message(b'{"id":2}')

        messages: list[bytes] = []
        for i in range(len(data)):
            messages.extend(decoder.feed(data[i : i + 1]))

        assert messages == [b'{"id":1}', b'{"id":2}']
        assert decoder.pending == 0

    def test_several_messages_in_one_chunk(self) -> None:
        decoder = MessageDecoder()
        data = b"".join(frame_message(p) for p in (b"a", b"bb", b"ccc"))
        assert decoder.feed(data) == [b"a", b"bb", b"ccc"]

    def test_partial_body_is_kept(self) -> None:
        decoder = MessageDecoder()
        assert decoder.feed(b"Content-Length: 10\r\n\r\n01234") == []
        assert decoder.pending == 5
        assert decoder.feed(b"56789Content-Length: 1\r\n\r\n") == [b"0123456789"]
        assert decoder.feed(b"x") == [b"x"]

    def test_content_type_header_accepted(self) -> None:
        decoder = MessageDecoder()
        data = (
            b"Content-Length: 2\r\n"
            b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n"
            b"\r\n"
            b"{}"
        )
        assert decoder.feed(data) == [b"{}"]

    def test_zero_length_message(self) -> None:
        decoder = MessageDecoder()
        assert decoder.feed(b"Content-Length: 0\r\n\r\n") == [b""]

    def test_payload_is_not_interpreted(self) -> None:
        payload = b"\x00\xff\r\n\r\nContent-Length: 99\r\n\r\n"
        assert MessageDecoder().feed(frame_message(payload)) == [payload]

    def test_oversized_message_raises(self) -> None:
        decoder = MessageDecoder(max_message_size=10)
        with pytest.raises(LSPFramingError, match="exceeds maximum"):
            decoder.feed(b"Content-Length: 11\r\n\r\n")

    def test_malformed_header_raises(self) -> None:
        with pytest.raises(LSPFramingError):
            MessageDecoder().feed(b"garbage\r\n\r\n")

    def test_reset_drops_buffer(self) -> None:
        decoder = MessageDecoder()
        decoder.feed(b"Content-Length: 5\r\n\r\nab")
        decoder.reset()
        assert decoder.pending == 0
        assert decoder.feed(frame_message(b"ok")) == [b"ok"]

    def test_header_without_terminator_is_bounded(self) -> None:
        decoder = MessageDecoder(max_message_size=10)
        assert decoder.feed(b"x" * MAX_HEADER_SIZE) == []

        with pytest.raises(LSPFramingError, match="Header block too long"):
            for _ in range(64):
                decoder.feed(b"x" * 1024 * 1024)
        assert decoder.pending < 2 * 1024 * 1024

    def test_overlong_terminated_header_raises(self) -> None:
        header = b"Content-Length: 1\r\nX-Pad: " + b"p" * MAX_HEADER_SIZE + b"\r\n\r\nx"
        with pytest.raises(LSPFramingError, match="Header block too long"):
            MessageDecoder().feed(header)

    def test_finish_at_boundary(self) -> None:
        decoder = MessageDecoder()
        decoder.feed(frame_message(b"done"))
        decoder.finish()

    def test_finish_inside_body_raises(self) -> None:
        decoder = MessageDecoder()
        decoder.feed(b"Content-Length: 10\r\n\r\nabc")
        with pytest.raises(LSPFramingError, match="expected 10 bytes, got 3"):
            decoder.finish()

    def test_finish_inside_header_raises(self) -> None:
        decoder = MessageDecoder()
        decoder.feed(b"Content-Len")
        with pytest.raises(LSPFramingError, match="Unexpected EOF while reading headers"):
            decoder.finish()
