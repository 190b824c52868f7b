"""
Unit tests for the multiplexed log stream decoder.
"""
import io

import pytest

from mythic_compose.errors import FrameTruncated, InvalidFrame
from mythic_compose.PARSERS.log_frame_parser import (
    HEADER_SIZE,
    StreamType,
    encode_frame,
    iter_frames,
    read_frame,
)


class TrickleReader:
    """Returns at most a few bytes per read, like a slow socket."""

    def __init__(self, data, step=3):
        self.data = data
        self.step = step
        self.offset = 0

    def read(self, size):
        chunk = self.data[self.offset:self.offset + min(size, self.step)]
        self.offset += len(chunk)
        return chunk


def test_header_layout():
    frame = encode_frame(StreamType.STDERR, b"hello")
    assert frame[:HEADER_SIZE] == b"\x02\x00\x00\x00\x00\x00\x00\x05"
    assert frame[HEADER_SIZE:] == b"hello"


def test_frames_in_order():
    data = (encode_frame(StreamType.STDOUT, b"starting\n")
            + encode_frame(StreamType.STDERR, b"warning\n")
            + encode_frame(StreamType.STDOUT, b""))
    frames = list(iter_frames(io.BytesIO(data)))
    assert [(f.stream, f.payload) for f in frames] == [
        (StreamType.STDOUT, b"starting\n"),
        (StreamType.STDERR, b"warning\n"),
        (StreamType.STDOUT, b""),
    ]


def test_empty_stream():
    assert read_frame(io.BytesIO(b"")) is None


def test_partial_header_is_end_of_stream():
    assert read_frame(io.BytesIO(b"\x01\x00\x00")) is None


def test_truncated_payload():
    data = encode_frame(StreamType.STDOUT, b"0123456789")[:-4]
    with pytest.raises(FrameTruncated) as excinfo:
        read_frame(io.BytesIO(data))
    assert excinfo.value.expected == 10
    assert excinfo.value.received == 6


@pytest.mark.parametrize("tag", [0, 3, 255])
def test_invalid_stream_type(tag):
    data = bytes([tag, 0, 0, 0, 0, 0, 0, 1]) + b"x"
    with pytest.raises(InvalidFrame) as excinfo:
        read_frame(io.BytesIO(data))
    assert excinfo.value.stream_type == tag


def test_short_reads_do_not_split_frames():
    """A reader that hands back a few bytes at a time still yields whole frames."""
    payload = b"a" * 1000
    data = encode_frame(StreamType.STDOUT, payload) + encode_frame(StreamType.STDERR, b"done")
    frames = list(iter_frames(TrickleReader(data)))
    assert frames[0].payload == payload
    assert frames[1].stream == StreamType.STDERR
    assert frames[1].payload == b"done"


def test_error_after_valid_frames():
    """Frames before a bad header are still delivered."""
    data = encode_frame(StreamType.STDOUT, b"ok") + b"\x07\x00\x00\x00\x00\x00\x00\x00"
    frames = iter_frames(io.BytesIO(data))
    assert next(frames).payload == b"ok"
    with pytest.raises(InvalidFrame):
        next(frames)


def test_reencoding_reproduces_stream():
    """Decoded frames encode back to the exact bytes they came from."""
    data = (encode_frame(StreamType.STDOUT, b"listening on 17443\n")
            + encode_frame(StreamType.STDERR, b"\x00\xff binary\n")
            + encode_frame(StreamType.STDOUT, b"")
            + encode_frame(StreamType.STDERR, b"x" * 70000))
    frames = list(iter_frames(io.BytesIO(data)))
    assert b"".join(encode_frame(f.stream, f.payload) for f in frames) == data
