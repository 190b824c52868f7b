# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Decoder for the multiplexed log stream the Docker engine returns for containers
started without a TTY.

Each frame is an 8 byte header followed by its payload:

    byte 0      stream type (1 = stdout, 2 = stderr)
    bytes 1-3   reserved, zero
    bytes 4-7   payload length, big-endian unsigned 32 bit
"""
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Iterator, Optional

from ..errors import FrameTruncated, InvalidFrame

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxL")


class StreamType(IntEnum):
    """Stream a frame belongs to."""

    STDOUT = 1
    STDERR = 2


@dataclass(frozen=True)
class LogFrame:
    """One tagged chunk of container output."""

    stream: StreamType
    payload: bytes


def _read_exactly(reader: BinaryIO, size: int) -> bytes:
    """
    Reads until ``size`` bytes are collected or the reader is exhausted.
    """
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(reader: BinaryIO) -> Optional[LogFrame]:
    """
    Reads the next frame from a binary reader.

    Args:
        reader: Any object with a ``read(n)`` method returning bytes.

    Returns:
        The frame, or None at end of stream. A header cut short by the end
        of the stream also counts as end of stream.

    Raises:
        InvalidFrame: The header names an unknown stream.
        FrameTruncated: The stream ended inside the payload.
    """
    header = _read_exactly(reader, HEADER_SIZE)
    if len(header) < HEADER_SIZE:
        return None

    stream_type, length = _HEADER.unpack(header)
    if stream_type not in (StreamType.STDOUT, StreamType.STDERR):
        raise InvalidFrame(stream_type)

    payload = _read_exactly(reader, length)
    if len(payload) < length:
        raise FrameTruncated(length, len(payload))
    return LogFrame(stream=StreamType(stream_type), payload=payload)


def iter_frames(reader: BinaryIO) -> Iterator[LogFrame]:
    """
    Yields frames in stream order until the reader is exhausted.
    """
    while True:
        frame = read_frame(reader)
        if frame is None:
            return
        yield frame


def encode_frame(stream: StreamType, payload: bytes) -> bytes:
    """
    Encodes a single frame, header included.
    """
    return _HEADER.pack(int(stream), len(payload)) + payload
