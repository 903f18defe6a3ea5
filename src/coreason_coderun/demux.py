# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

"""Parser for the engine's multiplexed attach stream.

When a container runs without a TTY, the engine sends stdout and stderr over
one connection as a sequence of frames::

    byte 0      stream selector (1 = stdout, 2 = stderr)
    bytes 1-3   unused
    bytes 4-7   payload length, unsigned big-endian
    bytes 8..   payload
"""

import struct
from collections.abc import Iterator

from loguru import logger

from coreason_coderun.models import DemuxedOutput

STDOUT = 1
STDERR = 2

HEADER = struct.Struct(">BxxxL")


def frame(stream: int, payload: bytes | str) -> bytes:
    """Encode one frame of the attach protocol."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return HEADER.pack(stream, len(payload)) + payload


def iter_frames(raw: bytes) -> Iterator[tuple[int, bytes]]:
    """Yield ``(stream, payload)`` pairs in arrival order.

    Stops quietly at a trailing header shorter than 8 bytes. A payload shorter
    than its declared length is yielded as-is and ends the stream.
    """
    offset = 0
    total = len(raw)
    while total - offset >= HEADER.size:
        stream, length = HEADER.unpack_from(raw, offset)
        offset += HEADER.size
        payload = raw[offset : offset + length]
        offset += length
        yield stream, payload
        if len(payload) < length:
            logger.debug(f"Truncated frame: declared {length} bytes, got {len(payload)}")
            return

    if offset < total:
        logger.debug(f"Discarding {total - offset} trailing bytes of an incomplete frame header")


def demux(raw: bytes) -> DemuxedOutput:
    """Split a framed byte stream into stdout and stderr text.

    Frames with an unknown selector are skipped. Each stream is decoded as
    UTF-8 after its frames are joined, so multi-byte characters may straddle
    frame boundaries.
    """
    stdout = bytearray()
    stderr = bytearray()
    for stream, payload in iter_frames(raw):
        if stream == STDOUT:
            stdout += payload
        elif stream == STDERR:
            stderr += payload
        else:
            logger.debug(f"Ignoring frame for unknown stream {stream} ({len(payload)} bytes)")

    return DemuxedOutput(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
