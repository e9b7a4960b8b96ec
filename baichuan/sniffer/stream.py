"""
TCP Stream Reassembler — reconstruct Baichuan messages from TCP segments.

TCP can split or merge messages across segments. This module:
1. Buffers incoming TCP data per direction
2. Runs the completeness check over the whole buffer
3. Decodes and emits every whole message, keeping a trailing partial one

Segment and message boundaries rarely line up: two whole messages
followed by part of a third are emitted at once and only the partial
third stays buffered. Bytes that do not start with a valid header are
dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from baichuan.protocol.body import XmlSink, parse_xml
from baichuan.protocol.framing import (
    Completeness, Message, Status, check_complete, complete_prefix, drive,
)

from .capture import BCSegment, C2D, D2C

log = logging.getLogger(__name__)


@dataclass
class StreamBuffer:
    """Buffer for one direction of a TCP stream."""
    direction: str
    buffer: bytearray = field(default_factory=bytearray)
    segment_count: int = 0
    messages_emitted: int = 0
    dropped_buffers: int = 0
    # Bytes still required before the buffer can complete (0 = nothing pending)
    pending: int = 0

    def append(self, data: bytes) -> None:
        self.buffer.extend(data)
        self.segment_count += 1

    def consume(self, n: int) -> bytes:
        """Consume n bytes from the front of the buffer."""
        data = bytes(self.buffer[:n])
        del self.buffer[:n]
        return data

    @property
    def size(self) -> int:
        return len(self.buffer)


MessageCallback = Callable[[str, Message], None]


class TCPStreamReassembler:
    """Reassemble both directions of one TCP flow into Baichuan messages."""

    def __init__(self, xml_sink: XmlSink | None = parse_xml):
        self.streams: dict[str, StreamBuffer] = {
            C2D: StreamBuffer(C2D),
            D2C: StreamBuffer(D2C),
        }
        self.xml_sink = xml_sink
        self.callbacks: list[MessageCallback] = []

    def on_message(self, callback: MessageCallback) -> None:
        """Register callback for complete messages. Args: (direction, message)."""
        self.callbacks.append(callback)

    def feed(self, seg: BCSegment) -> list[Message]:
        """Feed a captured TCP segment into the reassembler."""
        return self.feed_bytes(seg.direction, seg.payload)

    def feed_bytes(self, direction: str, data: bytes) -> list[Message]:
        """Append `data` to one direction and emit whatever completes.

        Returns the messages emitted by this call.
        """
        stream = self.streams[direction]
        stream.append(data)
        return self._try_extract(stream)

    def _try_extract(self, stream: StreamBuffer) -> list[Message]:
        buf = bytes(stream.buffer)
        more: Completeness = check_complete(buf)

        # Whole messages ahead of a partial or bad tail go out now
        whole = stream.size if more.status is Status.DONE else complete_prefix(buf)
        messages = drive(stream.consume(whole), self.xml_sink) if whole else []
        for message in messages:
            self._emit(stream, message)

        if more.status is Status.DONE:
            stream.pending = 0
            return messages

        if more.status is Status.NO_MAGIC:
            log.warning(
                "[%s] no Baichuan header after %d whole byte(s), dropping %d bytes",
                stream.direction, whole, stream.size,
            )
            stream.consume(stream.size)
            stream.pending = 0
            stream.dropped_buffers += 1
            return messages

        # NEED_MORE / NEED_ONE_MORE: keep the partial tail for the next segment
        stream.pending = more.needed
        log.debug("[%s] need %d more byte(s), %d buffered", stream.direction, more.needed, stream.size)
        return messages

    def _emit(self, stream: StreamBuffer, message: Message) -> None:
        stream.messages_emitted += 1
        for cb in self.callbacks:
            try:
                cb(stream.direction, message)
            except Exception as e:
                log.error("Stream callback error: %s", e)

    def stats(self) -> dict:
        return {
            d: {
                "buffered": s.size,
                "pending": s.pending,
                "tcp_segments": s.segment_count,
                "messages": s.messages_emitted,
                "dropped": s.dropped_buffers,
            }
            for d, s in self.streams.items()
        }
