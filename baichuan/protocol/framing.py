"""
Baichuan message framing.

check_complete() decides whether a buffer of back-to-back messages can be
parsed in full, and if not, how many more bytes the trailing message needs.
complete_prefix() measures the whole messages ahead of a partial one.
MessageCursor / drive() then walk a complete buffer and decode each message.

    buffer: [hdr|body][hdr|body][hdr|bo...
             ^ whole   ^ whole   ^ only the last shortfall is reported
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

from .body import MessageBody, XmlSink, decode_body, parse_xml
from .header import MIN_HEADER_LEN, MessageHeader, decode_header, detect_header

log = logging.getLogger(__name__)


class Status(Enum):
    DONE = auto()           # buffer holds only whole messages
    NEED_MORE = auto()      # trailing message is short by `needed` bytes
    NEED_ONE_MORE = auto()  # too short to read a header, size unknown
    NO_MAGIC = auto()       # no message starts at the examined offset


@dataclass(frozen=True)
class Completeness:
    status: Status
    needed: int = 0

    @property
    def is_done(self) -> bool:
        return self.status is Status.DONE

    def __repr__(self) -> str:
        if self.status is Status.NEED_MORE:
            return f"<Completeness NEED_MORE({self.needed})>"
        return f"<Completeness {self.status.name}>"


DONE = Completeness(Status.DONE)
NEED_ONE_MORE = Completeness(Status.NEED_ONE_MORE, 1)
NO_MAGIC = Completeness(Status.NO_MAGIC)


def need_more(n: int) -> Completeness:
    return Completeness(Status.NEED_MORE, n)


def check_complete(buf: bytes) -> Completeness:
    """Classify `buf`: DONE, NEED_MORE(n), NEED_ONE_MORE or NO_MAGIC.

    Whole messages are skipped over; only the trailing message's shortfall
    is reported. A bad magic anywhere along the walk aborts with NO_MAGIC.
    An empty buffer is DONE.
    """
    if not buf:
        return DONE

    cursor = 0
    while True:
        remaining = len(buf) - cursor
        if remaining < MIN_HEADER_LEN:
            return NEED_ONE_MORE

        header_len = detect_header(buf, cursor)
        if header_len is None:
            return NO_MAGIC
        if header_len > remaining:
            return need_more(header_len - remaining)

        header = decode_header(buf, cursor)
        full_len = header.full_len
        if full_len > remaining:
            return need_more(full_len - remaining)
        if full_len == remaining:
            return DONE
        cursor += full_len


def complete_prefix(buf: bytes) -> int:
    """Length of the run of whole messages at the start of `buf`.

    Stops at the first trailing partial message or bad header; 0 if the
    buffer does not start with a whole message.
    """
    cursor = 0
    while len(buf) - cursor >= MIN_HEADER_LEN:
        remaining = len(buf) - cursor
        header_len = detect_header(buf, cursor)
        if header_len is None or header_len > remaining:
            break
        full_len = decode_header(buf, cursor).full_len
        if full_len > remaining:
            break
        cursor += full_len
    return cursor


@dataclass
class Message:
    """One decoded message and where it sat in the buffer."""
    header: MessageHeader
    body: MessageBody | None
    offset: int
    raw: bytes

    @property
    def size(self) -> int:
        return self.header.full_len

    def __repr__(self) -> str:
        return (
            f"<Message {self.header.message_type} ({self.header.type_label}) "
            f"@{self.offset} {self.size} bytes>"
        )


class MessageCursor:
    """Restartable iterator over the messages in one buffer.

    Each iteration starts again at offset 0. Iteration stops at the end of
    the buffer, at the first offset without a valid header, or at a
    trailing message that does not fit; unparsed trailing bytes are dropped.
    Only call this on buffers check_complete() reported DONE for if every
    byte must be accounted for.
    """

    def __init__(self, buf: bytes, xml_sink: XmlSink | None = parse_xml):
        self.buf = bytes(buf)
        self.xml_sink = xml_sink

    def __iter__(self) -> Iterator[Message]:
        buf = self.buf
        cursor = 0
        while cursor < len(buf):
            header_len = detect_header(buf, cursor)
            if header_len is None:
                log.debug("Stopping at offset %d: no header", cursor)
                return
            if header_len > len(buf) - cursor:
                log.debug("Stopping at offset %d: truncated header", cursor)
                return
            header = decode_header(buf, cursor)
            end = cursor + header.full_len
            if end > len(buf):
                log.debug(
                    "Stopping at offset %d: message needs %d more byte(s)",
                    cursor, end - len(buf),
                )
                return
            body = decode_body(header, buf[cursor + header.header_len:end], self.xml_sink)
            yield Message(header=header, body=body, offset=cursor, raw=buf[cursor:end])
            cursor = end


def drive(buf: bytes, xml_sink: XmlSink | None = parse_xml) -> list[Message]:
    """Decode every message in `buf`."""
    return list(MessageCursor(buf, xml_sink))
