"""
Baichuan message header codec.

Wire layout (all little-endian):

    0   magic         u32   0x0abcdef0
    4   message_type  u32
    8   message_len   u32   body length, header excluded
    12  channel_id    u8    also the XML cipher offset
    13  stream_id     u8    0 = HD, 1 = SD
    14  unknown       u8
    15  handle        u8
    16  encrypt_xml   u8    (20-byte header)
    16  status_code   u16   (24-byte header)
    18  class_tag     u16
    20  bin_offset    u32   (24-byte header, 0 = no binary section)

The class tag alone selects the header length and the body layout.
0x6614 is the odd one out: modern body layout behind a 20-byte header.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from types import MappingProxyType

from .errors import InsufficientData, NoMagic
from .message_types import message_type_label

MAGIC = 0x0ABCDEF0

MIN_HEADER_LEN = 20

CLASS_LEGACY = 0x6514
CLASS_MODERN_20 = 0x6614
CLASS_MODERN_24 = 0x6414
CLASS_MODERN_24_ALT = 0x0000

HEADER_LENGTHS = MappingProxyType({
    CLASS_LEGACY: 20,
    CLASS_MODERN_20: 20,
    CLASS_MODERN_24: 24,
    CLASS_MODERN_24_ALT: 24,
})

MESSAGE_CLASSES = MappingProxyType({
    CLASS_LEGACY: "legacy",
    CLASS_MODERN_20: "modern",
    CLASS_MODERN_24: "modern",
    CLASS_MODERN_24_ALT: "modern",
})

STREAM_LABELS = MappingProxyType({
    0: "HD (Clear)",
    1: "SD (Fluent)",
})

_COMMON = struct.Struct("<IIIBBBB")   # magic .. handle, offsets 0-15
_CLASS_TAG = struct.Struct("<H")       # offset 18
_EXTENDED = struct.Struct("<HHI")      # status_code, class_tag, bin_offset @16


@dataclass(frozen=True)
class MessageHeader:
    """One decoded message header. Immutable."""
    magic: int
    message_type: int
    message_len: int
    channel_id: int
    stream_id: int
    unknown_byte: int
    message_handle: int
    class_tag: int
    encrypt_xml: int | None = None   # 20-byte header only
    status_code: int | None = None   # 24-byte header only
    bin_offset: int | None = None    # 24-byte header only, None if zero

    @property
    def header_len(self) -> int:
        return HEADER_LENGTHS[self.class_tag]

    @property
    def full_len(self) -> int:
        """Header plus body length on the wire."""
        return self.header_len + self.message_len

    @property
    def message_class(self) -> str:
        return MESSAGE_CLASSES[self.class_tag]

    @property
    def is_legacy(self) -> bool:
        return self.class_tag == CLASS_LEGACY

    @property
    def enc_offset(self) -> int:
        """XML cipher offset for this message."""
        return self.channel_id

    @property
    def type_label(self) -> str:
        return message_type_label(self.message_type)

    @property
    def stream_label(self) -> str:
        return STREAM_LABELS.get(self.stream_id, "unknown")

    def to_dict(self) -> dict:
        return {
            "message_type": self.message_type,
            "label": self.type_label,
            "message_len": self.message_len,
            "header_len": self.header_len,
            "class": self.message_class,
            "class_tag": f"0x{self.class_tag:04x}",
            "channel_id": self.channel_id,
            "stream": self.stream_label,
            "handle": self.message_handle,
            "encrypt_xml": self.encrypt_xml,
            "status_code": self.status_code,
            "bin_offset": self.bin_offset,
        }

    def __repr__(self) -> str:
        return (
            f"<MessageHeader type={self.message_type} ({self.type_label}) "
            f"len={self.message_len} class=0x{self.class_tag:04x}>"
        )


def detect_header(buf: bytes, offset: int = 0) -> int | None:
    """Return the header length of the message at `offset`, or None.

    None means fewer than 20 bytes are available, the magic is wrong, or
    the class tag is unknown.
    """
    if len(buf) - offset < MIN_HEADER_LEN:
        return None
    (magic,) = struct.unpack_from("<I", buf, offset)
    if magic != MAGIC:
        return None
    (class_tag,) = _CLASS_TAG.unpack_from(buf, offset + 18)
    return HEADER_LENGTHS.get(class_tag)


def decode_header(buf: bytes, offset: int = 0) -> MessageHeader:
    """Decode the header at `offset`.

    Raises NoMagic if `detect_header` rejects the bytes, InsufficientData
    if the buffer ends inside the header.
    """
    available = len(buf) - offset
    if available < MIN_HEADER_LEN:
        raise InsufficientData(MIN_HEADER_LEN - available, "header")
    header_len = detect_header(buf, offset)
    if header_len is None:
        (found,) = struct.unpack_from("<I", buf, offset)
        raise NoMagic(found)
    if available < header_len:
        raise InsufficientData(header_len - available, "header")

    magic, message_type, message_len, channel_id, stream_id, unknown, handle = \
        _COMMON.unpack_from(buf, offset)

    if header_len == 24:
        status_code, class_tag, bin_offset = _EXTENDED.unpack_from(buf, offset + 16)
        return MessageHeader(
            magic=magic,
            message_type=message_type,
            message_len=message_len,
            channel_id=channel_id,
            stream_id=stream_id,
            unknown_byte=unknown,
            message_handle=handle,
            class_tag=class_tag,
            status_code=status_code,
            bin_offset=bin_offset or None,
        )

    (class_tag,) = _CLASS_TAG.unpack_from(buf, offset + 18)
    return MessageHeader(
        magic=magic,
        message_type=message_type,
        message_len=message_len,
        channel_id=channel_id,
        stream_id=stream_id,
        unknown_byte=unknown,
        message_handle=handle,
        class_tag=class_tag,
        encrypt_xml=buf[offset + 16],
    )
