"""
Baichuan UDP datagram header codec.

Every datagram starts with a class byte followed by the 3-byte UDP magic
(0x2a87cf, little-endian). The rest of the header depends on the class:

    0x3a  discovery/heartbeat, 20 bytes
          size u32 @4, unknown u32 @8, tid u32 @12, checksum u32 @16
          payload is udp_crypt()-encrypted XML, single datagram
    0x20  acknowledgement, 28 bytes
          connection_id u32 @4, unknown @8, unknown @12,
          last_ack_packet u32 @16, unknown @20, unknown @24
          no payload
    0x10  continuable data, 20 bytes
          connection_id u32 @4, unknown u32 @8, packet_count u32 @12,
          size u32 @16
          payload is a fragment of a Baichuan message stream
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from types import MappingProxyType

from .errors import InsufficientData, NoMagic, UnknownUdpClass

UDP_MAGIC = 0x2A87CF

UDP_CLASS_DISCOVERY = 0x3A
UDP_CLASS_ACK = 0x20
UDP_CLASS_DATA = 0x10

UDP_HEADER_LENGTHS = MappingProxyType({
    UDP_CLASS_DISCOVERY: 20,
    UDP_CLASS_ACK: 28,
    UDP_CLASS_DATA: 20,
})

UDP_CLASS_NAMES = MappingProxyType({
    UDP_CLASS_DISCOVERY: "heartbeat",
    UDP_CLASS_ACK: "ack",
    UDP_CLASS_DATA: "data",
})

_WORDS = struct.Struct("<IIII")      # 4 u32 words @4
_ACK_WORDS = struct.Struct("<IIIIII")  # 6 u32 words @4


@dataclass(frozen=True)
class UdpHeader:
    udp_class: int
    magic: int
    unknown: tuple[int, ...] = ()
    payload_size: int | None = None     # 0x3a, 0x10
    tid: int | None = None              # 0x3a
    checksum: int | None = None         # 0x3a
    connection_id: int | None = None    # 0x20, 0x10
    last_ack_packet: int | None = None  # 0x20
    packet_count: int | None = None     # 0x10

    @property
    def header_len(self) -> int:
        return UDP_HEADER_LENGTHS[self.udp_class]

    @property
    def class_name(self) -> str:
        return UDP_CLASS_NAMES[self.udp_class]

    def to_dict(self) -> dict:
        d = {"class": f"0x{self.udp_class:02x}", "name": self.class_name}
        for key in ("payload_size", "tid", "checksum", "connection_id",
                    "last_ack_packet", "packet_count"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d

    def __repr__(self) -> str:
        return f"<UdpHeader {self.class_name} {self.to_dict()}>"


@dataclass
class UdpDatagram:
    """A decoded datagram: header plus its raw (still encrypted) payload."""
    header: UdpHeader
    payload: bytes


def udp_header_len(buf: bytes) -> int:
    """Header length for the datagram in `buf`.

    Raises InsufficientData, NoMagic or UnknownUdpClass.
    """
    if len(buf) < 4:
        raise InsufficientData(4 - len(buf), "UDP header")
    magic = int.from_bytes(buf[1:4], "little")
    if magic != UDP_MAGIC:
        raise NoMagic(magic)
    udp_class = buf[0]
    if udp_class not in UDP_HEADER_LENGTHS:
        raise UnknownUdpClass(udp_class)
    return UDP_HEADER_LENGTHS[udp_class]


def decode_udp_header(buf: bytes) -> UdpHeader:
    header_len = udp_header_len(buf)
    if len(buf) < header_len:
        raise InsufficientData(header_len - len(buf), "UDP header")

    udp_class = buf[0]
    magic = int.from_bytes(buf[1:4], "little")

    if udp_class == UDP_CLASS_DISCOVERY:
        size, unknown, tid, checksum = _WORDS.unpack_from(buf, 4)
        return UdpHeader(udp_class, magic, (unknown,),
                         payload_size=size, tid=tid, checksum=checksum)

    if udp_class == UDP_CLASS_ACK:
        connection_id, u1, u2, last_ack, u3, u4 = _ACK_WORDS.unpack_from(buf, 4)
        return UdpHeader(udp_class, magic, (u1, u2, u3, u4),
                         connection_id=connection_id, last_ack_packet=last_ack)

    connection_id, unknown, packet_count, size = _WORDS.unpack_from(buf, 4)
    return UdpHeader(udp_class, magic, (unknown,),
                     connection_id=connection_id, packet_count=packet_count,
                     payload_size=size)


def decode_udp_datagram(buf: bytes) -> UdpDatagram:
    """Decode header and slice out the payload.

    The payload is `payload_size` bytes after the header for classes that
    carry a size; ack datagrams have none.
    """
    header = decode_udp_header(buf)
    start = header.header_len
    if header.payload_size is None:
        return UdpDatagram(header, b"")
    end = start + header.payload_size
    if end > len(buf):
        raise InsufficientData(end - len(buf), "UDP payload")
    return UdpDatagram(header, bytes(buf[start:end]))
