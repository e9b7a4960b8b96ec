"""
Baichuan protocol codecs.

    ciphers.py        — XML byte cipher, UDP word cipher, UDP checksum
    message_types.py  — message id labels
    header.py         — message header (20/24-byte variants)
    body.py           — body sections, XML detection/decryption
    framing.py        — completeness check + message driver
    udp.py            — UDP datagram headers
    errors.py         — NoMagic, InsufficientData, UnknownUdpClass
"""

from .errors import BaichuanError, NoMagic, InsufficientData, UnknownUdpClass
from .ciphers import xml_crypt, udp_crypt, udp_checksum
from .header import MessageHeader, detect_header, decode_header
from .body import (
    SectionKind, PayloadSection, LegacyCredentials, LegacyOpaque, ModernPayload,
    decode_body, parse_xml,
)
from .framing import (
    Status, Completeness, DONE, NEED_ONE_MORE, NO_MAGIC, need_more,
    check_complete, complete_prefix, Message, MessageCursor, drive,
)
from .udp import UdpHeader, UdpDatagram, decode_udp_header, decode_udp_datagram

__all__ = [
    "BaichuanError", "NoMagic", "InsufficientData", "UnknownUdpClass",
    "xml_crypt", "udp_crypt", "udp_checksum",
    "MessageHeader", "detect_header", "decode_header",
    "SectionKind", "PayloadSection", "LegacyCredentials", "LegacyOpaque",
    "ModernPayload", "decode_body", "parse_xml",
    "Status", "Completeness", "DONE", "NEED_ONE_MORE", "NO_MAGIC", "need_more",
    "check_complete", "complete_prefix", "Message", "MessageCursor", "drive",
    "UdpHeader", "UdpDatagram", "decode_udp_header", "decode_udp_datagram",
]
