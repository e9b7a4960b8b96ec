"""
Baichuan message body codec.

Body layouts:
- legacy class (0x6514), login: two raw 32-byte credential fields, in clear.
- legacy class, other types: opaque bytes.
- modern classes: a meta section (bytes 0..bin_offset, or the whole body
  when there is no bin_offset) followed by an optional main/binary section
  (bin_offset..message_len).

Each modern section is classified independently: encrypted XML (first five
bytes decrypt to "<?xml"), plain XML, or opaque. XML sections, decrypted
where needed, are handed to an XML sink. The default sink parses with
ElementTree; pass another callable to route XML elsewhere.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ElementTree
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

from .ciphers import is_encrypted_xml, is_plain_xml, xml_crypt
from .errors import InsufficientData
from .header import MessageHeader
from .message_types import MSG_ID_LOGIN

log = logging.getLogger(__name__)

CREDENTIAL_SIZE = 32

XmlSink = Callable[[bytes], Any]


def parse_xml(data: bytes) -> ElementTree.Element | None:
    """Default XML sink: parsed root element, or None if not well-formed."""
    try:
        return ElementTree.fromstring(data.rstrip(b"\x00"))
    except (ElementTree.ParseError, ValueError) as e:
        log.debug("XML payload did not parse: %s", e)
        return None


class SectionKind(Enum):
    EMPTY = "empty"
    PLAIN_XML = "xml"
    ENCRYPTED_XML = "encrypted xml"
    OPAQUE = "binary"


@dataclass
class PayloadSection:
    """One body section. `data` is plaintext for ENCRYPTED_XML."""
    kind: SectionKind
    data: bytes = b""
    document: Any = None  # XML sink result, XML kinds only

    @property
    def is_xml(self) -> bool:
        return self.kind in (SectionKind.PLAIN_XML, SectionKind.ENCRYPTED_XML)

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"<PayloadSection {self.kind.value} ({self.size} bytes)>"


@dataclass
class LegacyCredentials:
    """Legacy login body. Fields are the raw 32-byte values."""
    username: bytes
    password: bytes

    @property
    def username_text(self) -> str:
        return self.username.rstrip(b"\x00").decode("ascii", errors="replace")

    @property
    def password_text(self) -> str:
        return self.password.rstrip(b"\x00").decode("ascii", errors="replace")


@dataclass
class LegacyOpaque:
    """Legacy-class body of a type with no known layout."""
    data: bytes


@dataclass
class ModernPayload:
    meta: PayloadSection
    binary: PayloadSection | None = None

    @property
    def sections(self) -> list[PayloadSection]:
        if self.binary is None:
            return [self.meta]
        return [self.meta, self.binary]


MessageBody = Union[LegacyCredentials, LegacyOpaque, ModernPayload]


def classify_section(data: bytes, offset: int, xml_sink: XmlSink | None = parse_xml) -> PayloadSection:
    """Classify one section: encrypted XML first, then plain XML, else opaque."""
    if not data:
        return PayloadSection(SectionKind.EMPTY)
    if is_encrypted_xml(data, offset):
        plain = xml_crypt(data, offset)
        document = xml_sink(plain) if xml_sink else None
        return PayloadSection(SectionKind.ENCRYPTED_XML, plain, document)
    if is_plain_xml(data):
        document = xml_sink(data) if xml_sink else None
        return PayloadSection(SectionKind.PLAIN_XML, data, document)
    return PayloadSection(SectionKind.OPAQUE, data)


def decode_body(
    header: MessageHeader,
    body_buf: bytes,
    xml_sink: XmlSink | None = parse_xml,
) -> MessageBody | None:
    """Decode the body following `header`.

    `body_buf` starts right after the header and must hold at least
    `header.message_len` bytes; extra bytes are not touched. Returns None
    for an empty body.
    """
    msg_len = header.message_len
    if msg_len == 0:
        return None
    if len(body_buf) < msg_len:
        raise InsufficientData(msg_len - len(body_buf), "body")
    body = bytes(body_buf[:msg_len])

    if header.is_legacy:
        if header.message_type == MSG_ID_LOGIN:
            return LegacyCredentials(
                username=body[:CREDENTIAL_SIZE],
                password=body[CREDENTIAL_SIZE:CREDENTIAL_SIZE * 2],
            )
        return LegacyOpaque(body)

    bin_offset = header.bin_offset
    xml_len = min(bin_offset, msg_len) if bin_offset is not None else msg_len
    meta = classify_section(body[:xml_len], header.enc_offset, xml_sink)

    binary = None
    if bin_offset is not None and msg_len > bin_offset:
        binary = classify_section(body[bin_offset:], header.enc_offset, xml_sink)

    return ModernPayload(meta=meta, binary=binary)
