"""Wire-format builders shared by the tests."""

import struct

from baichuan.protocol.ciphers import udp_checksum, udp_crypt, xml_crypt
from baichuan.protocol.header import MAGIC
from baichuan.sniffer.capture import BCSegment, C2D


def make_header(
    message_type: int = 1,
    message_len: int = 0,
    channel_id: int = 0,
    stream_id: int = 0,
    unknown: int = 0,
    handle: int = 0,
    class_tag: int = 0x6414,
    status_code: int = 0,
    bin_offset: int = 0,
    encrypt_xml: int = 0,
) -> bytes:
    """Build a 20- or 24-byte message header, chosen by class tag."""
    if class_tag in (0x6414, 0x0000):
        return struct.pack(
            "<IIIBBBBHHI", MAGIC, message_type, message_len,
            channel_id, stream_id, unknown, handle,
            status_code, class_tag, bin_offset,
        )
    return struct.pack(
        "<IIIBBBBBxH", MAGIC, message_type, message_len,
        channel_id, stream_id, unknown, handle,
        encrypt_xml, class_tag,
    )


def make_message(body: bytes = b"", **kwargs) -> bytes:
    """Header + body with message_len filled in."""
    return make_header(message_len=len(body), **kwargs) + body


XML_DOC = (
    b'<?xml version="1.0" encoding="UTF-8" ?>\n'
    b'<body>\n<Encryption version="1.1">\n<type>md5</type>\n'
    b'<nonce>9E6D1FCB9E69846D</nonce>\n</Encryption>\n</body>\n'
)


def make_encrypted_xml_message(doc: bytes = XML_DOC, channel_id: int = 0, **kwargs) -> bytes:
    return make_message(xml_crypt(doc, channel_id), channel_id=channel_id, **kwargs)


def make_udp_data(connection_id: int, packet_count: int, payload: bytes, unknown: int = 0) -> bytes:
    """Class 0x10 datagram."""
    return struct.pack(
        "<B3sIIII", 0x10, (0x2A87CF).to_bytes(3, "little"),
        connection_id, unknown, packet_count, len(payload),
    ) + payload


def make_udp_ack(connection_id: int, last_ack_packet: int) -> bytes:
    """Class 0x20 datagram."""
    return struct.pack(
        "<B3sIIIIII", 0x20, (0x2A87CF).to_bytes(3, "little"),
        connection_id, 0, 0, last_ack_packet, 0, 0,
    )


def make_udp_heartbeat(tid: int, plaintext: bytes, checksum: int | None = None) -> bytes:
    """Class 0x3a datagram with an encrypted payload."""
    encrypted = udp_crypt(plaintext, tid)
    if checksum is None:
        checksum = udp_checksum(encrypted)
    return struct.pack(
        "<B3sIIII", 0x3A, (0x2A87CF).to_bytes(3, "little"),
        len(encrypted), 1, tid, checksum,
    ) + encrypted


def make_segment(
    payload: bytes,
    transport: str = "tcp",
    direction: str = C2D,
    timestamp: float = 1000.0,
    client_port: int = 54321,
    device_port: int = 9000,
) -> BCSegment:
    client, device = ("192.168.1.100", client_port), ("192.168.1.20", device_port)
    src, dst = (client, device) if direction == C2D else (device, client)
    return BCSegment(
        timestamp=timestamp,
        transport=transport,
        direction=direction,
        src_ip=src[0],
        dst_ip=dst[0],
        src_port=src[1],
        dst_port=dst[1],
        payload=payload,
    )
