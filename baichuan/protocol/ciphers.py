"""
Baichuan payload ciphers.

Two independent XOR stream ciphers, both self-inverse (the same call
encrypts and decrypts) and length-preserving:

- xml_crypt: byte-oriented, keyed by the per-message offset byte
  (the header's channel id). Used for XML meta/main payloads.
- udp_crypt: word-oriented, keyed by the datagram transaction id.
  Used for class 0x3a UDP datagrams (discovery/heartbeat XML).

Also holds the checksum carried by class 0x3a datagrams.
"""

from __future__ import annotations

XML_KEY = (0x1F, 0x2D, 0x3C, 0x4B, 0x5A, 0x69, 0x78, 0xFF)

UDP_KEY = (
    0x1F2D3C4B, 0x5A6C7F8D,
    0x38172E4B, 0x8271635A,
    0x863F1A2B, 0xA5C6F7D8,
    0x8371E1B4, 0x17F2D3A5,
)

XML_PREFIX = b"<?xml"


def xml_crypt(data: bytes, offset: int) -> bytes:
    """XOR `data` against the 8-byte XML key, rotated and salted by `offset`."""
    salt = offset & 0xFF
    return bytes(
        b ^ XML_KEY[(i + offset) % 8] ^ salt
        for i, b in enumerate(data)
    )


def udp_crypt(data: bytes, tid: int) -> bytes:
    """XOR `data` against the UDP word key, each word shifted by `tid`.

    Data is walked in little-endian 4-byte words; word n uses key word
    n % 8. A trailing partial word is handled byte by byte, so the output
    always has exactly len(data) bytes.
    """
    key = [(word + tid) & 0xFFFFFFFF for word in UDP_KEY]
    result = bytearray(len(data))
    for x in range((len(data) + 3) // 4):
        key_word = key[x & 7]
        for b in range(4):
            byte_index = x * 4 + b
            if byte_index >= len(data):
                break
            result[byte_index] = data[byte_index] ^ ((key_word >> (b * 8)) & 0xFF)
    return bytes(result)


def _crc_table() -> tuple[int, ...]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ 0xEDB88320 if c & 1 else c >> 1
        table.append(c)
    return tuple(table)


CRC_TABLE = _crc_table()


def udp_checksum(data: bytes) -> int:
    """Checksum of a class 0x3a payload: reflected CRC-32, zero seed, no final XOR."""
    r = 0
    for b in data:
        r = CRC_TABLE[(b ^ r) & 0xFF] ^ (r >> 8)
    return r


def is_encrypted_xml(data: bytes, offset: int) -> bool:
    """True if the first five bytes decrypt to the XML declaration prefix."""
    return len(data) >= len(XML_PREFIX) and xml_crypt(data[:len(XML_PREFIX)], offset) == XML_PREFIX


def is_plain_xml(data: bytes) -> bool:
    return data[:len(XML_PREFIX)] == XML_PREFIX
