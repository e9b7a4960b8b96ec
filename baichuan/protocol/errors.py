"""
Protocol errors raised by the Baichuan decoders.

Only length-dependent decoders raise. The completeness check and the
message driver report their outcome as return values instead.
"""

from __future__ import annotations


class BaichuanError(Exception):
    """Base class for all Baichuan decoding errors."""


class NoMagic(BaichuanError):
    """No protocol magic at the examined offset. Not recoverable at this offset."""

    def __init__(self, found: int | None = None):
        self.found = found
        if found is None:
            super().__init__("no Baichuan magic")
        else:
            super().__init__(f"no Baichuan magic (found 0x{found:08x})")


class InsufficientData(BaichuanError):
    """Buffer ends before the structure being decoded. Retry with more bytes."""

    def __init__(self, needed: int, what: str = "data"):
        self.needed = needed
        super().__init__(f"{what}: {needed} more byte(s) required")


class UnknownUdpClass(BaichuanError):
    """Datagram class byte is not one of the known UDP classes."""

    def __init__(self, udp_class: int):
        self.udp_class = udp_class
        super().__init__(f"unknown UDP class 0x{udp_class:02x}")
