"""
Baichuan — decoder for the Baichuan/Reolink IP camera protocol.

Components:
    protocol/  — ciphers, header/body codecs, framing, UDP headers
    sniffer/   — capture, TCP/UDP reassembly, flow routing
"""

__version__ = "0.1.0"
