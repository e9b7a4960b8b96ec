"""
Baichuan capture and reassembly.

    capture.py    — BCSegment, SnifferConfig, scapy live/pcap capture, CLI
    stream.py     — TCP stream reassembler
    fragments.py  — UDP fragment store + reassembler
    router.py     — per-flow routing
"""

from .capture import BCSegment, BaichuanSniffer, SnifferConfig, read_pcap
from .stream import TCPStreamReassembler, StreamBuffer
from .fragments import FragmentRecord, FragmentStore, UdpReassembler, UdpRecord, bounded_window
from .router import Flow, FlowRouter

__all__ = [
    "BCSegment", "BaichuanSniffer", "SnifferConfig", "read_pcap",
    "TCPStreamReassembler", "StreamBuffer",
    "FragmentRecord", "FragmentStore", "UdpReassembler", "UdpRecord", "bounded_window",
    "Flow", "FlowRouter",
]
