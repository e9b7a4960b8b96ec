"""
Baichuan capture — segments and datagrams off the wire or out of a pcap.

Captures TCP/UDP traffic to/from Baichuan cameras using scapy and turns it
into BCSegment records for the reassemblers. Live capture needs
libpcap/Npcap and capture privileges; pcap replay does not.

Usage:
    python -m baichuan.sniffer.capture --pcap capture.pcapng
    python -m baichuan.sniffer.capture --iface eth0 --camera 192.168.1.20 -v
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Callable, Iterator

from scapy.all import IP, TCP, UDP, sniff
from scapy.utils import PcapReader

from baichuan.protocol.body import LegacyCredentials, ModernPayload, SectionKind

log = logging.getLogger(__name__)

# Well-known Baichuan ports
DEFAULT_TCP_PORTS = [9000, 52941]
DEFAULT_UDP_PORTS = [2015, 9999, 13154, 23534, 28100, 29237, 39654]

C2D = "C2D"  # client → device (camera/NVR)
D2C = "D2C"  # device → client


@dataclass
class SnifferConfig:
    """Capture configuration. Defaults cover the well-known ports."""
    tcp_ports: list[int] = field(default_factory=lambda: list(DEFAULT_TCP_PORTS))
    udp_ports: list[int] = field(default_factory=lambda: list(DEFAULT_UDP_PORTS))
    # Device addresses; empty = decide direction by port only
    camera_ips: list[str] = field(default_factory=list)
    iface: str | None = None
    # Fragments kept per UDP connection (None = unbounded)
    udp_fragment_window: int | None = 1024
    # Flows idle for this long are pruned (seconds)
    stale_timeout: float = 300.0

    @property
    def bpf_filter(self) -> str:
        """Build BPF filter string for Baichuan traffic."""
        parts = []
        if self.tcp_ports:
            ports = " or ".join(f"port {p}" for p in self.tcp_ports)
            parts.append(f"(tcp and ({ports}))")
        if self.udp_ports:
            ports = " or ".join(f"port {p}" for p in self.udp_ports)
            parts.append(f"(udp and ({ports}))")
        bpf = " or ".join(parts)
        if self.camera_ips:
            hosts = " or ".join(f"host {ip}" for ip in self.camera_ips)
            bpf = f"({bpf}) and ({hosts})"
        return bpf

    @classmethod
    def from_dict(cls, data: dict) -> SnifferConfig:
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                log.warning("Ignoring unknown config key %r", key)
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_file(cls, path: str | Path) -> SnifferConfig:
        """Load settings from a JSON file."""
        return cls.from_dict(json.loads(Path(path).read_text()))


@dataclass
class BCSegment:
    """One TCP segment or UDP datagram payload with metadata."""
    timestamp: float
    transport: str          # "tcp" or "udp"
    direction: str          # C2D or D2C
    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def hex_dump(self) -> str:
        return self.payload.hex()

    @property
    def pretty_hex(self) -> str:
        return pretty_hex(self.payload)

    @property
    def client(self) -> str:
        if self.direction == C2D:
            return f"{self.src_ip}:{self.src_port}"
        return f"{self.dst_ip}:{self.dst_port}"

    @property
    def device(self) -> str:
        if self.direction == C2D:
            return f"{self.dst_ip}:{self.dst_port}"
        return f"{self.src_ip}:{self.src_port}"

    @property
    def flow_key(self) -> str:
        """Same key for both directions of one connection."""
        return f"{self.transport}:{self.client}-{self.device}"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "transport": self.transport,
            "direction": self.direction,
            "src": f"{self.src_ip}:{self.src_port}",
            "dst": f"{self.dst_ip}:{self.dst_port}",
            "size": self.size,
            "payload_hex": self.hex_dump,
        }

    def __repr__(self) -> str:
        arrow = "→" if self.direction == C2D else "←"
        return (
            f"[{self.transport.upper()} {self.direction}] {self.src_ip}:{self.src_port} "
            f"{arrow} {self.dst_ip}:{self.dst_port} "
            f"({self.size} bytes)"
        )


def pretty_hex(data: bytes) -> str:
    """16-byte wide hex dump with ASCII."""
    lines = []
    for i in range(0, len(data), 16):
        chunk = data[i:i+16]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"  {i:04x}  {hex_part:<48s}  {ascii_part}")
    return "\n".join(lines)


def infer_direction(
    config: SnifferConfig,
    transport: str,
    src_ip: str,
    dst_ip: str,
    sport: int,
    dport: int,
) -> str | None:
    """C2D/D2C, or None if neither side looks like a Baichuan device."""
    if config.camera_ips:
        if dst_ip in config.camera_ips:
            return C2D
        if src_ip in config.camera_ips:
            return D2C
        return None
    ports = config.tcp_ports if transport == "tcp" else config.udp_ports
    if dport in ports:
        return C2D
    if sport in ports:
        return D2C
    return None


def segment_from_packet(raw_pkt, config: SnifferConfig) -> BCSegment | None:
    """Convert a scapy packet to a BCSegment, or None if it is not ours."""
    if not raw_pkt.haslayer(IP):
        return None
    ip_layer = raw_pkt[IP]

    if raw_pkt.haslayer(TCP):
        transport, layer = "tcp", raw_pkt[TCP]
    elif raw_pkt.haslayer(UDP):
        transport, layer = "udp", raw_pkt[UDP]
    else:
        return None

    # Only care about packets with payload
    payload = bytes(layer.payload)
    if not payload:
        return None

    direction = infer_direction(
        config, transport, ip_layer.src, ip_layer.dst, layer.sport, layer.dport,
    )
    if direction is None:
        return None

    return BCSegment(
        timestamp=float(getattr(raw_pkt, "time", time.time())),
        transport=transport,
        direction=direction,
        src_ip=ip_layer.src,
        dst_ip=ip_layer.dst,
        src_port=layer.sport,
        dst_port=layer.dport,
        payload=payload,
    )


def read_pcap(path: str | Path, config: SnifferConfig | None = None) -> Iterator[BCSegment]:
    """Yield the Baichuan segments of a pcap/pcapng file in capture order."""
    config = config or SnifferConfig()
    with PcapReader(str(path)) as reader:
        for raw_pkt in reader:
            seg = segment_from_packet(raw_pkt, config)
            if seg is not None:
                yield seg


class BaichuanSniffer:
    """Capture and filter Baichuan network traffic."""

    def __init__(self, config: SnifferConfig | None = None):
        self.config = config or SnifferConfig()
        self.callbacks: list[Callable[[BCSegment], None]] = []
        self._running = False

    @property
    def bpf_filter(self) -> str:
        return self.config.bpf_filter

    def on_segment(self, callback: Callable[[BCSegment], None]) -> None:
        """Register a callback for each captured segment."""
        self.callbacks.append(callback)

    def _process_packet(self, raw_pkt) -> None:
        """Convert scapy packet to BCSegment and dispatch."""
        seg = segment_from_packet(raw_pkt, self.config)
        if seg is None:
            return
        for cb in self.callbacks:
            try:
                cb(seg)
            except Exception as e:
                log.error("Callback error: %s", e)

    def start(self, count: int = 0, timeout: int | None = None) -> None:
        """Start capturing. count=0 means infinite. Blocks until done."""
        log.info("Filter: %s", self.bpf_filter)
        log.info("Interface: %s", self.config.iface or "auto")

        self._running = True
        try:
            sniff(
                filter=self.bpf_filter,
                prn=self._process_packet,
                iface=self.config.iface,
                count=count,
                timeout=timeout,
                store=False,
            )
        except KeyboardInterrupt:
            log.info("Stopped by user")
        finally:
            self._running = False

    def capture_segments(self, count: int = 0, timeout: int = 60) -> list[BCSegment]:
        """Capture and return segments as a list."""
        segments: list[BCSegment] = []
        self.on_segment(segments.append)
        self.start(count=count, timeout=timeout)
        self.callbacks.remove(segments.append)
        return segments


# --- CLI entry point ---

def _print_message(flow, direction: str, message) -> None:
    """Default callback: one summary line per message, hex for binary sections."""
    ts = time.strftime("%H:%M:%S", time.localtime(flow.last_seen))
    ms = int((flow.last_seen % 1) * 1000)
    header = message.header
    print(
        f"[{ts}.{ms:03d}] {flow.key} {direction} "
        f"type={header.message_type} ({header.type_label}) "
        f"len={header.message_len} class=0x{header.class_tag:04x} ch={header.channel_id}"
    )
    body = message.body
    if isinstance(body, LegacyCredentials):
        print(f"  username={body.username_text!r} password={body.password_text!r}")
    elif isinstance(body, ModernPayload):
        for name, section in (("meta", body.meta), ("main", body.binary)):
            if section is None or section.kind is SectionKind.EMPTY:
                continue
            print(f"  {name}: {section.kind.value}, {section.size} bytes")
            if section.is_xml:
                print("    " + section.data.decode("utf-8", errors="replace").strip().replace("\n", "\n    "))
            else:
                lines = pretty_hex(section.data[:64]).split("\n")
                for line in lines:
                    print(line)
                if section.size > 64:
                    print(f"  ... ({section.size} bytes total) ...")
    print()


def _print_udp(flow, record) -> None:
    header = record.header
    print(f"[UDP {header.class_name}] {flow.key} {header.to_dict()}")
    if record.plaintext is not None:
        status = "ok" if record.checksum_ok else "BAD"
        print(f"  checksum {status}")
        print("    " + record.plaintext.decode("utf-8", errors="replace").strip().replace("\n", "\n    "))
    print()


def main() -> None:
    import argparse

    from baichuan.sniffer.router import FlowRouter

    parser = argparse.ArgumentParser(description="Baichuan protocol sniffer")
    parser.add_argument("--pcap", help="Read segments from a pcap/pcapng file instead of sniffing")
    parser.add_argument("--iface", help="Network interface to sniff on")
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument("--camera", action="append", default=[],
                        help="Camera/NVR IP address (repeatable)")
    parser.add_argument("--timeout", type=int, default=0,
                        help="Capture timeout in seconds (0=infinite)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = SnifferConfig.from_file(args.config) if args.config else SnifferConfig()
    if args.iface:
        config.iface = args.iface
    if args.camera:
        config.camera_ips = args.camera

    router = FlowRouter(config)
    router.on_message(_print_message)
    router.on_udp_record(_print_udp)

    if args.pcap:
        count = 0
        for seg in read_pcap(args.pcap, config):
            router.process_segment(seg)
            count += 1
        log.info("Replayed %d segments from %s", count, args.pcap)
    else:
        sniffer = BaichuanSniffer(config)
        sniffer.on_segment(router.process_segment)
        sniffer.start(timeout=args.timeout or None)

    for line in router.summary():
        log.info(line)


if __name__ == "__main__":
    main()
