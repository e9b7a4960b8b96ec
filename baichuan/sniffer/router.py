"""
Baichuan Flow Router

Routes captured segments to per-flow reassemblers and fans decoded
messages out to subscribers.

Architecture:
  BaichuanSniffer / read_pcap → FlowRouter ─ tcp → per-flow TCPStreamReassembler ─┐
                                           └ udp → shared UdpReassembler ─────────┴→ callbacks

A flow is one client endpoint talking to one device endpoint, keyed the
same for both directions. UDP connection ids seen on a flow are released
from the fragment store when the flow is pruned.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from baichuan.protocol.body import XmlSink, parse_xml
from baichuan.protocol.framing import Message

from .capture import BCSegment, SnifferConfig
from .fragments import FragmentStore, UdpReassembler, UdpRecord, bounded_window
from .stream import TCPStreamReassembler

log = logging.getLogger(__name__)


@dataclass
class Flow:
    """One client↔device conversation."""
    key: str
    transport: str
    client: str
    device: str
    first_seen: float
    last_seen: float = 0.0
    segments: int = 0
    messages: int = 0
    reassembler: TCPStreamReassembler | None = None  # tcp only
    connection_ids: set[int] = field(default_factory=set)  # udp only

    def is_stale(self, timeout: float, now: float | None = None) -> bool:
        """Check if flow hasn't been seen within timeout seconds."""
        now = now or time.time()
        return (now - self.last_seen) > timeout


FlowCallback = Callable[[Flow], None]
MessageCallback = Callable[[Flow, str, Message], None]
RecordCallback = Callable[[Flow, UdpRecord], None]


class FlowRouter:
    """Routes segments to per-flow reassemblers.

    TCP flows each get their own reassembler. UDP datagrams share one
    UdpReassembler (fragments are keyed by connection id, not endpoint).
    """

    def __init__(self, config: SnifferConfig | None = None, xml_sink: XmlSink | None = parse_xml):
        self.config = config or SnifferConfig()
        self.xml_sink = xml_sink
        self.flows: dict[str, Flow] = {}
        self._message_callbacks: list[MessageCallback] = []
        self._record_callbacks: list[RecordCallback] = []
        self._flow_callbacks: list[FlowCallback] = []

        window = self.config.udp_fragment_window
        store = FragmentStore(eviction=bounded_window(window) if window else None)
        self.udp = UdpReassembler(store, xml_sink=xml_sink)
        # Reassembler output within a single process_segment call
        self._pending: list[Message] = []
        self.udp.on_message(lambda conn_id, msg: self._pending.append(msg))

    def on_message(self, callback: MessageCallback) -> None:
        """Subscribe to decoded messages. Args: (flow, direction, message)."""
        self._message_callbacks.append(callback)

    def on_udp_record(self, callback: RecordCallback) -> None:
        """Subscribe to decoded UDP datagram headers. Args: (flow, record)."""
        self._record_callbacks.append(callback)

    def on_flow_discovered(self, callback: FlowCallback) -> None:
        """Subscribe to new flow events."""
        self._flow_callbacks.append(callback)

    def process_segment(self, seg: BCSegment) -> list[Message]:
        """Route one segment. Returns the messages it completed."""
        flow = self.flows.get(seg.flow_key)
        if flow is None:
            flow = self._create_flow(seg)
        flow.last_seen = seg.timestamp
        flow.segments += 1

        if seg.transport == "tcp":
            messages = flow.reassembler.feed(seg)
        else:
            messages = self._process_udp(flow, seg)

        flow.messages += len(messages)
        for message in messages:
            for cb in self._message_callbacks:
                try:
                    cb(flow, seg.direction, message)
                except Exception as e:
                    log.error("Message callback error: %s", e)
        return messages

    def _process_udp(self, flow: Flow, seg: BCSegment) -> list[Message]:
        self._pending.clear()
        record = self.udp.feed(seg.payload)
        if record is None:
            return []
        if record.header.connection_id is not None:
            flow.connection_ids.add(record.header.connection_id)
        for cb in self._record_callbacks:
            try:
                cb(flow, record)
            except Exception as e:
                log.error("UDP record callback error: %s", e)
        messages = list(self._pending)
        self._pending.clear()
        return messages

    def _create_flow(self, seg: BCSegment) -> Flow:
        flow = Flow(
            key=seg.flow_key,
            transport=seg.transport,
            client=seg.client,
            device=seg.device,
            first_seen=seg.timestamp,
            last_seen=seg.timestamp,
        )
        if seg.transport == "tcp":
            flow.reassembler = TCPStreamReassembler(xml_sink=self.xml_sink)
        self.flows[flow.key] = flow
        log.info("New %s flow %s", seg.transport.upper(), flow.key)

        for cb in self._flow_callbacks:
            try:
                cb(flow)
            except Exception as e:
                log.error("Flow callback error: %s", e)
        return flow

    def get_active_flows(self) -> list[Flow]:
        """List flows sorted by last_seen (most recent first)."""
        return sorted(self.flows.values(), key=lambda f: f.last_seen, reverse=True)

    def prune_stale(self, timeout: float | None = None, now: float | None = None) -> list[Flow]:
        """Remove flows not seen within timeout seconds.

        UDP connection ids owned by a pruned flow are closed in the
        fragment store. Returns the pruned flows.
        """
        timeout = timeout if timeout is not None else self.config.stale_timeout
        now = now or time.time()
        pruned: list[Flow] = []

        stale_keys = [key for key, flow in self.flows.items() if flow.is_stale(timeout, now)]
        for key in stale_keys:
            flow = self.flows.pop(key)
            for conn_id in flow.connection_ids:
                self.udp.store.close(conn_id)
            pruned.append(flow)
            log.info("Pruned stale flow %s", key)
        return pruned

    def summary(self) -> list[str]:
        lines = [f"Flows: {len(self.flows)}"]
        for flow in self.get_active_flows():
            lines.append(
                f"  {flow.key}: {flow.segments} segments, {flow.messages} messages"
            )
        udp = self.udp.stats()
        if udp["datagrams"]:
            lines.append(
                f"  UDP: {udp['datagrams']} datagrams, {udp['dispatches']} reassembled, "
                f"{udp['duplicates']} duplicates, {udp['ignored']} ignored"
            )
        return lines
