"""
UDP Fragment Reassembler — rebuild Baichuan messages from class 0x10 datagrams.

Over UDP a message can span several datagrams that may arrive out of order.
Each datagram carries (connection_id, packet_count). Every fragment is
stored with the completeness of its own payload:

    seq:     10          11         12
    result:  NEED_MORE   NO_MAGIC   NO_MAGIC
             ^ start of a run       (continuation bytes, no header)

On each arrival we walk back from the new fragment over NO_MAGIC entries to
the start of its run, then concatenate consecutive fragments until the
start's shortfall is covered. A missing sequence number means "wait".

Class 0x3a datagrams are single-datagram, word-cipher encrypted XML;
class 0x20 datagrams are acknowledgements. Neither touches the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from baichuan.protocol.body import XmlSink, parse_xml
from baichuan.protocol.ciphers import udp_checksum, udp_crypt
from baichuan.protocol.errors import InsufficientData, NoMagic, UnknownUdpClass
from baichuan.protocol.framing import DONE, Completeness, Message, Status, check_complete, drive
from baichuan.protocol.udp import (
    UDP_CLASS_ACK, UDP_CLASS_DATA, UDP_CLASS_DISCOVERY,
    UdpHeader, decode_udp_datagram,
)

log = logging.getLogger(__name__)


@dataclass
class FragmentRecord:
    """One stored datagram payload."""
    payload: bytes
    completeness: Completeness
    message_id: int  # the datagram's packet_count


FragmentTable = dict[int, FragmentRecord]
EvictionPolicy = Callable[[FragmentTable], list[int]]


def bounded_window(size: int) -> EvictionPolicy:
    """Keep only the `size` highest sequence numbers of a connection."""
    def evict(table: FragmentTable) -> list[int]:
        if len(table) <= size:
            return []
        victims = sorted(table)[:len(table) - size]
        for seq in victims:
            del table[seq]
        return victims
    return evict


class FragmentStore:
    """connection_id -> packet_count -> FragmentRecord.

    Only the reassembler writes to it. Without an eviction policy entries
    live until close() is called for their connection.
    """

    def __init__(self, eviction: EvictionPolicy | None = None):
        self._connections: dict[int, FragmentTable] = {}
        self.eviction = eviction
        self.evicted = 0

    def get(self, connection_id: int, seq: int) -> FragmentRecord | None:
        table = self._connections.get(connection_id)
        if table is None:
            return None
        return table.get(seq)

    def put(self, connection_id: int, seq: int, record: FragmentRecord) -> None:
        table = self._connections.setdefault(connection_id, {})
        table[seq] = record
        if self.eviction is not None:
            victims = self.eviction(table)
            if victims:
                self.evicted += len(victims)
                log.debug("Connection %d: evicted %d fragment(s)", connection_id, len(victims))

    def close(self, connection_id: int) -> int:
        """Drop every fragment of a connection. Returns how many were dropped."""
        table = self._connections.pop(connection_id, None)
        if not table:
            return 0
        log.info("Connection %d closed, dropped %d fragment(s)", connection_id, len(table))
        return len(table)

    def connections(self) -> list[int]:
        return list(self._connections)

    def fragment_count(self, connection_id: int) -> int:
        return len(self._connections.get(connection_id, {}))

    def __len__(self) -> int:
        return sum(len(t) for t in self._connections.values())


@dataclass
class UdpRecord:
    """A decoded datagram as handed to presentation."""
    header: UdpHeader
    payload: bytes
    plaintext: bytes | None = None      # class 0x3a only
    checksum_ok: bool | None = None     # class 0x3a only
    document: Any = None                # XML sink result, class 0x3a only


MessageCallback = Callable[[int, Message], None]
RecordCallback = Callable[[UdpRecord], None]


class UdpReassembler:
    """Decode datagrams and reassemble class 0x10 fragments into messages."""

    def __init__(self, store: FragmentStore | None = None, xml_sink: XmlSink | None = parse_xml):
        self.store = store if store is not None else FragmentStore()
        self.xml_sink = xml_sink
        self.message_callbacks: list[MessageCallback] = []
        self.record_callbacks: list[RecordCallback] = []
        self.datagrams = 0
        self.dispatches = 0
        self.duplicates = 0
        self.ignored = 0

    def on_message(self, callback: MessageCallback) -> None:
        """Register callback for reassembled messages. Args: (connection_id, message)."""
        self.message_callbacks.append(callback)

    def on_record(self, callback: RecordCallback) -> None:
        """Register callback for every recognised datagram."""
        self.record_callbacks.append(callback)

    def feed(self, data: bytes) -> UdpRecord | None:
        """Process one datagram. Returns its record, or None if ignored."""
        self.datagrams += 1
        try:
            datagram = decode_udp_datagram(data)
        except UnknownUdpClass as e:
            log.warning("Ignoring datagram: %s", e)
            self.ignored += 1
            return None
        except NoMagic:
            log.debug("Ignoring non-Baichuan datagram (%d bytes)", len(data))
            self.ignored += 1
            return None
        except InsufficientData as e:
            log.warning("Ignoring truncated datagram: %s", e)
            self.ignored += 1
            return None

        header = datagram.header
        record = UdpRecord(header=header, payload=datagram.payload)

        if header.udp_class == UDP_CLASS_DISCOVERY:
            record.plaintext = udp_crypt(datagram.payload, header.tid)
            record.checksum_ok = udp_checksum(datagram.payload) == header.checksum
            if not record.checksum_ok:
                log.warning("Heartbeat tid=%d: checksum mismatch", header.tid)
            if self.xml_sink is not None:
                record.document = self.xml_sink(record.plaintext)
        elif header.udp_class == UDP_CLASS_ACK:
            log.debug("Ack connection=%d last=%d", header.connection_id, header.last_ack_packet)

        self._emit_record(record)

        if header.udp_class == UDP_CLASS_DATA:
            self._reassemble(header.connection_id, header.packet_count, datagram.payload)
        return record

    def _reassemble(self, connection_id: int, seq: int, payload: bytes) -> None:
        if self.store.get(connection_id, seq) is not None:
            # Retransmission of a fragment we already hold
            self.duplicates += 1
            log.debug("Connection %d: duplicate fragment %d ignored", connection_id, seq)
            return

        more = check_complete(payload)
        self.store.put(connection_id, seq, FragmentRecord(payload, more, seq))

        # Walk back to the start of this fragment's run (may be itself)
        start_idx = seq
        start = self.store.get(connection_id, start_idx)
        while start is not None and start.completeness.status is Status.NO_MAGIC:
            start_idx -= 1
            start = self.store.get(connection_id, start_idx)

        if start is None:
            return

        status = start.completeness.status
        if status is Status.DONE:
            if start.message_id == seq:
                self._dispatch(connection_id, start.payload)
            return

        if status is Status.NEED_ONE_MORE:
            # Not enough bytes in the start fragment to read a header
            log.debug("Connection %d: fragment %d too short for a header", connection_id, start_idx)
            return

        target_len = len(start.payload) + start.completeness.needed
        parts = [start.payload]
        total = len(start.payload)
        next_id = start.message_id + 1
        while total < target_len:
            fragment = self.store.get(connection_id, next_id)
            if fragment is None:
                log.debug(
                    "Connection %d: run from %d waiting for fragment %d (%d/%d bytes)",
                    connection_id, start.message_id, next_id, total, target_len,
                )
                return
            parts.append(fragment.payload)
            total += len(fragment.payload)
            next_id += 1

        start.completeness = DONE
        log.info(
            "Connection %d: reassembled fragments %d-%d (%d bytes)",
            connection_id, start.message_id, next_id - 1, total,
        )
        self._dispatch(connection_id, b"".join(parts))

    def _dispatch(self, connection_id: int, buf: bytes) -> None:
        self.dispatches += 1
        for message in drive(buf, self.xml_sink):
            for cb in self.message_callbacks:
                try:
                    cb(connection_id, message)
                except Exception as e:
                    log.error("UDP message callback error: %s", e)

    def _emit_record(self, record: UdpRecord) -> None:
        for cb in self.record_callbacks:
            try:
                cb(record)
            except Exception as e:
                log.error("UDP record callback error: %s", e)

    def stats(self) -> dict:
        return {
            "datagrams": self.datagrams,
            "dispatches": self.dispatches,
            "duplicates": self.duplicates,
            "ignored": self.ignored,
            "stored_fragments": len(self.store),
            "evicted": self.store.evicted,
        }
