"""Tests for UDP fragment storage and reassembly."""

import pytest

from bc_builders import (
    XML_DOC, make_encrypted_xml_message,
    make_udp_ack, make_udp_data, make_udp_heartbeat,
)
from baichuan.protocol.framing import DONE, Status
from baichuan.sniffer.fragments import (
    FragmentRecord, FragmentStore, UdpReassembler, bounded_window,
)


def _message() -> bytes:
    msg = make_encrypted_xml_message(channel_id=0, message_type=1, class_tag=0x6414)
    assert len(msg) == 169
    return msg


def _fragments(msg: bytes) -> dict[int, bytes]:
    """Split into three datagram payloads, each long enough to classify."""
    return {10: msg[:60], 11: msg[60:110], 12: msg[110:]}


def _make_reassembler(**kwargs) -> tuple[UdpReassembler, list]:
    r = UdpReassembler(**kwargs)
    results = []
    r.on_message(lambda conn, message: results.append((conn, message)))
    return r, results


class TestReassembly:

    @pytest.mark.parametrize("order", [
        (10, 11, 12),
        (12, 11, 10),
        (10, 12, 11),
        (11, 10, 12),
    ])
    def test_three_fragments_any_order(self, order):
        r, results = _make_reassembler()
        frags = _fragments(_message())
        for i, seq in enumerate(order):
            r.feed(make_udp_data(7, seq, frags[seq]))
            if i < 2:
                assert results == []
        assert len(results) == 1
        conn, message = results[0]
        assert conn == 7
        assert message.header.message_type == 1
        assert message.body.meta.data == XML_DOC
        assert r.dispatches == 1

    def test_start_fragment_classification(self):
        r, _ = _make_reassembler()
        frags = _fragments(_message())
        for seq in (10, 11, 12):
            r.feed(make_udp_data(7, seq, frags[seq]))
        assert r.store.get(7, 10).completeness == DONE
        assert r.store.get(7, 11).completeness.status is Status.NO_MAGIC
        assert r.store.get(7, 12).completeness.status is Status.NO_MAGIC

    def test_start_records_needed_bytes(self):
        r, _ = _make_reassembler()
        r.feed(make_udp_data(7, 10, _message()[:60]))
        record = r.store.get(7, 10)
        assert record.completeness.status is Status.NEED_MORE
        assert record.completeness.needed == 109
        assert record.message_id == 10

    def test_duplicate_start_not_redispatched(self):
        r, results = _make_reassembler()
        frags = _fragments(_message())
        for seq in (10, 11, 12):
            r.feed(make_udp_data(7, seq, frags[seq]))
        r.feed(make_udp_data(7, 10, frags[10]))
        r.feed(make_udp_data(7, 12, frags[12]))
        assert len(results) == 1
        assert r.duplicates == 2

    def test_missing_fragment_waits(self):
        r, results = _make_reassembler()
        frags = _fragments(_message())
        r.feed(make_udp_data(7, 10, frags[10]))
        r.feed(make_udp_data(7, 12, frags[12]))
        assert results == []
        assert r.store.fragment_count(7) == 2

    def test_orphan_continuation_waits(self):
        r, results = _make_reassembler()
        r.feed(make_udp_data(7, 11, _fragments(_message())[11]))
        assert results == []
        assert r.store.get(7, 11).completeness.status is Status.NO_MAGIC

    def test_single_datagram_message(self, ping):
        r, results = _make_reassembler()
        r.feed(make_udp_data(7, 1, ping))
        assert len(results) == 1
        assert results[0][1].header.message_type == 93

    def test_single_datagram_duplicate_not_redispatched(self, ping):
        r, results = _make_reassembler()
        r.feed(make_udp_data(7, 1, ping))
        r.feed(make_udp_data(7, 1, ping))
        assert len(results) == 1

    def test_two_messages_in_one_datagram(self, ping, modern_nonce):
        r, results = _make_reassembler()
        r.feed(make_udp_data(7, 1, ping + modern_nonce))
        assert [m.header.message_type for _, m in results] == [93, 1]

    def test_message_after_reassembled_run(self, ping):
        r, results = _make_reassembler()
        frags = _fragments(_message())
        for seq in (10, 11, 12):
            r.feed(make_udp_data(7, seq, frags[seq]))
        r.feed(make_udp_data(7, 13, ping))
        assert len(results) == 2
        assert results[1][1].header.message_type == 93

    def test_late_continuation_does_not_redispatch_done_run(self):
        r, results = _make_reassembler()
        msg = _message()
        r.feed(make_udp_data(7, 10, msg[:60]))
        r.feed(make_udp_data(7, 11, msg[60:]))
        assert len(results) == 1
        # Stray continuation bytes after the run finished
        r.feed(make_udp_data(7, 12, b"\x55" * 30))
        assert len(results) == 1

    def test_connections_are_independent(self):
        r, results = _make_reassembler()
        frags = _fragments(_message())
        r.feed(make_udp_data(7, 10, frags[10]))
        r.feed(make_udp_data(8, 11, frags[11]))
        r.feed(make_udp_data(8, 12, frags[12]))
        assert results == []
        r.feed(make_udp_data(7, 11, frags[11]))
        r.feed(make_udp_data(7, 12, frags[12]))
        assert [conn for conn, _ in results] == [7]

    def test_short_start_fragment_is_ignored(self):
        r, results = _make_reassembler()
        r.feed(make_udp_data(7, 1, _message()[:10]))
        assert results == []
        assert r.store.get(7, 1).completeness.status is Status.NEED_ONE_MORE

    def test_message_callback_error_does_not_stop_others(self, ping):
        r, results = _make_reassembler()
        r.on_message(lambda conn, m: 1 / 0)
        r.on_message(lambda conn, m: results.append(("second", m)))
        r.feed(make_udp_data(7, 1, ping))
        assert len(results) == 2


class TestDatagramClasses:

    def test_unknown_class_ignored(self):
        r, results = _make_reassembler()
        buf = bytearray(make_udp_data(7, 1, b"\x00" * 24))
        buf[0] = 0x99
        assert r.feed(bytes(buf)) is None
        assert len(r.store) == 0
        assert r.store.connections() == []
        assert r.ignored == 1
        assert results == []

    def test_non_baichuan_datagram_ignored(self):
        r, _ = _make_reassembler()
        assert r.feed(b"\x10\x00\x00\x00" + b"\x00" * 16) is None
        assert r.ignored == 1

    def test_truncated_datagram_ignored(self):
        r, _ = _make_reassembler()
        assert r.feed(make_udp_data(7, 1, b"\x00" * 30)[:25]) is None
        assert len(r.store) == 0

    def test_heartbeat_decrypted(self):
        r, results = _make_reassembler()
        records = []
        r.on_record(records.append)
        plaintext = b"<P2P>\n<C2D_C>\n<uid>95270000ABCDEFGH</uid>\n</C2D_C>\n</P2P>\n"
        record = r.feed(make_udp_heartbeat(1234, plaintext))
        assert record.plaintext == plaintext
        assert record.checksum_ok is True
        assert record.document.find("C2D_C/uid").text == "95270000ABCDEFGH"
        assert records == [record]
        assert results == []
        assert len(r.store) == 0

    def test_heartbeat_bad_checksum_reported(self):
        r, _ = _make_reassembler()
        record = r.feed(make_udp_heartbeat(5, b"<P2P/>", checksum=1))
        assert record.checksum_ok is False
        assert record.plaintext == b"<P2P/>"

    def test_ack_record(self):
        r, results = _make_reassembler()
        record = r.feed(make_udp_ack(7, 41))
        assert record.header.last_ack_packet == 41
        assert record.plaintext is None
        assert len(r.store) == 0
        assert results == []

    def test_stats(self, ping):
        r, _ = _make_reassembler()
        r.feed(make_udp_data(7, 1, ping))
        r.feed(make_udp_ack(7, 1))
        stats = r.stats()
        assert stats["datagrams"] == 2
        assert stats["dispatches"] == 1
        assert stats["stored_fragments"] == 1


class TestFragmentStore:

    def _record(self, seq: int) -> FragmentRecord:
        return FragmentRecord(b"x", DONE, seq)

    def test_get_missing(self):
        store = FragmentStore()
        assert store.get(1, 1) is None
        store.put(1, 1, self._record(1))
        assert store.get(1, 2) is None
        assert store.get(2, 1) is None

    def test_unbounded_by_default(self):
        store = FragmentStore()
        for seq in range(500):
            store.put(1, seq, self._record(seq))
        assert len(store) == 500

    def test_bounded_window_keeps_newest(self):
        store = FragmentStore(eviction=bounded_window(3))
        for seq in range(5):
            store.put(1, seq, self._record(seq))
        assert store.fragment_count(1) == 3
        assert store.get(1, 0) is None
        assert store.get(1, 1) is None
        assert store.get(1, 4) is not None
        assert store.evicted == 2

    def test_window_is_per_connection(self):
        store = FragmentStore(eviction=bounded_window(2))
        for seq in range(2):
            store.put(1, seq, self._record(seq))
            store.put(2, seq, self._record(seq))
        assert len(store) == 4

    def test_close_connection(self):
        store = FragmentStore()
        store.put(1, 1, self._record(1))
        store.put(1, 2, self._record(2))
        store.put(2, 1, self._record(1))
        assert store.close(1) == 2
        assert store.close(1) == 0
        assert store.connections() == [2]

    def test_reassembly_survives_window(self):
        r, results = _make_reassembler(store=FragmentStore(eviction=bounded_window(3)))
        frags = _fragments(_message())
        for seq in (10, 11, 12):
            r.feed(make_udp_data(7, seq, frags[seq]))
        assert len(results) == 1
