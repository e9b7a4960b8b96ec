"""Shared fixtures for Baichuan tests."""

import pytest

from bc_builders import make_encrypted_xml_message, make_message, make_segment
from baichuan.protocol.message_types import MSG_ID_LOGIN, MSG_ID_PING
from baichuan.sniffer.capture import BCSegment, C2D, D2C


@pytest.fixture
def legacy_login() -> bytes:
    """Legacy login: md5 username/password fields, then zero padding."""
    username = b"21232F297A57A5A743894A0E4A801FC\x00"
    password = b"\x00" * 32
    body = username + password + b"\x00" * 1772
    return make_message(body, message_type=MSG_ID_LOGIN, class_tag=0x6514, handle=1, encrypt_xml=1)


@pytest.fixture
def modern_nonce() -> bytes:
    """Modern 0x6614 login reply carrying an encrypted nonce document."""
    return make_encrypted_xml_message(channel_id=0, message_type=1, class_tag=0x6614)


@pytest.fixture
def ping() -> bytes:
    return make_message(b"", message_type=MSG_ID_PING, class_tag=0x6414)


@pytest.fixture
def sample_c2d_segment() -> BCSegment:
    """A sample client→device segment."""
    return make_segment(b"\xf0\xde\xbc\x0aHello\x00\x00\x00", direction=C2D)


@pytest.fixture
def sample_d2c_segment() -> BCSegment:
    """A sample device→client segment."""
    return make_segment(b"\x01\x02\x03\x04", direction=D2C, timestamp=1000.5)
