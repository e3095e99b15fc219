"""Unit tests for relaychat/common/messages.py"""

import pytest

from relaychat.common.messages import (
    BROADCAST_NAME, ErrorReason, ErrorResponse, Message, MessageResponse, OkResponse,
    Send, SendAll, SignIn, SignOut, Transport, valid_name,
)


def test_send_becomes_direct_message() -> None:
    request = Send("bob", "hi", Transport.DATAGRAM)
    message = request.to_message("alice")
    assert message == Message("hi", "alice", "bob", Transport.DATAGRAM)
    assert not message.is_broadcast()


def test_send_all_becomes_broadcast() -> None:
    message = SendAll("hey").to_message("alice")
    assert message.receiver == BROADCAST_NAME
    assert message.transport is Transport.STREAM
    assert message.is_broadcast()


def test_sign_in_and_sign_out_carry_no_message() -> None:
    assert SignIn("alice", ("127.0.0.1", 4000)).to_message("alice") is None
    assert SignOut().to_message("alice") is None


def test_send_to_all_literal_is_a_broadcast() -> None:
    """The sentinel is recognised on the Message, whatever request produced it."""
    assert Send(BROADCAST_NAME, "x").to_message("alice").is_broadcast()


def test_message_display() -> None:
    assert str(Message("hi", "alice", "bob")) == "[alice]: hi"
    assert str(Message("hey", "alice", BROADCAST_NAME)) == "(all) [alice]: hey"


def test_response_display() -> None:
    assert str(OkResponse(("127.0.0.1", 9000))) == "[server] Logged in; server datagram: 127.0.0.1:9000"
    assert str(ErrorResponse(ErrorReason.NAME_TAKEN)) == "[server] Error: NameTaken"
    assert str(MessageResponse(Message("hi", "alice", "bob"))) == "[alice]: hi"


def test_response_transport_follows_embedded_message() -> None:
    udp = MessageResponse(Message("hi", "alice", "bob", Transport.DATAGRAM))
    assert udp.transport is Transport.DATAGRAM
    assert OkResponse(("127.0.0.1", 1)).transport is None
    assert ErrorResponse(ErrorReason.USER_NOT_FOUND).transport is None


@pytest.mark.parametrize(
    "name, expected",
    [
        ("alice", True), ("", False), ("   ", False), ("all", False), ("server", False), ("All", True),
        (" all ", False), ("server\n", False), (" alice", False), ("alice bob", True),
    ],
)
def test_valid_name(name: str, expected: bool) -> None:
    assert valid_name(name) is expected
