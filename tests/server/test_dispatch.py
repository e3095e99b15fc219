"""Unit tests for the per-request helpers of relaychat/server/main.py (no acceptor involved)"""

import asyncio
import socket

from relaychat.common.channel import Channel
from relaychat.common.messages import (
    ErrorReason, ErrorResponse, Message, MessageResponse, Send, SendAll, SignIn, Transport,
)
from relaychat.server.main import deliver, dispatch
from relaychat.server.state import Peer, Registry

ALICE = ("127.0.0.1", 50001)
BOB = ("127.0.0.1", 50002)


def add(registry: Registry, name: str, address) -> Peer:
    return registry.add(name, address, None, None, None)


def test_direct_message_lands_in_receiver_queue(registry: Registry) -> None:
    alice, bob = add(registry, "alice", ALICE), add(registry, "bob", BOB)
    dispatch(registry, alice, Send("bob", "hi", Transport.DATAGRAM))
    assert bob.inbox.try_recv() == MessageResponse(Message("hi", "alice", "bob", Transport.DATAGRAM))
    assert len(alice.inbox) == 0


def test_message_to_departed_peer_is_dropped_silently(registry: Registry) -> None:
    """bob's session is tearing down: his queue is closed but he is still registered."""
    alice, bob = add(registry, "alice", ALICE), add(registry, "bob", BOB)
    bob.inbox.close()
    dispatch(registry, alice, Send("bob", "too late"))
    assert len(alice.inbox) == 0
    assert registry.users() == ["alice", "bob"]


def test_unknown_receiver_bounces_error_to_sender(registry: Registry) -> None:
    alice = add(registry, "alice", ALICE)
    dispatch(registry, alice, Send("carol", "anyone?"))
    assert alice.inbox.try_recv() == ErrorResponse(ErrorReason.USER_NOT_FOUND)


def test_broadcast_skips_departed_peer(registry: Registry) -> None:
    alice, bob = add(registry, "alice", ALICE), add(registry, "bob", BOB)
    bob.inbox.close()
    dispatch(registry, alice, SendAll("hey"))
    assert alice.inbox.try_recv() == MessageResponse(Message("hey", "alice", "all"))


def test_request_without_message_is_ignored(registry: Registry) -> None:
    alice, bob = add(registry, "alice", ALICE), add(registry, "bob", BOB)
    dispatch(registry, alice, SignIn("alice", ("127.0.0.1", 9)))
    assert len(alice.inbox) == 0 and len(bob.inbox) == 0


def test_deliver_over_closed_socket_does_not_raise() -> None:
    udp = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    udp.setblocking(False)
    udp.close()
    peer = Peer("bob", BOB, None, None, udp, Channel())

    asyncio.run(deliver(peer, MessageResponse(Message("hi", "alice", "bob", Transport.DATAGRAM))))
