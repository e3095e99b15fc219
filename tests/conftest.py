"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures shared by the protocol, server and client tests.
"""

import asyncio
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

import pytest

from relaychat.client.net import NetClient
from relaychat.common.channel import Channel
from relaychat.common.messages import SERVER_NAME, Address, MessageResponse, Request, Response
from relaychat.server.main import open_listener, serve
from relaychat.server.state import Registry

TIMEOUT = 3.0


def _loopback_available() -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.bind(("127.0.0.1", 0))
    except OSError:
        return False
    return True


@pytest.fixture
def loopback() -> None:
    """Skip tests that need real sockets when the sandbox does not allow them."""
    if not _loopback_available():
        pytest.skip("loopback sockets not permitted")


@pytest.fixture
def registry() -> Registry:
    return Registry()


class ChatPeer:
    """A signed-in test client: the real driver plus both of its channels."""

    def __init__(self, net: NetClient):
        self.net = net
        self.outbound: Channel[Request] = Channel()
        self.inbound: Channel[Response] = Channel()
        self.task: Optional["asyncio.Task[None]"] = None

    def start(self) -> None:
        self.task = asyncio.create_task(self.net.run(self.outbound, self.inbound))

    def send(self, request: Request) -> None:
        self.outbound.send(request)

    async def recv(self) -> Response:
        response = await asyncio.wait_for(self.inbound.recv(), TIMEOUT)
        assert response is not None, "driver stopped before a response arrived"
        return response

    async def recv_chat(self) -> Response:
        """Next response that is not a server join/leave announcement."""
        while True:
            response = await self.recv()
            if isinstance(response, MessageResponse) and response.message.sender == SERVER_NAME:
                continue
            return response

    async def recv_announcement(self, text: str) -> None:
        while True:
            response = await self.recv()
            if isinstance(response, MessageResponse) and response.message.text == text:
                return

    async def stop(self) -> None:
        self.outbound.close()
        if self.task is not None:
            await asyncio.gather(self.task, return_exceptions=True)


@asynccontextmanager
async def _running_server() -> AsyncIterator[Tuple[Registry, Address]]:
    registry = Registry()
    listener = open_listener(("127.0.0.1", 0))
    task = asyncio.create_task(serve(listener, registry))
    try:
        yield registry, listener.getsockname()[:2]
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        listener.close()


@pytest.fixture
def chat_server(loopback) -> Callable[[], "AsyncIterator[Tuple[Registry, Address]]"]:
    """Factory of an async context manager running the real acceptor on an ephemeral port."""
    return _running_server


async def sign_in(address: Address, name: str) -> ChatPeer:
    net = NetClient(address[0], address[1], name)
    await asyncio.wait_for(net.connect(), TIMEOUT)
    peer = ChatPeer(net)
    peer.start()
    return peer


@pytest.fixture
def connect() -> Callable[[Address, str], Awaitable[ChatPeer]]:
    return sign_in


async def eventually(predicate: Callable[[], bool], timeout: float = TIMEOUT) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return eventually


@pytest.fixture
def stop_all() -> Callable[[List[ChatPeer]], Awaitable[None]]:
    async def stop(peers: List[ChatPeer]) -> None:
        for peer in peers:
            await peer.stop()
    return stop
