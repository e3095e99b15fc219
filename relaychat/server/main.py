import asyncio
import logging
import socket
from typing import Optional, Set

from relaychat.common.config import Config
from relaychat.common.errors import ChannelClosed, FrameError, UserNotFound
from relaychat.common.messages import (
    Address, BROADCAST_NAME, SERVER_NAME, ErrorReason, ErrorResponse, Message,
    OkResponse, Request, Response, SignIn, SignOut, Transport, format_address, valid_name,
)
from relaychat.common.protocol import (
    STREAM_LIMIT, Selector, datagram_socket, recv_datagram, recv_stream, send_datagram, send_stream,
)
from relaychat.server.state import Peer, Registry

log = logging.getLogger(__name__)


def announce(registry: Registry, text: str) -> None:
    '''This function broadcasts a server-authored line (join / leave notices) to every peer'''
    registry.broadcast(Message(text, SERVER_NAME, BROADCAST_NAME, Transport.STREAM))


async def reject(writer: asyncio.StreamWriter, reason: ErrorReason) -> None:
    try:
        await send_stream(writer, ErrorResponse(reason))
    except OSError:
        pass   # client already gone, nothing left to tell it


async def sign_in(registry: Registry, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                  udp: socket.socket, address: Address) -> Optional[Peer]:
    ''' Handshake with a freshly accepted client.
        Inputs:
        - registry: the shared peer registry
        - reader / writer: stream halves of the connection
        - udp: datagram socket allocated for this session
        - address: client stream address
        Output: the registered Peer, or None if the client was turned away
        (an ErrorResponse has been sent in that case and nothing is registered)
    '''
    try:
        request = await recv_stream(reader, Request)
    except FrameError as exc:
        log.debug("bad handshake frame from %s: %s", format_address(address), exc)
        await reject(writer, ErrorReason.INVALID_NAME)
        return None

    if not isinstance(request, SignIn) or not valid_name(request.name):
        await reject(writer, ErrorReason.INVALID_NAME)
        return None

    try:
        udp.connect(request.datagram_address)
    except OSError as exc:
        log.debug("cannot reach datagram address %s: %s", request.datagram_address, exc)
        await reject(writer, ErrorReason.INVALID_NAME)
        return None

    peer = registry.add(request.name, address, reader, writer, udp)
    if peer is None:   # first sign-in under a name wins
        await reject(writer, ErrorReason.NAME_TAKEN)
        return None

    local = (writer.get_extra_info("sockname")[0], udp.getsockname()[1])
    try:
        await send_stream(writer, OkResponse(local))
    except OSError:
        registry.remove(peer.name, peer.address)
        peer.inbox.close()
        raise
    return peer


async def deliver(peer: Peer, response: Response) -> None:
    ''' Forward a queued response to its peer, best effort. '''
    try:
        if response.transport is Transport.DATAGRAM:
            await send_datagram(peer.udp, response)
        else:
            await send_stream(peer.writer, response)
    except OSError as exc:
        log.debug("delivery to %s failed: %s", peer.name, exc)


def dispatch(registry: Registry, peer: Peer, request: Request) -> None:
    ''' Route (or broadcast) what a signed-in peer sent, over either transport. '''
    message = request.to_message(peer.name)
    if message is None:
        log.debug("ignoring %s from %s", type(request).__name__, peer.name)
        return
    if message.is_broadcast():
        registry.broadcast(message)
        return
    try:
        registry.route(message)
    except UserNotFound:
        log.info("%s tried to reach unknown user %r", peer.name, message.receiver)
        peer.inbox.send(ErrorResponse(ErrorReason.USER_NOT_FOUND))
    except ChannelClosed:
        log.debug("%s left before a message from %s arrived", message.receiver, peer.name)


async def serve_peer(registry: Registry, peer: Peer) -> None:
    ''' Active session: services the delivery queue, the datagram socket and the stream,
        whichever is ready first, until sign-out or a broken stream.
    '''
    with Selector(
        inbox=peer.inbox.recv,
        datagram=lambda: recv_datagram(peer.udp, Request),
        stream=lambda: recv_stream(peer.reader, Request),
    ) as selector:
        while True:
            for source, task in await selector.next():
                if source == "inbox":
                    response = task.result()
                    if response is None:
                        return
                    await deliver(peer, response)

                elif source == "datagram":
                    try:
                        request = task.result()
                    except OSError as exc:
                        log.debug("datagram from %s dropped: %s", peer.name, exc)
                        continue
                    dispatch(registry, peer, request)

                else:
                    try:
                        request = task.result()
                    except OSError as exc:   # closed stream or garbage: treat as sign-out
                        log.debug("stream from %s ended: %s", peer.name, exc)
                        return
                    if isinstance(request, SignOut):
                        return
                    dispatch(registry, peer, request)


async def handle_client(registry: Registry, reader: asyncio.StreamReader,
                        writer: asyncio.StreamWriter, udp: socket.socket, address: Address) -> None:
    ''' This function handles communication with a connected client
        Inputs:
        - registry: registry shared by all sessions
        - reader / writer: stream halves of the connection
        - udp: datagram socket reserved for this client
        - address: address of the connected client
    '''
    peer = None
    try:
        peer = await sign_in(registry, reader, writer, udp, address)
        if peer is None:
            return
        log.info("%s @ %s connected", peer.name, format_address(address))
        announce(registry, f"{peer.name} has joined the chat")
        await serve_peer(registry, peer)
    except OSError as exc:
        log.debug("connection %s failed: %s", format_address(address), exc)
    except Exception:
        log.exception("session for %s crashed", format_address(address))
    finally:
        if peer is not None:
            announce(registry, f"{peer.name} has left the chat")
            registry.remove(peer.name, peer.address)
            peer.inbox.close()
            log.info("%s @ %s disconnected", peer.name, format_address(address))
        writer.close()
        udp.close()


async def serve(listener: socket.socket, registry: Optional[Registry] = None) -> None:
    ''' Accept loop. Each connection gets a fresh datagram socket and its own task.
        Bind and accept failures propagate and stop the server; a failing session does not.
    '''
    loop = asyncio.get_running_loop()
    registry = registry if registry is not None else Registry()
    listener.setblocking(False)
    host = listener.getsockname()[0]
    sessions: Set["asyncio.Task[None]"] = set()
    try:
        while True:
            udp = datagram_socket(host, listener.family)
            try:
                conn, address = await loop.sock_accept(listener)
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                reader, writer = await asyncio.open_connection(sock=conn, limit=STREAM_LIMIT)
            except BaseException:
                udp.close()
                raise
            task = asyncio.create_task(handle_client(registry, reader, writer, udp, address[:2]))
            sessions.add(task)
            task.add_done_callback(sessions.discard)
    finally:
        for task in list(sessions):
            task.cancel()


def open_listener(address: Address) -> socket.socket:
    family = socket.AF_INET6 if ":" in address[0] else socket.AF_INET
    return socket.create_server(address, family=family)


async def run(config: Config, registry: Optional[Registry] = None) -> None:
    with open_listener(config.address) as listener:
        log.info("Server listening on %s", format_address(listener.getsockname()[:2]))
        await serve(listener, registry)
