import asyncio
import logging
import socket
from typing import Optional

from relaychat.common.channel import Channel
from relaychat.common.errors import ChannelClosed, FrameError, HandshakeError
from relaychat.common.messages import (
    Address, ErrorReason, ErrorResponse, OkResponse, Request, Response, Send, SendAll,
    SignIn, SignOut, Transport, format_address,
)
from relaychat.common.protocol import (
    STREAM_LIMIT, Selector, datagram_socket, recv_datagram, recv_stream, send_datagram, send_stream,
)

log = logging.getLogger(__name__)


class NetClient:
    ''' Network side of the chat client.

        connect() performs the sign-in handshake; run() then bridges the
        presentation layer's channels to the stream and datagram sockets.
    '''

    def __init__(self, host: str, port: int, username: str):
        self.host, self.port, self.username = host, port, username
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.udp: Optional[socket.socket] = None
        self.server_udp: Optional[Address] = None   # known once the server answered Ok
        self.signed_out = False

    async def connect(self) -> OkResponse:
        '''
        Open the stream, bind a local datagram socket and sign in.
        Output: the server's OkResponse; the datagram socket is now connected to it.
        Raises HandshakeError when the server refuses the name or answers nonsense.
        '''
        self.reader, self.writer = await asyncio.open_connection(self.host, self.port, limit=STREAM_LIMIT)
        sock = self.writer.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)  # send chat lines immediately

        local_ip = self.writer.get_extra_info("sockname")[0]
        family = sock.family if sock is not None else socket.AF_INET
        self.udp = datagram_socket(local_ip, family)
        try:
            await send_stream(self.writer, SignIn(self.username, self.udp.getsockname()[:2]))
            response = await recv_stream(self.reader, Response)
        except FrameError as exc:
            await self.close()
            raise HandshakeError(f"Invalid server response: {exc}",
                                 ErrorReason.INVALID_SERVER_RESPONSE) from exc
        except OSError:
            await self.close()
            raise

        if isinstance(response, OkResponse):
            self.udp.connect(response.address)
            self.server_udp = response.address
            log.info("Signed in as %s; server datagram %s", self.username,
                     format_address(response.address))
            return response

        await self.close()
        if isinstance(response, ErrorResponse):
            raise HandshakeError(f"Server error: {response.reason.value}", response.reason)
        raise HandshakeError("Invalid server response", ErrorReason.INVALID_SERVER_RESPONSE)

    async def send(self, request: Request) -> None:
        ''' Pick the socket for an outbound request: datagram sends go over UDP, the rest over the stream. '''
        if isinstance(request, (Send, SendAll)) and request.transport is Transport.DATAGRAM:
            await send_datagram(self.udp, request)
        else:
            await send_stream(self.writer, request)
        if isinstance(request, SignOut):
            self.signed_out = True

    def forward(self, inbound: Channel[Response], response: Response) -> None:
        try:
            inbound.send(response)
        except ChannelClosed as exc:
            raise BrokenPipeError("presentation layer is gone") from exc

    async def run(self, outbound: Channel[Request], inbound: Channel[Response]) -> None:
        '''
        Steady state after connect().
        Inputs:
            - outbound: requests typed by the user; closing it ends the driver cleanly
            - inbound: where decoded responses are handed to the presentation layer
        Raises BrokenPipeError if inbound has been closed by its reader, and
        ConnectionError if the server drops the stream before we signed out.
        '''
        if self.writer is None or self.udp is None:
            raise RuntimeError("connect() must succeed before run()")
        try:
            with Selector(
                outbound=outbound.recv,
                stream=lambda: recv_stream(self.reader, Response),
                datagram=lambda: recv_datagram(self.udp, Response),
            ) as selector:
                while True:
                    for source, task in await selector.next():
                        if source == "outbound":
                            request = task.result()
                            if request is None:
                                return
                            await self.send(request)

                        elif source == "stream":
                            try:
                                response = task.result()
                            except FrameError as exc:
                                log.debug("skipping bad frame from server: %s", exc)
                                continue
                            except ConnectionError:
                                if self.signed_out:
                                    return
                                raise
                            self.forward(inbound, response)

                        else:
                            try:
                                response = task.result()
                            except OSError as exc:
                                log.debug("datagram dropped: %s", exc)
                                continue
                            self.forward(inbound, response)
        finally:
            inbound.close()
            await self.close()

    async def close(self) -> None:
        if self.writer is not None:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except OSError:
                pass
            self.writer = None
        if self.udp is not None:
            self.udp.close()
            self.udp = None
