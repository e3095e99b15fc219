import asyncio
import socket
from typing import Any, Awaitable, Callable, Dict, List, Tuple, Type

from relaychat.common.codec import Encodable, T, decode, encode
from relaychat.common.errors import DecodeError, FrameError

DELIM = b"\n"      # delimiter terminating every frame, on both transports
BUF_SIZE = 2048    # largest datagram we accept
STREAM_LIMIT = 16 * 1024 * 1024   # largest stream frame, passed as the StreamReader limit


def frame(value: Encodable) -> bytes:
    ''' Encode a value and append the frame delimiter. '''
    return encode(value) + DELIM


def unframe(data: bytes, kind: Type[T]) -> T:
    ''' Decode one frame, reporting malformed data as an I/O failure. '''
    try:
        return decode(data, kind)
    except DecodeError as exc:
        raise FrameError(str(exc)) from exc


async def send_stream(writer: asyncio.StreamWriter, value: Encodable) -> None:
    '''
    The function sends a protocol value over the stream half-connection.
    It adds a newline character \\n at the end of the frame.
    Inputs:
        - writer: asyncio.StreamWriter - the write half of the connection
        - value: the Request / Response / Message to be sent
    Output: None
    '''
    writer.write(frame(value))
    await writer.drain()


async def recv_stream(reader: asyncio.StreamReader, kind: Type[T]) -> T:
    '''
    The function receives one protocol value from the stream. It reads data until it
    encounters a newline character \\n, then decodes the line.
    Input:
        - reader: asyncio.StreamReader - the read half of the connection
        - kind: Request or Response
    Output: the decoded value
    Raises ConnectionError when the peer closed the stream and FrameError for a bad frame.
    '''
    try:
        line = await reader.readline()
    except ValueError as exc:   # line longer than STREAM_LIMIT
        raise FrameError(str(exc)) from exc
    if not line.endswith(DELIM):
        # Socket closed (possibly in the middle of a frame)
        raise ConnectionError("socket closed")
    return unframe(line, kind)


async def send_datagram(sock: socket.socket, value: Encodable) -> None:
    ''' Send one framed value over a connected, non-blocking datagram socket. '''
    loop = asyncio.get_running_loop()
    await loop.sock_sendall(sock, frame(value))


async def recv_datagram(sock: socket.socket, kind: Type[T]) -> T:
    ''' Receive and decode one datagram from a connected, non-blocking datagram socket. '''
    loop = asyncio.get_running_loop()
    data = await loop.sock_recv(sock, BUF_SIZE)
    return unframe(data, kind)


def datagram_socket(host: str, family: int = socket.AF_INET) -> socket.socket:
    ''' Bind a non-blocking datagram socket to an ephemeral port on host. '''
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.bind((host, 0))
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class Selector:
    ''' Races several awaitable sources and reports whichever are ready first.

        Every source keeps at most one pending task. Only the sources that fired
        are re-armed on the next call, so an unfinished read is never cancelled
        between iterations (and never loses part of a frame).
    '''

    def __init__(self, **sources: Callable[[], Awaitable[Any]]):
        self._sources = sources
        self._tasks: Dict["asyncio.Future[Any]", str] = {}

    async def next(self) -> List[Tuple[str, "asyncio.Future[Any]"]]:
        '''
        Wait until at least one source completes.
        Output: list of (source name, finished task); call task.result() to get the
                value or re-raise the source's exception
        '''
        armed = set(self._tasks.values())
        for name, source in self._sources.items():
            if name not in armed:
                self._tasks[asyncio.ensure_future(source())] = name
        if not self._tasks:
            raise RuntimeError("no sources left to select from")
        done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        return [(self._tasks.pop(task), task) for task in done]

    def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    def __enter__(self) -> "Selector":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
