import asyncio
from typing import Generic, Optional, TypeVar

from relaychat.common.errors import ChannelClosed

T = TypeVar("T")

_CLOSED = object()   # wakes a pending recv() once the channel is closed


class Channel(Generic[T]):
    ''' Unbounded FIFO between tasks that either side can close.

        send() never blocks and fails with ChannelClosed after close();
        recv() drains whatever is still queued and then returns None.
    '''

    def __init__(self):
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._pending = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self._pending

    def send(self, item: T) -> None:
        if self._closed:
            raise ChannelClosed("channel is closed")
        self._pending += 1
        self._queue.put_nowait(item)

    async def recv(self) -> Optional[T]:
        if self._closed and not self._pending:
            return None
        return self._take(await self._queue.get())

    def try_recv(self) -> Optional[T]:
        ''' Non-blocking recv(): None when nothing is queued. '''
        if not self._pending:
            return None
        return self._take(self._queue.get_nowait())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def _take(self, item: object) -> Optional[T]:
        if item is _CLOSED:
            return None
        self._pending -= 1
        return item  # type: ignore[return-value]
