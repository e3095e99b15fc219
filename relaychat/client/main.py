"""
Client wiring: sign in first, then run the network driver and the terminal UI side by side.
"""
import asyncio

from colorama import init

from relaychat.client.net import NetClient
from relaychat.client.ui import ChatUI
from relaychat.common.channel import Channel
from relaychat.common.config import Config
from relaychat.common.messages import Request, Response


async def run(config: Config) -> None:
    '''
    Step 1: connect and sign in (HandshakeError propagates to the caller)
    Step 2: run driver and UI until the user quits or the connection breaks
    '''
    outbound: Channel[Request] = Channel()
    inbound: Channel[Response] = Channel()

    net = NetClient(config.host, config.port, config.name)
    await net.connect()

    init(autoreset=True)   # ANSI colours, also on Windows consoles
    ui = ChatUI(config.name, outbound, inbound)
    driver = asyncio.create_task(net.run(outbound, inbound))
    front = asyncio.create_task(ui.run())

    done, pending = await asyncio.wait({driver, front}, return_when=asyncio.FIRST_EXCEPTION)
    for task in pending:
        # one side failed; the other has nothing left to talk to
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        task.result()
