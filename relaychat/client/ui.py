import asyncio
import datetime
import sys
import threading
from typing import Optional, TextIO

from colorama import Fore, Style

from relaychat.client.parser import QUIT_COMMAND, USAGE, parse_command
from relaychat.common.channel import Channel
from relaychat.common.errors import ChannelClosed
from relaychat.common.messages import (
    SERVER_NAME, ErrorResponse, MessageResponse, OkResponse, Request, Response, SignOut,
)
from relaychat.common.protocol import Selector

PROMPT = "> "


def colour_for(response: Response) -> str:
    ''' Pick the terminal colour of a response line. '''
    if isinstance(response, ErrorResponse):
        return Fore.RED
    if isinstance(response, OkResponse):
        return Fore.CYAN
    if isinstance(response, MessageResponse):
        if response.message.sender == SERVER_NAME:
            return Fore.CYAN
        if response.message.is_broadcast():
            return Fore.GREEN
    return Fore.YELLOW


class ChatUI:
    ''' Line-oriented terminal front end. Reads commands from stdin, prints responses. '''

    def __init__(self, username: str, outbound: Channel[Request], inbound: Channel[Response],
                 stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.username = username
        self.outbound = outbound   # requests for the driver
        self.inbound = inbound     # responses from the driver
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.quit = False

    def ts(self) -> str:
        return datetime.datetime.now().strftime("%H:%M:%S")

    def render(self, response: Response) -> str:
        return f"{colour_for(response)}({self.ts()}) {response}{Style.RESET_ALL}"

    def append(self, text: str) -> None:
        # \r overwrites the prompt, which is repainted below the new line
        self.stdout.write(f"\r{text}\n{PROMPT}")
        self.stdout.flush()

    def submit(self, line: str) -> None:
        '''
        Handle one line typed by the user.
        Unknown syntax prints a usage hint; "quit" signs out and closes the outbound channel.
        '''
        request = parse_command(line)
        if request is None:
            if line.strip():
                self.append(f"{Fore.RED}{USAGE}{Style.RESET_ALL}")
            return
        try:
            self.outbound.send(request)
        except ChannelClosed:
            self.quit = True
            return
        if isinstance(request, SignOut):
            self.quit = True
            self.outbound.close()

    def _read_stdin(self, loop: asyncio.AbstractEventLoop, lines: Channel[str]) -> None:
        ''' Thread function: blocking reads from stdin, handed over to the event loop. '''
        try:
            for line in self.stdin:
                loop.call_soon_threadsafe(lines.send, line)
            loop.call_soon_threadsafe(lines.close)
        except RuntimeError:
            pass   # event loop already closed, the client is shutting down

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        lines: Channel[str] = Channel()
        threading.Thread(target=self._read_stdin, args=(loop, lines), daemon=True).start()
        self.append(f"{Fore.CYAN}Signed in as {self.username}. {USAGE}{Style.RESET_ALL}")
        try:
            with Selector(line=lines.recv, inbound=self.inbound.recv) as selector:
                while not self.quit:
                    for source, task in await selector.next():
                        if source == "inbound":
                            response = task.result()
                            if response is None:
                                self.append(f"{Fore.RED}Disconnected.{Style.RESET_ALL}")
                                return
                            self.append(self.render(response))
                        else:
                            line = task.result()
                            self.submit(QUIT_COMMAND if line is None else line)
        finally:
            if not self.quit:
                # nobody reads responses any more
                self.inbound.close()
            self.stdout.write("\n")
            self.stdout.flush()
