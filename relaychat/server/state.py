import asyncio
import socket
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional

from relaychat.common.channel import Channel
from relaychat.common.errors import ChannelClosed, UserNotFound
from relaychat.common.messages import Address, Message, MessageResponse, Response


@dataclass   # one per live connection, created at the end of the handshake
class Peer:
    name: str                       # display name chosen at sign-in
    address: Address                # stream address of the client, the registry key
    reader: asyncio.StreamReader    # stream read half
    writer: asyncio.StreamWriter    # stream write half
    udp: socket.socket              # datagram socket connected to the client
    inbox: Channel[Response]        # delivery queue; the registry holds the sending side


class Registry:
    ''' Who is connected and how to reach them, shared by every session.

        Every method takes the lock for its whole duration and never awaits, so
        the lock is never held across network I/O: delivery only pushes onto
        the peer's queue, the peer's own session does the sending.
    '''

    def __init__(self):
        self.lock = Lock()   # guards the three maps below
        self.peers: Dict[Address, Channel[Response]] = {}   # address -> delivery queue
        self.names: Dict[str, Address] = {}                 # name -> address
        self.addresses: Dict[Address, str] = {}             # address -> name (reverse of names)

    def add(self, name: str, address: Address, reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter, udp: socket.socket) -> Optional[Peer]:
        '''
        Register a peer and create its delivery queue.
        Inputs:
            - name: display name from the SignIn request
            - address: client stream address
            - reader / writer / udp: the session's transport handles
        Output: the new Peer, or None when the name (or address) is already taken
        '''
        with self.lock:
            if name in self.names or address in self.peers:
                return None
            inbox: Channel[Response] = Channel()
            self.peers[address] = inbox
            self.names[name] = address
            self.addresses[address] = name
        return Peer(name, address, reader, writer, udp, inbox)

    def remove(self, name: str, address: Address) -> None:
        ''' Forget a peer. Removing something that is not registered is a no-op,
            and so is a name/address pair that belongs to two different peers.
        '''
        with self.lock:
            if self.names.get(name) != address:
                return
            del self.names[name]
            del self.addresses[address]
            del self.peers[address]

    def route(self, message: Message) -> None:
        '''
        Queue a message for its receiver.
        Raises UserNotFound if nobody is signed in under message.receiver and
        ChannelClosed if that peer's session already closed its queue.
        '''
        with self.lock:
            address = self.names.get(message.receiver)
            inbox = self.peers.get(address) if address is not None else None
            if inbox is None:
                raise UserNotFound(message.receiver)
            inbox.send(MessageResponse(message))

    def broadcast(self, message: Message) -> int:
        ''' Queue a message for every registered peer, sender included.
            Peers whose queue is already closed are skipped. Returns how many got it.
        '''
        response = MessageResponse(message)
        delivered = 0
        with self.lock:
            for inbox in self.peers.values():
                try:
                    inbox.send(response)
                except ChannelClosed:
                    continue
                delivered += 1
        return delivered

    def users(self) -> List[str]:
        with self.lock:
            return list(self.names.keys())

    def __contains__(self, name: str) -> bool:
        with self.lock:
            return name in self.names
