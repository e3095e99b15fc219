"""relaychat: a chat relay where every message picks its own transport.

Clients sign in to a central server over TCP and then send direct or
broadcast lines over that stream or over a connected UDP socket.
"""

__version__ = "0.1.0"
