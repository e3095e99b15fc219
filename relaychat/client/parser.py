"""Turns a line typed by the user into a Request.

    quit                   -> SignOut
    <receiver>: <text>     -> Send over the stream
    udp <receiver>: <text> -> Send over datagrams
    all: <text>            -> SendAll (also with the udp prefix)
"""

from typing import Optional

import emoji

from relaychat.common.messages import BROADCAST_NAME, Request, Send, SendAll, SignOut, Transport

QUIT_COMMAND = "quit"
DATAGRAM_PREFIX = "udp "
RECEIVER_DELIMITER = ":"

USAGE = "Use: <user>: <message>, udp <user>: <message>, all: <message> or quit"


def cleanup(text: str) -> str:
    ''' Strip line breaks and expand :alias: emoji codes. '''
    text = text.replace("\r", "").replace("\n", "").strip()
    return emoji.emojize(text, language="alias")


def parse_command(line: str) -> Optional[Request]:
    '''
    The function parses one input line.
    Input: raw line from the terminal
    Output: the Request to send, or None if the line is not a valid command
    '''
    line = line.strip()
    if line == QUIT_COMMAND:
        return SignOut()

    receiver, sep, text = line.partition(RECEIVER_DELIMITER)
    if not sep:
        return None

    transport = Transport.STREAM
    if receiver.startswith(DATAGRAM_PREFIX):
        transport = Transport.DATAGRAM
        receiver = receiver[len(DATAGRAM_PREFIX):]
    receiver = receiver.strip()
    text = cleanup(text)
    if not receiver or not text:
        return None

    if receiver == BROADCAST_NAME:
        return SendAll(text, transport)
    return Send(receiver, text, transport)
