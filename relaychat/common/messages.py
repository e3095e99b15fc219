from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple

BROADCAST_NAME = "all"     # receiver that selects delivery to every peer
SERVER_NAME = "server"     # sender of join/leave announcements
RESERVED_NAMES = frozenset({BROADCAST_NAME, SERVER_NAME})

Address = Tuple[str, int]


class Transport(str, Enum):
    STREAM = "stream"       # TCP connection, also used for the handshake
    DATAGRAM = "datagram"   # connected UDP socket, best effort


class ErrorReason(str, Enum):
    INVALID_NAME = "InvalidName"
    INVALID_SERVER_RESPONSE = "InvalidServerResponse"
    NAME_TAKEN = "NameTaken"
    USER_NOT_FOUND = "UserNotFound"


def format_address(address: Address) -> str:
    return f"{address[0]}:{address[1]}"


def _text(payload: Dict[str, Any], key: str) -> str:
    ''' Fetch a string field from a decoded payload, rejecting other JSON types. '''
    value = payload[key]
    if not isinstance(value, str):
        raise TypeError(f"field {key!r} must be a string")
    return value


def _address(payload: Dict[str, Any], key: str) -> Address:
    value = payload[key]
    if (not isinstance(value, (list, tuple)) or len(value) != 2
            or not isinstance(value[0], str) or isinstance(value[1], bool)
            or not isinstance(value[1], int)):
        raise TypeError(f"field {key!r} must be a [host, port] pair")
    return (value[0], value[1])


# Message routed between peers; `receiver` may be the broadcast sentinel.
@dataclass(frozen=True)
class Message:
    text: str
    sender: str
    receiver: str
    transport: Transport = Transport.STREAM

    def is_broadcast(self) -> bool:
        return self.receiver == BROADCAST_NAME

    def __str__(self) -> str:
        if self.is_broadcast():
            return f"(all) [{self.sender}]: {self.text}"
        return f"[{self.sender}]: {self.text}"

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "sender": self.sender,
                "receiver": self.receiver, "transport": self.transport.value}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Message":
        if not isinstance(payload, dict):
            raise TypeError("message must be an object")
        return cls(
            text=_text(payload, "text"),
            sender=_text(payload, "sender"),
            receiver=_text(payload, "receiver"),
            transport=Transport(payload["transport"]),
        )


# ---------------------------------------------------------------- requests
class Request:
    ''' Base of every client -> server request. Subclasses set TYPE, the wire discriminator. '''
    TYPE: ClassVar[str] = ""

    def to_message(self, sender: str) -> Optional[Message]:
        '''
        Convert a send request into the Message the registry routes.
        Input:
            - sender: name of the signed-in peer that issued the request
        Output: a Message, or None for requests that carry no chat text
        '''
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Request":
        if not isinstance(payload, dict):
            raise TypeError("request must be an object")
        kind = _REQUEST_TYPES.get(payload.get("type"))
        if kind is None:
            raise ValueError(f"unknown request type {payload.get('type')!r}")
        return kind.from_payload(payload)


@dataclass(frozen=True)
class SignIn(Request):
    TYPE: ClassVar[str] = "sign_in"
    name: str
    datagram_address: Address

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE, "name": self.name,
                "datagram_address": list(self.datagram_address)}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SignIn":
        return cls(_text(payload, "name"), _address(payload, "datagram_address"))


@dataclass(frozen=True)
class SignOut(Request):
    TYPE: ClassVar[str] = "sign_out"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SignOut":
        return cls()


@dataclass(frozen=True)
class Send(Request):
    TYPE: ClassVar[str] = "send"
    receiver: str
    message: str
    transport: Transport = Transport.STREAM

    def to_message(self, sender: str) -> Optional[Message]:
        return Message(self.message, sender, self.receiver, self.transport)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE, "receiver": self.receiver,
                "message": self.message, "transport": self.transport.value}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Send":
        return cls(_text(payload, "receiver"), _text(payload, "message"),
                   Transport(payload["transport"]))


@dataclass(frozen=True)
class SendAll(Request):
    TYPE: ClassVar[str] = "send_all"
    message: str
    transport: Transport = Transport.STREAM

    def to_message(self, sender: str) -> Optional[Message]:
        return Message(self.message, sender, BROADCAST_NAME, self.transport)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE, "message": self.message,
                "transport": self.transport.value}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SendAll":
        return cls(_text(payload, "message"), Transport(payload["transport"]))


_REQUEST_TYPES = {kind.TYPE: kind for kind in (SignIn, SignOut, Send, SendAll)}


# ---------------------------------------------------------------- responses
class Response:
    ''' Base of every server -> client response. '''
    TYPE: ClassVar[str] = ""

    @property
    def transport(self) -> Optional[Transport]:
        ''' Transport the server should use to deliver this response (None means the stream). '''
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE}

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "Response":
        if not isinstance(payload, dict):
            raise TypeError("response must be an object")
        kind = _RESPONSE_TYPES.get(payload.get("type"))
        if kind is None:
            raise ValueError(f"unknown response type {payload.get('type')!r}")
        return kind.from_payload(payload)


@dataclass(frozen=True)
class OkResponse(Response):
    TYPE: ClassVar[str] = "ok"
    address: Address   # server datagram socket for this session

    def __str__(self) -> str:
        return f"[server] Logged in; server datagram: {format_address(self.address)}"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE, "address": list(self.address)}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "OkResponse":
        return cls(_address(payload, "address"))


@dataclass(frozen=True)
class MessageResponse(Response):
    TYPE: ClassVar[str] = "message"
    message: Message

    @property
    def transport(self) -> Optional[Transport]:
        return self.message.transport

    def __str__(self) -> str:
        return str(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE, "message": self.message.to_dict()}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "MessageResponse":
        return cls(Message.from_dict(payload["message"]))


@dataclass(frozen=True)
class ErrorResponse(Response):
    TYPE: ClassVar[str] = "error"
    reason: ErrorReason

    def __str__(self) -> str:
        return f"[server] Error: {self.reason.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.TYPE, "reason": self.reason.value}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ErrorResponse":
        return cls(ErrorReason(payload["reason"]))


_RESPONSE_TYPES = {kind.TYPE: kind for kind in (OkResponse, MessageResponse, ErrorResponse)}


def valid_name(name: str) -> bool:
    ''' A display name is usable if it is non-blank, carries no surrounding
        whitespace and is not reserved by the protocol.
    '''
    return bool(name) and name == name.strip() and name not in RESERVED_NAMES
