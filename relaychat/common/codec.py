import json
from typing import Type, TypeVar, Union

from relaychat.common.errors import DecodeError
from relaychat.common.messages import Message, Request, Response

ENC = "utf-8"   # encoding for JSON text

Encodable = Union[Request, Response, Message]
T = TypeVar("T", Request, Response, Message)


def encode(value: Encodable) -> bytes:
    '''
    The function encodes a protocol value as one JSON object.
    The frame terminator is added by the transport helpers, not here.
    Input:
        - value: a Request, Response or Message
    Output: UTF-8 bytes without any newline
    '''
    return json.dumps(value.to_dict(), ensure_ascii=False).encode(ENC)


def decode(data: bytes, kind: Type[T]) -> T:
    '''
    The function decodes bytes produced by encode() back into a value of the given kind.
    A trailing frame delimiter is tolerated.
    Input:
        - data: raw bytes of one frame
        - kind: Request, Response or Message
    Output: the decoded value; raises DecodeError on malformed input
    '''
    try:
        payload = json.loads(bytes(data).decode(ENC))
        return kind.from_dict(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"malformed frame: {exc}") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"invalid {kind.__name__.lower()}: {exc}") from exc
