from typing import Optional


class RelayChatError(Exception):
    """Base class for every error raised by relaychat itself."""
    pass


class DecodeError(RelayChatError, ValueError):
    """Raised when bytes cannot be turned back into a protocol value."""
    pass


class FrameError(OSError):
    ''' A frame arrived on a socket but could not be decoded.
        Subclasses OSError so transport code can treat it like any other I/O failure.
    '''
    pass


class SendError(RelayChatError):
    """Raised when the registry cannot hand a message to a peer."""
    pass


class UserNotFound(SendError):
    pass


class ChannelClosed(SendError):
    pass


class HandshakeError(RelayChatError):
    """Raised on the client when the server refuses (or garbles) the sign-in."""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason   # ErrorReason value sent by the server, if any


class ConfigError(RelayChatError, ValueError):
    pass
