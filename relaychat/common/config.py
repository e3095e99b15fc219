import argparse
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from relaychat.common.errors import ConfigError
from relaychat.common.messages import Address, RESERVED_NAMES

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5050


class Mode(str, Enum):
    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class Config:
    mode: Mode
    host: str
    port: int
    name: str = ""
    verbose: bool = False
    log_file: Optional[str] = None

    @property
    def address(self) -> Address:
        ''' Stream address: where the server listens / where the client connects. '''
        return (self.host, self.port)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="relaychat",
        description="Chat relay over TCP streams and UDP datagrams.",
    )
    ap.add_argument("mode", choices=[m.value for m in Mode], help="Run the server or a client")
    ap.add_argument("host", nargs="?", default=DEFAULT_HOST, help="Server host address")
    ap.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT, help="Server stream port")
    ap.add_argument("name", nargs="?", default="", help="Display name (client only)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    ap.add_argument("--log-file", default=None, help="Also log to this rotating file")
    return ap


def make_config(mode: str, host: str, port: int, name: str = "",
                verbose: bool = False, log_file: Optional[str] = None) -> Config:
    '''
    Validate raw values and build a Config.
    Raises ConfigError describing the first problem found.
    '''
    mode = Mode(mode)
    lowest = 0 if mode is Mode.SERVER else 1
    if not lowest <= port <= 65535:
        raise ConfigError(f"port must be between {lowest} and 65535, got {port}")
    if not host:
        raise ConfigError("host must not be empty")
    name = name.strip()
    if mode is Mode.CLIENT:
        if not name:
            raise ConfigError("a client needs a non-empty name")
        if name in RESERVED_NAMES:
            raise ConfigError(f"'{name}' is reserved, pick another name")
    return Config(mode, host, port, name, verbose, log_file)


def parse_args(argv: Optional[Sequence[str]] = None) -> Config:
    ap = build_parser()
    args = ap.parse_args(argv)
    try:
        return make_config(args.mode, args.host, args.port, args.name,
                           args.verbose, args.log_file)
    except ConfigError as exc:
        ap.error(str(exc))   # exits with status 2
        raise
