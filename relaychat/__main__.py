"""
Main entry point: `relaychat server HOST PORT` or `relaychat client HOST PORT NAME`.
"""
import asyncio
import logging
import sys
from typing import Optional, Sequence

from relaychat.client import main as client
from relaychat.common.config import Mode, parse_args
from relaychat.common.errors import HandshakeError
from relaychat.common.log import configure_logging
from relaychat.server import main as server

log = logging.getLogger("relaychat")


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = parse_args(argv)
    configure_logging(config.verbose, config.log_file)

    runner = server.run if config.mode is Mode.SERVER else client.run
    try:
        asyncio.run(runner(config))
    except KeyboardInterrupt:
        log.info("Shutdown requested")
    except HandshakeError as exc:
        log.error("Login failed: %s", exc)
        return 1
    except OSError as exc:
        log.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
