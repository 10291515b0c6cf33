#!/usr/bin/env python3
"""
pipebridge command line

Bridges one file of a host-directory virtual store to a FIFO:

    pipebridge export /srv/vault /photos/secret.jpg
    pipebridge import /srv/vault /photos/new.jpg --pipe /tmp/camera.jpg

The FIFO path is printed on stdout; point the external application at
it. The command exits when the transfer ends.

Author: pipebridge developers
Version: 1.0.0
"""

import argparse
import sys
from typing import List, Optional

from pipebridge import __version__
from pipebridge.bridge.manager import BridgeManager
from pipebridge.bridge.session import Direction, SessionState
from pipebridge.core.config_loader import ConfigLoader, parse_mode
from pipebridge.exceptions import BridgeException
from pipebridge.filesystem.host import HostDirectoryProvider
from pipebridge.logger import Logger, LogLevel


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pipebridge',
        description='Relay a virtual file through a named pipe.'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', help='JSON configuration file')
    parser.add_argument('--log-level', help='DEBUG, INFO, WARNING, ERROR or CRITICAL')
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', required=True)
    for direction in Direction:
        sub = subparsers.add_parser(
            direction.value,
            help=('copy the virtual file out to the pipe'
                  if direction is Direction.EXPORT
                  else 'copy pipe input into the virtual file')
        )
        sub.add_argument('root', help='Host directory holding the virtual store')
        sub.add_argument('virtual_path', help='Path inside the virtual store')
        sub.add_argument('--pipe', help='FIFO path (generated when omitted)')
        sub.add_argument('--timeout', type=float, help='Seconds to wait for the peer')
        sub.add_argument('--mode', help='FIFO permission bits, e.g. 0o600')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run one bridge session.

    Returns:
        0 when the session closed normally, 1 when it failed, 2 on setup
        errors, 130 when interrupted
    """
    args = build_parser().parse_args(argv)
    loader = ConfigLoader()
    loader.reset()

    try:
        if args.config:
            loader.load(args.config)
        if args.log_level:
            loader.set('logging.level', args.log_level.upper())
        if args.timeout is not None:
            loader.set('bridge.open_timeout', args.timeout)
        if args.mode:
            loader.set('pipes.mode', parse_mode(args.mode, 'pipes.mode'))
    except BridgeException as e:
        print(f"pipebridge: {e}", file=sys.stderr)
        return 2

    config = loader.config
    Logger.initialize(
        level=LogLevel.from_name(config.logging.level),
        log_file=args.log_file or config.logging.log_file,
        use_colors=config.logging.use_colors,
        console_output=config.logging.console_output
    )

    manager = BridgeManager(HostDirectoryProvider(args.root), config=config)
    try:
        manager.initialize()
        manager.start()
        handle = manager.create_session(args.virtual_path, Direction(args.command), args.pipe)
    except BridgeException as e:
        print(f"pipebridge: {e}", file=sys.stderr)
        return 2

    session = manager.session(handle)
    print(session.real_path, flush=True)
    manager.start(handle)

    try:
        state = session.wait()
    except KeyboardInterrupt:
        session.close()
        session.wait(config.bridge.join_timeout)
        manager.stop()
        manager.cleanup()
        return 130

    manager.stop()
    manager.cleanup()

    if state is SessionState.FAILED:
        print(f"pipebridge: {session.error}", file=sys.stderr)
        return 1
    result = session.result
    print(
        f"{result.bytes_copied if result else 0} bytes relayed",
        file=sys.stderr
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
