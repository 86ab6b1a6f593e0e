"""
HAR Replay CLI

Command-line interface for serving a recorded HAR trace.

Examples:
    # Replay a session on port 8080, using ./.server-replay.json if present
    har-replay session.har

    # Explicit config, port and debug logging
    har-replay session.har --config replay.yaml --port 9000 --debug
"""

import argparse
import logging
import sys
from typing import List, Optional

from .errors import ReplayError
from .mock import ReplayServer, ServerConfig
from .replay import ReplayConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='har-replay',
        description='Serve responses recorded in a HAR file back to a live client',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('har_file', help='HAR file to replay')
    parser.add_argument('-c', '--config', help='The config file to use (default: ./.server-replay.json)')
    parser.add_argument('-p', '--port', type=int, default=8080, help='The port to run the server on (default: 8080)')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    parser.add_argument('-d', '--debug', action='store_true', help='Turn on debug logging')
    parser.add_argument('--admin', action='store_true', help='Enable the admin API under /__admin__')
    return parser


def main(argv: Optional[List[str]] = None):
    """
    Load the trace and configuration, then serve until interrupted.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])
    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(level=log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logger = logging.getLogger("harreplay.cli")

    try:
        replay_config = ReplayConfig.discover(args.config)
        rules = replay_config.compile()
    except (OSError, ReplayError) as e:
        print(f"❌ Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.debug:
        logger.debug(replay_config.describe())

    config = ServerConfig(
        host=args.host,
        port=args.port,
        debug=args.debug,
        log_level='debug' if args.debug else 'info',
        resolve_root=replay_config.resolve_root,
        admin_enabled=args.admin
    )

    try:
        server = ReplayServer(args.har_file, rules=rules, config=config)
    except (OSError, ReplayError) as e:
        print(f"❌ Failed to load HAR file: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Replay server stopped")


if __name__ == '__main__':
    main()
