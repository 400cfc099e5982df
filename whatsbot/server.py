"""
HTTP server entry point for whatsbot.

Builds the session controller, restores any linked session, serves the web
API and always closes the device store on the way out, including on SIGINT
and SIGTERM.
"""

import sys
import signal
import logging
import argparse
from typing import Optional, List

from whatsbot.config import Config
from whatsbot.session import SessionController
from whatsbot.status import ConnectionStatus
from whatsbot.exceptions import StoreError
from whatsbot.web.app import create_app

logger = logging.getLogger(__name__)


def _raise_exit(signum, frame) -> None:
    logger.info(f"Received signal {signum}, shutting down")
    raise SystemExit(0)


def install_signal_handlers() -> None:
    """Turn SIGTERM (and SIGBREAK on Windows) into a normal interpreter exit."""
    signal.signal(signal.SIGTERM, _raise_exit)
    if hasattr(signal, "SIGBREAK"):
        signal.signal(signal.SIGBREAK, _raise_exit)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='whatsbot WhatsApp session API')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--host', help='Host to bind to (default from config: 0.0.0.0)')
    parser.add_argument('--port', '-p', type=int, help='Port to bind to (default from config: 5003)')
    parser.add_argument('--store', help='Path to the device store database')
    parser.add_argument('--gateway', help='Base URL of the WhatsApp gateway')
    parser.add_argument('--debug', '-d', action='store_true', help='Enable debug logging')
    parser.add_argument('--keep-session', action='store_true',
                        help='Do not force a relink when pairing while already signed in')
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """
    Layer command line options over the configuration file.

    Args:
        args: Parsed command line arguments.

    Returns:
        The effective configuration.
    """
    config = Config(args.config)
    if args.debug:
        config.set("log_level", "DEBUG")
    if args.host:
        config.set("host", args.host)
    if args.port:
        config.set("port", args.port)
    if args.store:
        config.set("store_path", args.store)
    if args.gateway:
        config.set("gateway_url", args.gateway)
    if args.keep_session:
        config.set("force_relink", False)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = parse_args(argv)
    config = build_config(args)

    try:
        controller = SessionController.from_config(config)
    except StoreError as e:
        logger.error(f"Failed to open device store: {str(e)}")
        return 1

    install_signal_handlers()

    with controller:
        result = controller.initialize()
        if result.status is ConnectionStatus.SIGNED_IN:
            logger.info("Connected to WhatsApp with the stored device")
        elif result.error_message:
            logger.error(f"Failed to restore session: {result.error_message}")
        else:
            logger.info("No linked device. Use POST /start_connection to pair.")

        app = create_app(controller)
        host, port = config.get("host"), config.get("port")
        logger.info(f"Starting HTTP server on {host}:{port}...")

        try:
            app.run(host=host, port=port, debug=False, use_reloader=False)
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        except OSError as e:
            logger.error(f"Failed to start HTTP server on {host}:{port}: {str(e)}")
            return 1

    logger.info("Closed WhatsApp device store")
    return 0


if __name__ == '__main__':
    sys.exit(main())
