"""Main application entry point."""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, AppConfig, resolve_config_path
from .logger import configure_logging
from .mqtt import PipeMQTTBridge
from .pipes import FifoPipeTransport


def positive_int(value: str) -> int:
    """argparse type accepting only integers greater than zero."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"interval must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voxl-mqtt-bridge",
        description="Bridge local pipes to an MQTT broker and back.",
    )
    parser.add_argument(
        "-c", "--config", action="store_true", help="print the loaded configuration and exit"
    )
    parser.add_argument(
        "-s", "--save-config", action="store_true", help="write a default configuration file and exit"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="print the configuration at startup"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="enable per-event debug logging")
    parser.add_argument(
        "-i",
        "--interval",
        type=positive_int,
        default=None,
        metavar="N",
        help="publish interval in seconds (default: 1)",
    )
    parser.add_argument(
        "--config-file",
        default=None,
        metavar="PATH",
        help=f"configuration file (default: $MQTT_BRIDGE_CONFIG or {DEFAULT_CONFIG_PATH})",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point.

    Returns:
        Process exit status
    """
    args = build_parser().parse_args(argv)
    config_path = resolve_config_path(args.config_file)

    if args.save_config:
        configure_logging()
        try:
            AppConfig.save_default(config_path)
        except OSError as e:
            logging.getLogger(__name__).error(f"Failed to write config file {config_path}: {e}")
            return 1
        print(f"Default configuration written to {config_path}")
        return 0

    config = AppConfig.load(config_path)
    if args.interval is not None:
        config.flush_interval = args.interval

    configure_logging(config.log_level, debug=args.debug)
    logger = logging.getLogger(__name__)

    if args.config:
        print(config.describe())
        return 0

    if args.verbose:
        print(config.describe())
    logger.info("Configuration loaded successfully")

    try:
        transport = FifoPipeTransport(config.pipe_dir)
        bridge = PipeMQTTBridge(
            config, transport, flush_interval=config.flush_interval, debug=args.debug
        )
    except Exception as e:
        logger.error(f"Failed to initialize MQTT client: {e}", exc_info=True)
        return 1

    try:
        bridge.setup()
    except Exception as e:
        logger.error(f"Failed to set up pipes: {e}", exc_info=True)
        transport.close_all()
        return 1

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        bridge.request_stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    bridge.run_forever()
    logger.info("MQTT bridge exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
