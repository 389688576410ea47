"""Entry point to start the Bridge Agent.

Usage:
    uv run python scripts/run_bridge.py
    uv run python scripts/run_bridge.py --config ~/.ledrelay/bridge.json --debug

The bridge connects to the command broker and waits for commands on:
    relay/{device_id}/command

Publishes outcomes and periodic device state on:
    relay/{device_id}/status

Broker credentials may be kept in ~/.ledrelay/.env
(RELAY_BROKER_USERNAME, RELAY_BROKER_PASSWORD).
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from ledrelay.bridge.agent import BridgeAgent
from ledrelay.bridge.broker import BrokerClient
from ledrelay.bridge.config import load_config
from ledrelay.bridge.gateway import DeviceGateway

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ENV_FILE = Path.home() / ".ledrelay" / ".env"


async def main(args: argparse.Namespace) -> int:
    """Main entry point."""
    if ENV_FILE.exists():
        load_dotenv(ENV_FILE)

    try:
        config = load_config(args.config)
        config.validate()
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1

    gateway = DeviceGateway(
        config.gateway_host,
        port=config.gateway_port,
        timeout=config.http_timeout,
        base_path=config.gateway_base_path,
    )
    agent = BridgeAgent(config, BrokerClient(config), gateway)

    # Set up graceful shutdown
    shutdown_event = asyncio.Event()

    def handle_signal():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    logger.info(f"Device ID: {config.device_id}")
    logger.info(f"Device gateway: {gateway.base_url}")
    logger.info(f"Listening on: {agent.command_topic}")
    logger.info("Press Ctrl+C to stop")

    await agent.run_forever(shutdown_event)

    logger.info("Stopping bridge...")
    agent.stop()
    logger.info(
        f"Bridge stopped ({agent.state.commands_processed} commands, "
        f"{agent.state.commands_failed} errors)"
    )
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Bridge Agent for the LED command relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to bridge config file (default: ~/.ledrelay/bridge.json)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(asyncio.run(main(args)))
