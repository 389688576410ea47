"""Send a canonical command to a bridge and print the status it publishes.

Publishes through AWS IoT Core (boto3 iot-data), waits, then reads the
retained status message for the device.

Usage:
    uv run python scripts/send_command.py DEVICE_ID --on --bri 128
    uv run python scripts/send_command.py DEVICE_ID --action getState
    uv run python scripts/send_command.py DEVICE_ID --payload '{"seg": [{"fx": 9}]}'
"""

import argparse
import json
import os
import sys
import time

import boto3

from ledrelay.cloud.dispatch import publish_command, read_status
from ledrelay.commands import CanonicalCommand, parse_action
from ledrelay.errors import DispatchError

REGION = os.environ.get("AWS_DEFAULT_REGION", "eu-central-1")


def build_command(args: argparse.Namespace) -> CanonicalCommand:
    """Build the command from CLI flags."""
    payload = json.loads(args.payload) if args.payload else {}
    if args.on:
        payload["on"] = True
    if args.off:
        payload["on"] = False
    if args.bri is not None:
        payload["bri"] = args.bri
    return CanonicalCommand(parse_action(args.action), payload, args.controller)


def main() -> int:
    parser = argparse.ArgumentParser(description="Send a command through the relay")
    parser.add_argument("device_id", help="Device identity of the target bridge")
    parser.add_argument("--action", default="setState", help="getState, getInfo, setState or setConfig")
    parser.add_argument("--payload", default=None, help="JSON payload")
    parser.add_argument("--on", action="store_true", help="Turn the lights on")
    parser.add_argument("--off", action="store_true", help="Turn the lights off")
    parser.add_argument("--bri", type=int, default=None, help="Brightness 0-255")
    parser.add_argument("--controller", default="primary", help="Controller id")
    parser.add_argument("--wait", type=float, default=3.0, help="Seconds to wait for status")
    args = parser.parse_args()

    iot_client = boto3.client("iot-data", region_name=REGION)
    command = build_command(args)

    print(f"Sending to {args.device_id}: {command.to_json()}")
    try:
        publish_command(args.device_id, command, iot_client)
    except DispatchError as e:
        print(f"Error: {e}")
        return 1

    time.sleep(args.wait)

    status = read_status(args.device_id, iot_client)
    if status is None:
        print("No status received")
        return 1

    if "error" in status:
        print(f"Bridge reported error: {status['error']}")
        return 1

    print(json.dumps(status, indent=2)[:2000])
    if "on" in status:
        print(f"\nLights are {'ON' if status['on'] else 'OFF'}, brightness: {status.get('bri')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
