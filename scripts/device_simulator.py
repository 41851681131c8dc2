#!/usr/bin/env python3
"""Pretend to be an ESP32 current sensor talking to the energy monitor backend.

Usage:
  ./scripts/device_simulator.py --base-url http://localhost:8000 --device-id ESP32_001 --interval 5

Install: pip install requests

The simulator checks that the device is registered, then loops: one sample
per channel with rising cumulative energy, a reset-command poll (counters go
back to zero on a reset) and, every few cycles, an OTA check.
"""
import argparse
import json
import random
import sys
import time

import requests


def check_registration(base_url: str, device_id: str) -> dict:
    r = requests.get(f"{base_url}/api/esp32/registration", params={"device_id": device_id}, timeout=10)
    r.raise_for_status()
    return r.json()


def post_sample(base_url: str, device_id: str, channel: int, current: float, power: float, energy_wh: float) -> dict:
    payload = {
        "device_id": device_id,
        "channel_number": channel,
        "current": round(current, 3),
        "power": round(power, 2),
        "energy_wh": round(energy_wh, 4),
    }
    r = requests.post(f"{base_url}/api/esp32/energy", json=payload, timeout=10)
    if r.status_code != 200:
        print(f"Sample rejected ({r.status_code}): {r.text}", file=sys.stderr)
        return {}
    return r.json()


def poll_reset(base_url: str, device_id: str) -> bool:
    r = requests.get(f"{base_url}/api/esp32/reset-command", params={"device_id": device_id}, timeout=10)
    r.raise_for_status()
    return bool(r.json().get("reset_command"))


def check_ota(base_url: str, device_id: str, version: str | None) -> dict:
    r = requests.post(
        f"{base_url}/api/esp32/ota/check",
        json={"device_id": device_id, "current_firmware_version": version},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()


def main():
    ap = argparse.ArgumentParser(description="Simulate an ESP32 multi-channel energy sensor")
    ap.add_argument("--base-url", default="http://localhost:8000", help="Backend base URL")
    ap.add_argument("--device-id", required=True, help="Registered device id")
    ap.add_argument("--interval", type=float, default=5.0, help="Seconds between sample rounds")
    ap.add_argument("--voltage", type=float, default=220.0, help="Mains voltage used to derive power")
    ap.add_argument("--max-current", type=float, default=10.0, help="Upper bound for simulated current (A)")
    ap.add_argument("--firmware-version", default=None, help="Version reported to the OTA check")
    ap.add_argument("--ota-every", type=int, default=12, help="Check for firmware every N rounds (0 disables)")
    ap.add_argument("--rounds", type=int, default=0, help="Stop after N rounds (0 runs forever)")
    args = ap.parse_args()

    base_url = args.base_url.rstrip("/")

    try:
        registration = check_registration(base_url, args.device_id)
    except requests.exceptions.RequestException as e:
        print(f"Registration check failed: {e}", file=sys.stderr)
        sys.exit(1)

    if not registration.get("registered"):
        print(f"Device {args.device_id} is not registered: {registration.get('message')}", file=sys.stderr)
        sys.exit(1)

    channel_count = int(registration["channel_count"])
    print(f"Device {args.device_id} registered with {channel_count} channels")

    energy_wh = [0.0] * channel_count
    round_no = 0
    try:
        while True:
            round_no += 1
            for index in range(channel_count):
                current = random.uniform(0.0, args.max_current)
                power = current * args.voltage
                energy_wh[index] += power * args.interval / 3600.0
                result = post_sample(base_url, args.device_id, index + 1, current, power, energy_wh[index])
                if result:
                    print(
                        f"ch{index + 1}: {current:5.2f} A {power:8.1f} W "
                        f"{energy_wh[index]:10.3f} Wh cost={result.get('calculated_cost', 0):.2f}"
                    )

            if poll_reset(base_url, args.device_id):
                print("Reset command received, zeroing energy counters")
                energy_wh = [0.0] * channel_count

            if args.ota_every and round_no % args.ota_every == 0:
                update = check_ota(base_url, args.device_id, args.firmware_version)
                if update.get("has_update"):
                    print(f"Firmware update available: {json.dumps(update, indent=2)}")

            if args.rounds and round_no >= args.rounds:
                break
            time.sleep(args.interval)
    except KeyboardInterrupt:
        pass
    except requests.exceptions.RequestException as e:
        print(f"Request failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
