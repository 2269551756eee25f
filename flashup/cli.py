"""Command-line entry point."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from flashup.controller import INITIAL_REFRESH_DELAY_MS, FlashUpController
from flashup.flashupcore import FlashUpCore
from flashup.logmodel import level_to_string

VERSION = "0.1.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flashup",
        description="FlashUp - Firmware/OTA updater & diagnostics tool",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument(
        "-s", "--script", action="store_true", help="Run in headless script mode"
    )
    parser.add_argument(
        "-f", "--firmware", metavar="filepath", default="", help="Firmware file path"
    )
    parser.add_argument(
        "-d", "--device", metavar="device", default="", help="Target device identifier"
    )
    return parser


def _print_log(level: int, message: str) -> None:
    if level >= 1:
        print(f"[{level_to_string(level)}] {message}", file=sys.stderr)


def _run_headless(firmware: str, device: str) -> int:
    if not firmware or not device:
        print(
            "Firmware path and device ID are required in headless mode.",
            file=sys.stderr,
        )
        return 1

    core = FlashUpCore()
    core.log_message.connect(_print_log)
    results: list[bool] = []
    core.update_complete.connect(
        lambda device_id, success, message: results.append(success)
    )

    if not core.update_firmware(device, firmware):
        return 1
    core.loop.run_until_idle()
    if results and not results[-1]:
        return 1
    return 0


def _run_console(firmware: str) -> int:
    core = FlashUpCore()
    with FlashUpController(core) as controller:
        core.loop.advance(INITIAL_REFRESH_DELAY_MS)
        ok = controller.load_firmware_path(firmware) if firmware else True
        print("Devices:")
        for device_id in controller.device_list:
            print(f"  {device_id}")
        if controller.firmware_info:
            print("Firmware:")
            for key, value in controller.firmware_info.items():
                print(f"  {key}: {value}")
        for entry in controller.log_model:
            print(f"[{level_to_string(entry.level)}] {entry.message}", file=sys.stderr)
    return 0 if ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.script:
        return _run_headless(args.firmware, args.device)
    return _run_console(args.firmware)


if __name__ == "__main__":
    sys.exit(main())