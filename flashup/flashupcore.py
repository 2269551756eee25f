"""Central manager for devices, loaded firmware and running updates."""

from __future__ import annotations

import os
from typing import Optional, Union

from flashup.deviceinterface import DeviceInterface
from flashup.events import EventLoop, Signal
from flashup.firmwarepackage import FirmwareError, FirmwarePackage
from flashup.updatejob import UpdateJob

_SIMULATED_DEVICES = (
    (
        "usb:ttyUSB0",
        {
            "type": "USB-CDC",
            "port": "/dev/ttyUSB0",
            "description": "ESP32 Development Board",
            "protocol": "ESP-IDF",
        },
    ),
    (
        "net:192.168.1.100",
        {
            "type": "WiFi",
            "ip": "192.168.1.100",
            "hostname": "esp32-ota",
            "protocol": "ESP-OTA",
        },
    ),
)


class FlashUpCore:
    """Tracks devices and firmware and runs one update job per device.

    Signals:
        device_discovered(device_id, info)
        device_lost(device_id)
        update_progress(device_id, progress, status)
        update_complete(device_id, success, message)
        log_message(level, message)
    """

    def __init__(self, loop: Optional[EventLoop] = None) -> None:
        self.loop = loop if loop is not None else EventLoop()
        self.device_discovered = Signal()
        self.device_lost = Signal()
        self.update_progress = Signal()
        self.update_complete = Signal()
        self.log_message = Signal()

        self._devices: dict[str, DeviceInterface] = {}
        self._firmware: Optional[FirmwarePackage] = None
        self._active_jobs: dict[str, UpdateJob] = {}

        self._register_plugins()
        self._log(1, "FlashUp Core initialized")

    @property
    def active_devices(self) -> list[str]:
        """Ids of devices with an update job running."""
        return sorted(self._active_jobs)

    def add_device(self, device: DeviceInterface) -> None:
        """Make a device available for updates under its own id."""
        self._devices[device.device_id] = device

    def discover_devices(self) -> None:
        """Forget known devices and announce the devices found by a scan."""
        self._log(1, "Starting device discovery...")
        self._devices.clear()
        for device_id, info in _SIMULATED_DEVICES:
            self.device_discovered.emit(device_id, dict(info))
        self._log(1, f"Found {len(self._devices)} devices")

    def available_devices(self) -> list[str]:
        return sorted(self._devices)

    def device_info(self, device_id: str) -> dict[str, str]:
        device = self._devices.get(device_id)
        return dict(device.device_info) if device is not None else {}

    def load_firmware(self, file_path: Union[str, os.PathLike]) -> bool:
        """Open a firmware package; False, with an error logged, if it is invalid."""
        self._log(1, f"Loading firmware from {os.fspath(file_path)}")
        try:
            self._firmware = FirmwarePackage(file_path)
        except FirmwareError as exc:
            self._log(3, f"Failed to load firmware: {exc}")
            self._firmware = None
            return False

        info = self._firmware.metadata
        name = info.get("name", "Unknown")
        version = info.get("version", "0.0.0")
        self._log(1, f"Loaded firmware: {name} v{version}")
        return True

    def firmware_info(self) -> dict[str, str]:
        return self._firmware.metadata if self._firmware is not None else {}

    def update_firmware(
        self,
        device_id: str,
        firmware_path: Optional[Union[str, os.PathLike]] = None,
    ) -> bool:
        """Start updating a device, loading ``firmware_path`` first if given."""
        if device_id in self._active_jobs:
            self.cancel_update(device_id)

        if firmware_path and not self.load_firmware(firmware_path):
            self._log(3, "Failed to load firmware file")
            return False

        if self._firmware is None:
            self._log(3, "No firmware loaded")
            return False

        device = self._devices.get(device_id)
        if device is None:
            self._log(3, f"Unknown device: {device_id}")
            return False

        try:
            job = UpdateJob(device, self._firmware, self.loop)
            self._attach_job(device_id, job)
            self._active_jobs[device_id] = job
            job.start()
        except Exception as exc:  # a device plug-in may raise anything
            self._log(3, f"Failed to start update: {exc}")
            return False

        self._log(1, f"Started firmware update for device {device_id}")
        return True

    def cancel_update(self, device_id: str) -> bool:
        job = self._active_jobs.get(device_id)
        if job is None:
            self._log(2, f"No active update job for device {device_id}")
            return False

        self._log(1, f"Canceling update for device {device_id}")
        try:
            job.cancel()
        except Exception as exc:  # a device plug-in may raise anything
            self._log(3, f"Failed to cancel update: {exc}")
            return False

        self._active_jobs.pop(device_id, None)
        self.update_complete.emit(device_id, False, "Update canceled by user")
        return True

    def shutdown(self) -> None:
        """Cancel every running update."""
        for device_id in list(self._active_jobs):
            self.cancel_update(device_id)

    def __enter__(self) -> "FlashUpCore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def _attach_job(self, device_id: str, job: UpdateJob) -> None:
        def on_progress(progress: int, status: str) -> None:
            self.update_progress.emit(device_id, progress, status)

        def on_completed(success: bool, message: str) -> None:
            self.update_complete.emit(device_id, success, message)
            if self._active_jobs.get(device_id) is job:
                del self._active_jobs[device_id]

        job.progress_changed.connect(on_progress)
        job.completed.connect(on_completed)
        job.log_message.connect(self.log_message.emit)

    def _register_plugins(self) -> None:
        self._log(1, "Registering device plugins...")
        self._log(1, "Device plugins registered")

    def _log(self, level: int, message: str) -> None:
        self.log_message.emit(level, message)