"""Drives one firmware update on one device, chunk by chunk."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from flashup.deviceinterface import ConnectionStatus, DeviceInterface, DeviceState
from flashup.events import EventLoop, Signal, Timer
from flashup.firmwarepackage import FirmwarePackage

DEFAULT_MAX_RETRIES = 3
RETRY_INTERVAL_MS = 1000
CHUNK_INTERVAL_MS = 10
DEFAULT_CHUNK_SIZE = 4096


class JobState(Enum):
    """Stages of an update; the value is the status text shown for it."""

    IDLE = "Idle"
    CONNECTING = "Connecting to device"
    PREPARING = "Preparing device"
    UPLOADING = "Uploading firmware"
    FINALIZING = "Finalizing update"
    COMPLETE = "Update complete"
    FAILED = "Update failed"
    CANCELED = "Update canceled"


_IN_FLIGHT = frozenset(
    {JobState.UPLOADING, JobState.PREPARING, JobState.FINALIZING}
)
_FINISHED = frozenset({JobState.COMPLETE, JobState.FAILED, JobState.CANCELED})


class UpdateJob:
    """Uploads a firmware package to a device and reports how it goes.

    Signals:
        progress_changed(progress, status)
        completed(success, message)
        log_message(level, message)
    """

    def __init__(
        self,
        device: DeviceInterface,
        firmware: FirmwarePackage,
        loop: Optional[EventLoop] = None,
    ) -> None:
        self.device = device
        self.firmware = firmware
        self.loop = loop if loop is not None else EventLoop()

        self.progress_changed = Signal()
        self.completed = Signal()
        self.log_message = Signal()

        self._state = JobState.IDLE
        self._progress = 0
        self._offset = 0
        self._retry_count = 0
        self.max_retries = DEFAULT_MAX_RETRIES
        self._paused = False

        self._retry_timer = Timer(self.loop, self._upload_next_chunk, single_shot=True)
        self._chunk_timer = Timer(self.loop, self._upload_next_chunk, single_shot=True)

        device.connection_status_changed.connect(self._on_connection_status_changed)
        device.device_state_changed.connect(self._on_device_state_changed)
        device.log_message.connect(self._forward_log)
        self._attached = True

        chunk_size = device.optimal_chunk_size
        self.chunk_size = chunk_size if chunk_size > 0 else DEFAULT_CHUNK_SIZE

        self._log(0, f"Update job created for device {device.device_id}")

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def current_offset(self) -> int:
        return self._offset

    def start(self) -> None:
        """Connect to the device if needed and begin the update."""
        if self._state is not JobState.IDLE:
            self._log(2, "Update already in progress")
            return

        self._log(1, "Starting update...")
        self._set_state(JobState.CONNECTING)
        self._set_progress(0)

        if self.device.is_connected:
            self._set_state(JobState.PREPARING)
            if not self.device.begin_update():
                self._fail("Failed to initialize update on device")
        elif not self.device.connect():
            self._fail("Failed to connect to device")

    def cancel(self) -> None:
        """Abort the update unless it has already finished."""
        if self._state in _FINISHED:
            return

        self._log(1, "Canceling update...")
        self._stop_timers()
        if self.device.is_connected:
            self.device.cancel_update()

        self._set_state(JobState.CANCELED)
        self.completed.emit(False, "Update canceled")
        self._detach()

    def _on_connection_status_changed(self, status: ConnectionStatus) -> None:
        self._log(0, f"Device connection status: {int(status)}")

        if self._state is JobState.CONNECTING:
            if status == ConnectionStatus.CONNECTED:
                self._set_state(JobState.PREPARING)
                if not self.device.begin_update():
                    self._fail("Failed to initialize update on device")
            elif status == ConnectionStatus.ERROR:
                self._fail("Failed to connect to device")
        elif status == ConnectionStatus.DISCONNECTED and self._state in _IN_FLIGHT:
            self._fail("Device disconnected during update")

    def _on_device_state_changed(self, state: DeviceState) -> None:
        self._log(0, f"Device state: {int(state)}")

        if self._state is JobState.PREPARING and state == DeviceState.READY:
            self._offset = 0
            self._start_upload()
        elif self._state is JobState.FINALIZING and state == DeviceState.REBOOTING:
            self._complete()
        elif state == DeviceState.REBOOTING:
            # A reboot anywhere but at the end of an update means the device failed.
            self._fail("Device reported an error")

    def _upload_next_chunk(self) -> None:
        if self._state is not JobState.UPLOADING or self._paused:
            return

        total = self.firmware.size
        if self._offset >= total:
            self._set_state(JobState.FINALIZING)
            if not self.device.finalize_update():
                self._fail("Failed to finalize update")
            return

        chunk = self.firmware.get_chunk(self._offset, self.chunk_size)
        if self.device.send_firmware_chunk(chunk, self._offset):
            self._offset += len(chunk)
            self._retry_count = 0
            self._set_progress(int(self._offset / total * 100))
            self._chunk_timer.start(CHUNK_INTERVAL_MS)
        elif self._retry_count < self.max_retries:
            self._retry_count += 1
            self._log(
                2,
                f"Failed to send chunk, retrying ({self._retry_count}/{self.max_retries})...",
            )
            self._retry_timer.start(RETRY_INTERVAL_MS)
        else:
            self._fail("Failed to send firmware chunk after maximum retries")

    def _status_text(self) -> str:
        if self._state is JobState.UPLOADING:
            return f"{JobState.UPLOADING.value} ({self._progress}%)"
        return self._state.value

    def _set_state(self, state: JobState) -> None:
        if self._state is state:
            return
        self._state = state
        self.progress_changed.emit(self._progress, state.value)
        self._log(1, f"Update state: {state.value}")

    def _set_progress(self, progress: int) -> None:
        if self._progress == progress:
            return
        self._progress = progress
        self.progress_changed.emit(progress, self._status_text())

    def _start_upload(self) -> None:
        self._set_state(JobState.UPLOADING)
        self._set_progress(0)
        self._log(1, "Starting firmware upload...")
        self._offset = 0
        self._retry_count = 0
        self._paused = False
        self._chunk_timer.start(0)

    def _fail(self, reason: str) -> None:
        if self._state in _FINISHED:
            return
        self._log(3, f"Update failed: {reason}")
        self._stop_timers()
        self._set_state(JobState.FAILED)
        self.completed.emit(False, reason)
        self._detach()

    def _complete(self) -> None:
        self._log(1, "Update completed successfully")
        self._stop_timers()
        self._set_state(JobState.COMPLETE)
        self.completed.emit(True, "Firmware updated successfully")
        self._detach()

    def _stop_timers(self) -> None:
        self._retry_timer.stop()
        self._chunk_timer.stop()

    def _detach(self) -> None:
        if not self._attached:
            return
        self._attached = False
        self.device.connection_status_changed.disconnect(self._on_connection_status_changed)
        self.device.device_state_changed.disconnect(self._on_device_state_changed)
        self.device.log_message.disconnect(self._forward_log)

    def _forward_log(self, level: int, message: str) -> None:
        self.log_message.emit(level, message)

    def _log(self, level: int, message: str) -> None:
        self.log_message.emit(level, message)