"""Front-end state and actions on top of :class:`FlashUpCore`."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, Optional, Union
from urllib.parse import urlsplit
from urllib.request import url2pathname

from flashup.events import EventLoop, Signal, Timer
from flashup.flashupcore import FlashUpCore
from flashup.logmodel import LogModel, LogRole

AUTO_REFRESH_INTERVAL_MS = 5000
INITIAL_REFRESH_DELAY_MS = 100

_logger = logging.getLogger(__name__)

FileUrl = Union[str, os.PathLike]


class NotificationType(IntEnum):
    INFO = 0
    WARNING = 1
    ERROR = 2
    SUCCESS = 3


def _to_local_file(file_url: FileUrl) -> str:
    """The local path behind a ``file:`` URL, or an empty string."""
    if isinstance(file_url, os.PathLike):
        return os.fspath(file_url)
    if not file_url:
        return ""
    parts = urlsplit(file_url)
    if parts.scheme.lower() != "file" or parts.netloc not in ("", "localhost"):
        return ""
    return url2pathname(parts.path)


def _format_header_time(moment: datetime) -> str:
    return f"{moment:%a %b} {moment.day} {moment:%H:%M:%S %Y}"


def _format_entry_time(moment: datetime) -> str:
    return f"{moment:%Y-%m-%d %H:%M:%S}.{moment.microsecond // 1000:03d}"


class FlashUpController:
    """Holds what a user interface shows and turns user actions into core calls.

    Signals:
        device_list_changed(), firmware_info_changed(), selected_device_changed(),
        update_progress_changed(), update_status_changed(), update_active_changed(),
        notification(title, message, type) with type a :class:`NotificationType`
    """

    def __init__(
        self,
        core: FlashUpCore,
        loop: Optional[EventLoop] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.core = core
        self.loop = loop if loop is not None else core.loop
        self._clock = clock

        self.device_list_changed = Signal()
        self.firmware_info_changed = Signal()
        self.selected_device_changed = Signal()
        self.update_progress_changed = Signal()
        self.update_status_changed = Signal()
        self.update_active_changed = Signal()
        self.notification = Signal()

        self._device_list: list[str] = []
        self._selected_device = ""
        self._firmware_info: dict[str, str] = {}
        self._update_progress = 0
        self._update_status = "Idle"
        self._update_active = False
        self._log_model = LogModel(clock=clock)

        core.device_discovered.connect(self._on_device_discovered)
        core.device_lost.connect(self._on_device_lost)
        core.update_progress.connect(self._on_update_progress)
        core.update_complete.connect(self._on_update_complete)
        core.log_message.connect(self._on_log_message)

        self._auto_refresh_timer = Timer(
            self.loop, self._auto_refresh_devices, interval_ms=AUTO_REFRESH_INTERVAL_MS
        )
        self._auto_refresh_timer.start()
        self._initial_refresh = Timer(self.loop, self.refresh_devices, single_shot=True)
        self._initial_refresh.start(INITIAL_REFRESH_DELAY_MS)

    @property
    def device_list(self) -> list[str]:
        return list(self._device_list)

    @property
    def firmware_info(self) -> dict[str, str]:
        return dict(self._firmware_info)

    @property
    def selected_device(self) -> str:
        return self._selected_device

    @selected_device.setter
    def selected_device(self, device_id: str) -> None:
        if self._selected_device != device_id:
            self._selected_device = device_id
            self.selected_device_changed.emit()

    @property
    def update_progress(self) -> int:
        return self._update_progress

    @property
    def update_status(self) -> str:
        return self._update_status

    @property
    def update_active(self) -> bool:
        return self._update_active

    @property
    def log_model(self) -> LogModel:
        return self._log_model

    def refresh_devices(self) -> None:
        self.core.discover_devices()

    def load_firmware(self, file_url: FileUrl) -> bool:
        """Load firmware from a ``file:`` URL or a path object."""
        file_path = _to_local_file(file_url)
        if not file_path:
            self._notify("Error", "Invalid file path", NotificationType.ERROR)
            return False

        self._on_log_message(1, f"Loading firmware from {file_path}")

        if not self.core.load_firmware(file_path):
            self._notify("Error", "Failed to load firmware file", NotificationType.ERROR)
            return False

        info = self.core.firmware_info()
        self._firmware_info = dict(info)
        self.firmware_info_changed.emit()

        name = info.get("name", "Unknown")
        version = info.get("version", "0.0.0")
        self._notify("Firmware Loaded", f"{name} v{version}", NotificationType.SUCCESS)
        return True

    def start_update(self) -> bool:
        if not self._selected_device:
            self._notify("Error", "No device selected", NotificationType.ERROR)
            return False
        if not self._firmware_info:
            self._notify("Error", "No firmware loaded", NotificationType.ERROR)
            return False

        self._on_log_message(1, f"Starting update for device {self._selected_device}")

        if not self.core.update_firmware(self._selected_device):
            self._notify("Error", "Failed to start update", NotificationType.ERROR)
            return False

        self._update_active = True
        self.update_active_changed.emit()
        return True

    def cancel_update(self) -> bool:
        if not self._update_active:
            return False

        self._on_log_message(1, "Canceling update")

        if not self.core.cancel_update(self._selected_device):
            self._notify("Error", "Failed to cancel update", NotificationType.ERROR)
            return False

        self._update_active = False
        self.update_active_changed.emit()
        self._notify(
            "Update Canceled", "Firmware update was canceled", NotificationType.WARNING
        )
        return True

    def get_device_info(self, device_id: str) -> dict[str, Any]:
        return dict(self.core.device_info(device_id))

    def clear_logs(self) -> None:
        self._log_model.clear()

    def save_logs(self, file_url: FileUrl) -> bool:
        """Write the log to a file; False if the path is invalid or unwritable."""
        file_path = _to_local_file(file_url)
        if not file_path:
            _logger.warning("Invalid file path for log saving")
            return False

        lines = [f"FlashUp Log - {_format_header_time(self._clock())}", ""]
        for row in range(self._log_model.row_count()):
            timestamp = self._log_model.data(row, LogRole.TIMESTAMP)
            level = self._log_model.data(row, LogRole.LEVEL_STR)
            message = self._log_model.data(row, LogRole.MESSAGE)
            lines.append(f"{_format_entry_time(timestamp)} [{level}] {message}")

        try:
            with open(file_path, "w", encoding="utf-8") as out:
                out.write("\n".join(lines) + "\n")
        except OSError as exc:
            _logger.warning("Failed to open file for writing: %s", exc)
            return False
        return True

    def close(self) -> None:
        """Stop the refresh timers."""
        self._auto_refresh_timer.stop()
        self._initial_refresh.stop()

    def __enter__(self) -> "FlashUpController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _notify(self, title: str, message: str, kind: NotificationType) -> None:
        self.notification.emit(title, message, kind)

    def _on_device_discovered(self, device_id: str, info: dict[str, str]) -> None:
        if device_id in self._device_list:
            return
        self._device_list.append(device_id)
        self.device_list_changed.emit()

        kind = info.get("type", "Unknown")
        description = info.get("description", device_id)
        self._on_log_message(1, f"Discovered {kind} device: {description}")

        if len(self._device_list) == 1:
            self.selected_device = device_id

    def _on_device_lost(self, device_id: str) -> None:
        if device_id not in self._device_list:
            return
        self._device_list.remove(device_id)
        self.device_list_changed.emit()

        self._on_log_message(1, f"Device lost: {device_id}")

        if self._selected_device == device_id:
            self.selected_device = self._device_list[0] if self._device_list else ""

    def _on_update_progress(self, device_id: str, progress: int, status: str) -> None:
        if device_id != self._selected_device:
            return
        self._update_progress = progress
        self._update_status = status
        self.update_progress_changed.emit()
        self.update_status_changed.emit()

    def _on_update_complete(self, device_id: str, success: bool, message: str) -> None:
        if device_id != self._selected_device:
            return
        self._update_active = False
        self.update_active_changed.emit()
        if success:
            self._notify("Update Complete", message, NotificationType.SUCCESS)
        else:
            self._notify("Update Failed", message, NotificationType.ERROR)

    def _on_log_message(self, level: int, message: str) -> None:
        self._log_model.add_message(level, message)

    def _auto_refresh_devices(self) -> None:
        if not self._update_active:
            self.refresh_devices()