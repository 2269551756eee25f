"""Common interface for devices that can receive firmware updates."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import IntEnum

from flashup.events import Signal


class ConnectionStatus(IntEnum):
    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2
    ERROR = 3


class DeviceState(IntEnum):
    IDLE = 0
    READY = 1
    UPDATING = 2
    REBOOTING = 3


class DeviceInterface(ABC):
    """Base class for serial, network and other firmware-updatable devices.

    Signals:
        connection_status_changed(status)
        device_state_changed(state)
        log_message(level, message) with level 0=debug, 1=info, 2=warning, 3=error
    """

    def __init__(self) -> None:
        self.connection_status_changed = Signal()
        self.device_state_changed = Signal()
        self.log_message = Signal()
        self._status = ConnectionStatus.DISCONNECTED
        self._state = DeviceState.IDLE

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    @property
    def device_state(self) -> DeviceState:
        return self._state

    @property
    @abstractmethod
    def device_id(self) -> str:
        """Unique identifier of the device."""

    @property
    @abstractmethod
    def device_info(self) -> dict[str, str]:
        """Descriptive properties of the device."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the link to the device is open."""

    @property
    @abstractmethod
    def optimal_chunk_size(self) -> int:
        """Preferred size in bytes of one firmware chunk."""

    @abstractmethod
    def connect(self) -> bool:
        """Open the link to the device; False if that fails."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close the link to the device."""

    @abstractmethod
    def begin_update(self) -> bool:
        """Ask the device to enter update mode."""

    @abstractmethod
    def send_firmware_chunk(self, data: bytes, offset: int) -> bool:
        """Send one chunk of firmware at the given offset."""

    @abstractmethod
    def finalize_update(self) -> bool:
        """Tell the device that all firmware has been sent."""

    @abstractmethod
    def cancel_update(self) -> bool:
        """Abort an update in progress."""

    def _set_connection_status(self, status: ConnectionStatus) -> None:
        self._status = status
        self.connection_status_changed.emit(status)

    def _set_device_state(self, state: DeviceState) -> None:
        self._state = state
        self.device_state_changed.emit(state)

    def _log(self, level: int, message: str) -> None:
        self.log_message.emit(level, message)