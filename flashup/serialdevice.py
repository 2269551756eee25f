"""Firmware updates over a serial line using a line-based ACK protocol.

Commands are ``NAME:payload\\n``. The device answers with lines such as
``ACK``, ``INFO:...``, ``STATE:READY`` or ``ERROR:...``. One command is in
flight at a time; further commands wait until an ``ACK`` or a timeout.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Optional

import serial

from flashup.deviceinterface import ConnectionStatus, DeviceInterface, DeviceState
from flashup.events import EventLoop, Timer

TIMEOUT_MS = 3000
DEFAULT_CHUNK_SIZE = 1024
BAUD_RATE = 115200

_STATES = {
    b"IDLE": DeviceState.IDLE,
    b"READY": DeviceState.READY,
    b"UPDATING": DeviceState.UPDATING,
    b"REBOOTING": DeviceState.REBOOTING,
}

PortFactory = Callable[[str], Any]


def create_command(cmd: str, data: bytes = b"") -> bytes:
    """Encode a command as ``CMD:data\\n``."""
    return cmd.encode("utf-8") + b":" + bytes(data) + b"\n"


def _open_serial_port(port_name: str) -> serial.Serial:
    return serial.Serial(
        port=port_name,
        baudrate=BAUD_RATE,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=False,
        timeout=0,
    )


class SerialDevice(DeviceInterface):
    """A device reached through a serial port at 115200 baud, 8N1."""

    def __init__(
        self,
        port_name: str,
        loop: Optional[EventLoop] = None,
        port_factory: PortFactory = _open_serial_port,
    ) -> None:
        super().__init__()
        self.port_name = port_name
        self.loop = loop if loop is not None else EventLoop()
        self._port_factory = port_factory
        self._port: Any = None
        self._buffer = bytearray()
        self._pending: deque[bytes] = deque()
        self._waiting_for_ack = False
        self._timeout_timer = Timer(self.loop, self._on_timeout, single_shot=True)

    @property
    def device_id(self) -> str:
        return f"serial:{self.port_name}"

    @property
    def device_info(self) -> dict[str, str]:
        return {
            "type": "Serial",
            "port": self.port_name,
            "baudRate": str(BAUD_RATE),
            "status": "Connected" if self.is_connected else "Disconnected",
        }

    @property
    def is_connected(self) -> bool:
        return self._port is not None and bool(self._port.is_open)

    @property
    def optimal_chunk_size(self) -> int:
        return DEFAULT_CHUNK_SIZE

    @property
    def pending_commands(self) -> int:
        return len(self._pending)

    @property
    def waiting_for_ack(self) -> bool:
        return self._waiting_for_ack

    def connect(self) -> bool:
        if self.is_connected:
            return True

        self._log(1, f"Connecting to serial port {self.port_name}...")
        self._set_connection_status(ConnectionStatus.CONNECTING)

        try:
            self._port = self._port_factory(self.port_name)
        except (serial.SerialException, OSError, ValueError) as exc:
            self._port = None
            self._log(3, f"Failed to open serial port: {exc}")
            self._set_connection_status(ConnectionStatus.ERROR)
            return False

        self._log(1, "Connected to serial device")
        self._set_connection_status(ConnectionStatus.CONNECTED)
        self._send_command(create_command("INFO"))
        return True

    def disconnect(self) -> None:
        if self.is_connected:
            self._port.close()
        self._port = None

        self._buffer.clear()
        self._pending.clear()
        self._timeout_timer.stop()
        self._waiting_for_ack = False

        self._set_connection_status(ConnectionStatus.DISCONNECTED)
        self._log(1, "Disconnected from serial device")

    def begin_update(self) -> bool:
        if not self.is_connected:
            self._log(3, "Cannot begin update: device not connected")
            return False

        self._log(1, "Beginning firmware update...")
        if not self._send_command(create_command("UPDATE_BEGIN")):
            self._log(3, "Failed to send update begin command")
            return False
        return True

    def send_firmware_chunk(self, data: bytes, offset: int) -> bool:
        if not self.is_connected or self.device_state != DeviceState.UPDATING:
            self._log(3, "Cannot send firmware: device not in update mode")
            return False

        offset_bytes = (offset & 0xFFFFFFFF).to_bytes(4, "little")
        if not self._send_command(create_command("CHUNK", offset_bytes + bytes(data))):
            self._log(3, f"Failed to send firmware chunk at offset {offset}")
            return False
        return True

    def finalize_update(self) -> bool:
        if not self.is_connected or self.device_state != DeviceState.UPDATING:
            self._log(3, "Cannot finalize update: device not in update mode")
            return False

        self._log(1, "Finalizing firmware update...")
        if not self._send_command(create_command("UPDATE_END")):
            self._log(3, "Failed to send update end command")
            return False
        return True

    def cancel_update(self) -> bool:
        if not self.is_connected:
            return False

        self._log(1, "Canceling firmware update...")
        if not self._send_command(create_command("UPDATE_CANCEL")):
            self._log(3, "Failed to send update cancel command")
            return False

        self._set_device_state(DeviceState.IDLE)
        return True

    def poll(self) -> int:
        """Read whatever the port has waiting and handle it; returns bytes read."""
        if not self.is_connected:
            return 0
        try:
            waiting = self._port.in_waiting
            data = self._port.read(waiting) if waiting else b""
        except (serial.SerialException, OSError) as exc:
            self._on_error(exc)
            return 0
        if data:
            self.feed(data)
        return len(data)

    def feed(self, data: bytes) -> None:
        """Handle bytes received from the device."""
        self._buffer.extend(data)
        self._process_responses()

    def __enter__(self) -> "SerialDevice":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

    def _process_responses(self) -> None:
        while (newline := self._buffer.find(b"\n")) != -1:
            line = bytes(self._buffer[:newline]).strip()
            del self._buffer[: newline + 1]

            self._log(0, f"Serial response: {line.decode('utf-8', 'replace')}")

            if line.startswith(b"ACK"):
                self._timeout_timer.stop()
                self._waiting_for_ack = False
                if self._pending:
                    self._send_next_command()
            elif line.startswith(b"INFO:"):
                self._log(1, f"Device info: {line[5:].decode('utf-8', 'replace')}")
            elif line.startswith(b"STATE:"):
                state = _STATES.get(line[6:], self.device_state)
                self._set_device_state(state)
            elif line.startswith(b"ERROR:"):
                self._log(3, f"Device error: {line[6:].decode('utf-8', 'replace')}")

    def _write(self, cmd: bytes) -> bool:
        try:
            written = self._port.write(cmd)
        except (serial.SerialException, OSError) as exc:
            self._on_error(exc)
            written = -1
        if written != len(cmd):
            self._log(3, "Failed to write command to serial port")
            return False
        self._waiting_for_ack = True
        self._timeout_timer.start(TIMEOUT_MS)
        return True

    def _send_command(self, cmd: bytes) -> bool:
        if not self.is_connected:
            return False
        if self._waiting_for_ack:
            self._pending.append(cmd)
            return True
        return self._write(cmd)

    def _send_next_command(self) -> None:
        if not self._pending or self._waiting_for_ack:
            return
        self._write(self._pending.popleft())

    def _on_error(self, exc: BaseException) -> None:
        self._log(3, f"Serial port error: {exc}")
        self._set_connection_status(ConnectionStatus.ERROR)

    def _on_timeout(self) -> None:
        self._log(2, "Command timeout")
        if self._waiting_for_ack:
            self._waiting_for_ack = False
            if self._pending:
                self._send_next_command()