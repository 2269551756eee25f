"""Firmware updates over TCP using length-prefixed JSON messages.

Every message is a 4-byte little-endian length followed by that many bytes.
Requests carry a compact JSON header (``command`` and, when a payload
follows, ``data_size``) and then the payload. Responses are JSON objects
with a ``status`` of ``ok`` or an ``error`` text. One request is in flight
at a time; later ones wait until a response or a timeout.
"""

from __future__ import annotations

import json
import socket
from collections import deque
from typing import Any, Callable, Optional

from flashup.deviceinterface import ConnectionStatus, DeviceInterface, DeviceState
from flashup.events import EventLoop, Timer

TIMEOUT_MS = 5000
DEFAULT_CHUNK_SIZE = 4096
DEFAULT_PORT = 8266
_SIZE_FIELD_LEN = 4
_RECV_SIZE = 65536

_STATES = {
    "idle": DeviceState.IDLE,
    "ready": DeviceState.READY,
    "updating": DeviceState.UPDATING,
    "rebooting": DeviceState.REBOOTING,
}

SocketFactory = Callable[[str, int], Any]


def _compact_json(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _indented_json(value: Any) -> str:
    return json.dumps(value, indent=4, sort_keys=True) + "\n"


def create_request(cmd: str, data: bytes = b"") -> bytes:
    """Encode a request as ``[size:4][JSON header][data]``."""
    header: dict[str, Any] = {"command": cmd}
    payload = bytes(data)
    if payload:
        header["data_size"] = len(payload)
    header_json = _compact_json(header)
    size = len(header_json) + len(payload)
    return size.to_bytes(_SIZE_FIELD_LEN, "little") + header_json + payload


def _open_tcp_socket(address: str, port: int) -> socket.socket:
    sock = socket.create_connection((address, port), timeout=TIMEOUT_MS / 1000)
    sock.setblocking(False)
    return sock


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class NetworkDevice(DeviceInterface):
    """A device reached over TCP, by default on port 8266."""

    def __init__(
        self,
        address: str,
        port: int = DEFAULT_PORT,
        loop: Optional[EventLoop] = None,
        socket_factory: SocketFactory = _open_tcp_socket,
    ) -> None:
        super().__init__()
        self.address = address
        self.port = port
        self.loop = loop if loop is not None else EventLoop()
        self._socket_factory = socket_factory
        self._sock: Any = None
        self._buffer = bytearray()
        self._pending: deque[bytes] = deque()
        self._waiting_for_response = False
        self._timeout_timer = Timer(self.loop, self._on_timeout, single_shot=True)

    @property
    def device_id(self) -> str:
        return f"net:{self.address}:{self.port}"

    @property
    def device_info(self) -> dict[str, str]:
        return {
            "type": "Network",
            "address": self.address,
            "port": str(self.port),
            "status": "Connected" if self.is_connected else "Disconnected",
        }

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    @property
    def optimal_chunk_size(self) -> int:
        return DEFAULT_CHUNK_SIZE

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    @property
    def waiting_for_response(self) -> bool:
        return self._waiting_for_response

    def connect(self) -> bool:
        """Start connecting; the outcome is reported through the status signal."""
        if self.is_connected:
            return True

        self._log(1, f"Connecting to device at {self.address}:{self.port}...")
        self._set_connection_status(ConnectionStatus.CONNECTING)
        self._timeout_timer.start(TIMEOUT_MS)

        try:
            self._sock = self._socket_factory(self.address, self.port)
        except OSError as exc:
            self._sock = None
            self._on_error(exc)
        else:
            self._on_connected()
        return True

    def disconnect(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None

        self._reset_link()
        self._set_connection_status(ConnectionStatus.DISCONNECTED)
        self._log(1, "Disconnected from network device")

    def begin_update(self) -> bool:
        if not self.is_connected:
            self._log(3, "Cannot begin update: device not connected")
            return False

        self._log(1, "Beginning firmware update...")
        body = _compact_json({"action": "begin_update"})
        if not self._send_request(create_request("update", body)):
            self._log(3, "Failed to send update begin request")
            return False
        return True

    def send_firmware_chunk(self, data: bytes, offset: int) -> bool:
        if not self.is_connected or self.device_state != DeviceState.UPDATING:
            self._log(3, "Cannot send firmware: device not in update mode")
            return False

        payload = bytes(data)
        header = _compact_json(
            {"action": "write_chunk", "offset": offset, "size": len(payload)}
        )
        if not self._send_request(create_request("update", header + b"\n" + payload)):
            self._log(3, f"Failed to send firmware chunk at offset {offset}")
            return False
        return True

    def finalize_update(self) -> bool:
        if not self.is_connected or self.device_state != DeviceState.UPDATING:
            self._log(3, "Cannot finalize update: device not in update mode")
            return False

        self._log(1, "Finalizing firmware update...")
        body = _compact_json({"action": "end_update"})
        if not self._send_request(create_request("update", body)):
            self._log(3, "Failed to send update finalize request")
            return False
        return True

    def cancel_update(self) -> bool:
        if not self.is_connected:
            return False

        self._log(1, "Canceling firmware update...")
        body = _compact_json({"action": "cancel_update"})
        if not self._send_request(create_request("update", body)):
            self._log(3, "Failed to send update cancel request")
            return False

        self._set_device_state(DeviceState.IDLE)
        return True

    def poll(self) -> int:
        """Read whatever the socket has waiting and handle it; returns bytes read."""
        total = 0
        while self._sock is not None:
            try:
                data = self._sock.recv(_RECV_SIZE)
            except (BlockingIOError, InterruptedError, socket.timeout):
                break
            except OSError as exc:
                self._on_error(exc)
                break
            if not data:
                self._on_disconnected()
                break
            total += len(data)
            self.feed(data)
        return total

    def feed(self, data: bytes) -> None:
        """Handle bytes received from the device."""
        self._buffer.extend(data)
        self._process_responses()

    def __enter__(self) -> "NetworkDevice":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

    def _on_connected(self) -> None:
        self._timeout_timer.stop()
        self._log(1, f"Connected to device at {self.address}:{self.port}")
        self._set_connection_status(ConnectionStatus.CONNECTED)
        self._send_request(create_request("info"))

    def _on_disconnected(self) -> None:
        self._log(1, "Device disconnected")
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None
        self._set_connection_status(ConnectionStatus.DISCONNECTED)
        self._reset_link()

    def _on_error(self, exc: BaseException) -> None:
        self._log(3, f"Socket error: {exc}")
        self._set_connection_status(ConnectionStatus.ERROR)

    def _on_timeout(self) -> None:
        self._log(2, "Request timeout")
        if self._waiting_for_response:
            self._waiting_for_response = False
            if self._pending:
                self._send_next_request()

    def _reset_link(self) -> None:
        self._buffer.clear()
        self._pending.clear()
        self._timeout_timer.stop()
        self._waiting_for_response = False

    def _process_responses(self) -> None:
        while len(self._buffer) >= _SIZE_FIELD_LEN:
            size = int.from_bytes(self._buffer[:_SIZE_FIELD_LEN], "little")
            end = _SIZE_FIELD_LEN + size
            if len(self._buffer) < end:
                return
            raw = bytes(self._buffer[_SIZE_FIELD_LEN:end])
            del self._buffer[:end]

            try:
                response = json.loads(raw)
            except ValueError:
                response = None
            if not isinstance(response, dict):
                self._log(3, "Received invalid JSON response")
                continue

            self._timeout_timer.stop()
            self._waiting_for_response = False

            if _as_str(response.get("status")) == "ok":
                self._handle_ok(response)
            else:
                error = _as_str(response.get("error"))
                self._log(3, f"Request failed: {error}")

            if self._pending:
                self._send_next_request()

    def _handle_ok(self, response: dict[str, Any]) -> None:
        if "info" in response:
            info = _as_dict(response["info"])
            state = _STATES.get(_as_str(info.get("state")), self.device_state)
            self._set_device_state(state)
            self._log(1, f"Device info: {_indented_json(info)}")
        elif "update_status" in response:
            update_status = _as_dict(response["update_status"])
            action = _as_str(update_status.get("action"))
            success = update_status.get("success") is True
            if action == "begin_update" and success:
                self._set_device_state(DeviceState.UPDATING)
            elif action == "end_update" and success:
                self._set_device_state(DeviceState.REBOOTING)
            self._log(1, f"Update status: {_indented_json(update_status)}")

    def _write(self, req: bytes) -> bool:
        try:
            self._sock.sendall(req)
        except OSError:
            self._log(3, "Failed to write data to socket")
            return False
        self._waiting_for_response = True
        self._timeout_timer.start(TIMEOUT_MS)
        return True

    def _send_request(self, req: bytes) -> bool:
        if not self.is_connected:
            return False
        if self._waiting_for_response:
            self._pending.append(req)
            return True
        return self._write(req)

    def _send_next_request(self) -> None:
        if not self._pending or self._waiting_for_response or not self.is_connected:
            return
        self._write(self._pending.popleft())