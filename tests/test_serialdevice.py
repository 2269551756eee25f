import pytest
import serial

from flashup.deviceinterface import ConnectionStatus, DeviceState
from flashup.events import EventLoop
from flashup.serialdevice import (
    DEFAULT_CHUNK_SIZE,
    TIMEOUT_MS,
    SerialDevice,
    create_command,
)

PORT_NAME = "/dev/ttyTEST0"


class FakePort:
    def __init__(self, fail_write=False):
        self.is_open = True
        self.written = []
        self.incoming = bytearray()
        self.fail_write = fail_write

    @property
    def in_waiting(self):
        return len(self.incoming)

    def read(self, n):
        data = bytes(self.incoming[:n])
        del self.incoming[:n]
        return data

    def write(self, data):
        if self.fail_write:
            raise serial.SerialException("write failed")
        self.written.append(bytes(data))
        return len(data)

    def close(self):
        self.is_open = False


@pytest.fixture
def port():
    return FakePort()


@pytest.fixture
def loop():
    return EventLoop()


@pytest.fixture
def device(port, loop):
    return SerialDevice(PORT_NAME, loop=loop, port_factory=lambda name: port)


def record(signal):
    seen = []
    signal.connect(lambda *args: seen.append(args))
    return seen


def test_create_command_without_data():
    assert create_command("INFO") == b"INFO:\n"


def test_create_command_with_data():
    assert create_command("CHUNK", b"xy") == b"CHUNK:xy\n"


def test_device_id_and_info(device):
    assert device.device_id == "serial:" + PORT_NAME
    info = device.device_info
    assert info["type"] == "Serial"
    assert info["port"] == PORT_NAME
    assert info["baudRate"] == "115200"
    assert info["status"] == "Disconnected"
    assert device.optimal_chunk_size == DEFAULT_CHUNK_SIZE == 1024


def test_connect_sends_info_handshake(device, port):
    statuses = record(device.connection_status_changed)
    assert device.connect() is True
    assert statuses == [(ConnectionStatus.CONNECTING,), (ConnectionStatus.CONNECTED,)]
    assert port.written == [b"INFO:\n"]
    assert device.is_connected
    assert device.device_info["status"] == "Connected"
    assert device.waiting_for_ack


def test_connect_twice_does_not_resend(device, port):
    device.connect()
    assert device.connect() is True
    assert port.written == [b"INFO:\n"]


def test_connect_failure_sets_error(loop):
    def factory(name):
        raise serial.SerialException("no such port")

    dev = SerialDevice(PORT_NAME, loop=loop, port_factory=factory)
    logs = record(dev.log_message)
    assert dev.connect() is False
    assert dev.connection_status == ConnectionStatus.ERROR
    assert not dev.is_connected
    assert (3, "Failed to open serial port: no such port") in logs


def test_commands_queue_until_ack(device, port):
    device.connect()
    assert device.begin_update() is True
    assert port.written == [b"INFO:\n"]
    assert device.pending_commands == 1
    device.feed(b"ACK\n")
    assert port.written == [b"INFO:\n", b"UPDATE_BEGIN:\n"]
    assert device.pending_commands == 0


def test_state_line_changes_state(device):
    device.connect()
    states = record(device.device_state_changed)
    device.feed(b"STATE:UPDATING\r\n")
    assert device.device_state == DeviceState.UPDATING
    assert states == [(DeviceState.UPDATING,)]


def test_partial_line_is_buffered(device):
    device.connect()
    device.feed(b"STATE:REA")
    assert device.device_state == DeviceState.IDLE
    device.feed(b"DY\n")
    assert device.device_state == DeviceState.READY


def test_unknown_state_keeps_current_state(device):
    device.connect()
    device.feed(b"STATE:READY\n")
    states = record(device.device_state_changed)
    device.feed(b"STATE:WEIRD\n")
    assert device.device_state == DeviceState.READY
    assert states == [(DeviceState.READY,)]


def test_error_and_info_lines_are_logged(device):
    device.connect()
    logs = record(device.log_message)
    device.feed(b"ERROR:boom\nINFO:v1\n")
    assert (3, "Device error: boom") in logs
    assert (1, "Device info: v1") in logs


def test_chunk_refused_outside_update_mode(device):
    device.connect()
    assert device.send_firmware_chunk(b"ab", 0) is False
    assert device.finalize_update() is False


def test_chunk_wire_format(device, port):
    device.connect()
    device.feed(b"ACK\nSTATE:UPDATING\n")
    assert device.send_firmware_chunk(b"ab", 5) is True
    assert port.written[-1] == b"CHUNK:\x05\x00\x00\x00ab\n"


def test_timeout_releases_next_command(device, port, loop):
    device.connect()
    device.begin_update()
    logs = record(device.log_message)
    loop.advance(TIMEOUT_MS)
    assert (2, "Command timeout") in logs
    assert port.written[-1] == b"UPDATE_BEGIN:\n"


def test_cancel_update_sets_idle(device, port):
    device.connect()
    device.feed(b"ACK\nSTATE:UPDATING\n")
    assert device.cancel_update() is True
    assert device.device_state == DeviceState.IDLE
    assert port.written[-1] == b"UPDATE_CANCEL:\n"


def test_operations_fail_when_disconnected(device):
    assert device.begin_update() is False
    assert device.cancel_update() is False
    assert device.poll() == 0


def test_disconnect_closes_and_clears(device, port):
    device.connect()
    device.begin_update()
    device.disconnect()
    assert port.is_open is False
    assert not device.is_connected
    assert device.pending_commands == 0
    assert not device.waiting_for_ack
    assert device.connection_status == ConnectionStatus.DISCONNECTED


def test_poll_reads_incoming(device, port):
    device.connect()
    port.incoming.extend(b"STATE:REBOOTING\n")
    assert device.poll() == len(b"STATE:REBOOTING\n")
    assert device.device_state == DeviceState.REBOOTING


def test_write_error_fails_and_sets_error(loop):
    port = FakePort(fail_write=True)
    dev = SerialDevice(PORT_NAME, loop=loop, port_factory=lambda name: port)
    dev.connect()
    assert dev.connection_status == ConnectionStatus.ERROR
    assert dev.begin_update() is False
    assert not dev.waiting_for_ack


def test_context_manager_disconnects(port, loop):
    with SerialDevice(PORT_NAME, loop=loop, port_factory=lambda name: port) as dev:
        dev.connect()
        assert dev.is_connected
    assert port.is_open is False