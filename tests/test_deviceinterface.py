import pytest

from flashup.deviceinterface import ConnectionStatus, DeviceInterface, DeviceState


class FakeDevice(DeviceInterface):
    def __init__(self):
        super().__init__()
        self.sent = []

    @property
    def device_id(self):
        return "fake:0"

    @property
    def device_info(self):
        return {"type": "Fake"}

    @property
    def is_connected(self):
        return self.connection_status == ConnectionStatus.CONNECTED

    @property
    def optimal_chunk_size(self):
        return 16

    def connect(self):
        self._log(1, "connecting")
        self._set_connection_status(ConnectionStatus.CONNECTED)
        return True

    def disconnect(self):
        self._set_connection_status(ConnectionStatus.DISCONNECTED)

    def begin_update(self):
        if not self.is_connected:
            return False
        self._set_device_state(DeviceState.UPDATING)
        return True

    def send_firmware_chunk(self, data, offset):
        if self.device_state != DeviceState.UPDATING:
            return False
        self.sent.append((offset, data))
        return True

    def finalize_update(self):
        self._set_device_state(DeviceState.REBOOTING)
        return True

    def cancel_update(self):
        self._set_device_state(DeviceState.IDLE)
        return True


def test_base_class_cannot_be_instantiated():
    with pytest.raises(TypeError):
        DeviceInterface()


def test_incomplete_subclass_cannot_be_instantiated():
    class Partial(DeviceInterface):
        def connect(self):
            return True

    with pytest.raises(TypeError):
        DeviceInterface.__new__(Partial)
    with pytest.raises(TypeError):
        Partial()


def test_new_device_starts_disconnected_and_idle():
    device = FakeDevice()
    assert device.connection_status is ConnectionStatus.DISCONNECTED
    assert device.device_state is DeviceState.IDLE
    assert not device.is_connected
    DeviceInterface._set_device_state(device, DeviceState.READY)
    assert device.device_state is DeviceState.READY


def test_status_changes_are_signalled():
    device = FakeDevice()
    statuses = []
    device.connection_status_changed.connect(statuses.append)
    DeviceInterface._set_connection_status(device, ConnectionStatus.CONNECTING)
    device.connect()
    device.disconnect()
    assert statuses == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
    ]
    assert device.connection_status is ConnectionStatus.DISCONNECTED


def test_state_changes_are_signalled():
    device = FakeDevice()
    states = []
    device.device_state_changed.connect(states.append)
    device.connect()
    DeviceInterface._set_device_state(device, DeviceState.READY)
    assert device.begin_update()
    assert device.finalize_update()
    assert states == [DeviceState.READY, DeviceState.UPDATING, DeviceState.REBOOTING]


def test_log_messages_carry_level_and_text():
    device = FakeDevice()
    logs = []
    device.log_message.connect(lambda level, msg: logs.append((level, msg)))
    device.connect()
    DeviceInterface._log(device, 3, "boom")
    assert logs == [(1, "connecting"), (3, "boom")]


def test_signals_are_per_instance():
    first, second = FakeDevice(), FakeDevice()
    seen = []
    first.connection_status_changed.connect(seen.append)
    DeviceInterface._set_connection_status(second, ConnectionStatus.CONNECTED)
    assert seen == []
    assert second.connection_status is ConnectionStatus.CONNECTED
    assert first.connection_status is ConnectionStatus.DISCONNECTED


def test_begin_update_requires_connection():
    device = FakeDevice()
    assert device.begin_update() is False
    assert device.send_firmware_chunk(b"abc", 0) is False
    assert device.sent == []
    DeviceInterface._set_connection_status(device, ConnectionStatus.CONNECTED)
    assert device.begin_update() is True
    assert device.send_firmware_chunk(b"abc", 0) is True
    assert device.sent == [(0, b"abc")]