# flashup

A firmware and OTA updater for devices reached over a serial port or a TCP
connection. It reads firmware packages, checks their integrity and streams
them to a device in chunks, reporting progress and log messages through
signals.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Firmware package format

A firmware package is a single file laid out as:

| Bytes | Content                                   |
|-------|-------------------------------------------|
| 7     | the magic `FLASHUP`                       |
| 4     | metadata length `N`, little-endian        |
| N     | JSON metadata object                      |
| rest  | the firmware image                        |

The metadata must carry non-empty string fields `name`, `version`, `target`,
`timestamp` and `sha256`; `sha256` is the hex digest of the firmware image
and is checked when the package is opened. An optional `signature` field is
kept and available as `FirmwarePackage.signature`.

`flashup.firmwarepackage.build_package(metadata, payload)` produces the bytes
of such a file, adding `sha256` when the metadata lacks it.
`FirmwarePackage(path)` opens one and raises `FirmwareError` when it is
malformed or its digest does not match. It offers `metadata`, `size`,
`data()`, `get_chunk(offset, size)`, `chunk_count(chunk_size)`, `verify()`
and `close()`, and works as a context manager.

`flashup.cryptoutils` has `calculate_sha256(data)` and
`verify_signature(data, signature, public_key)`, which checks a hex signature
against a PEM public key (RSA PKCS#1 v1.5 with SHA-256, ECDSA with SHA-256,
or Ed25519) and returns False on any malformed input.

## Library use

Everything runs on an `EventLoop` (`flashup.events`) with a virtual
millisecond clock: timers fire when the loop is advanced with
`advance(ms)` or drained with `run_until_idle()`. Share one loop between
the core and its devices.

```python
from flashup.flashupcore import FlashUpCore
from flashup.serialdevice import SerialDevice

core = FlashUpCore()
core.log_message.connect(lambda level, text: print(level, text))
core.update_complete.connect(lambda dev, ok, msg: print(dev, ok, msg))

device = SerialDevice("/dev/ttyUSB0", loop=core.loop)
core.add_device(device)
if core.load_firmware("firmware.bin"):
    core.update_firmware("serial:/dev/ttyUSB0", None)

# Read device replies with device.poll() and let timers run with
# core.loop.advance(...) until update_complete is emitted.
```

Devices implement `DeviceInterface` (`flashup.deviceinterface`):

- `SerialDevice` (`flashup.serialdevice`) speaks a line protocol
  (`NAME:payload\n` commands, `ACK`, `INFO:`, `STATE:` and `ERROR:` replies)
  at 115200 baud, 8N1, sending one command at a time.
- `NetworkDevice` (`flashup.networkdevice`) speaks length-prefixed JSON over
  TCP, port 8266 by default, one request at a time.

Both read incoming data with `poll()` and accept bytes directly with
`feed(data)`; the port or socket can be replaced through a factory argument.

An `UpdateJob` (`flashup.updatejob`) drives one update through the states of
`JobState`: connecting, preparing, uploading, finalizing, and then complete,
failed or canceled, retrying a failed chunk up to three times.

`FlashUpController` (`flashup.controller`) holds the device list, the
selected device, the loaded firmware, update progress and a `LogModel`
(`flashup.logmodel`) of at most 1000 messages, which `save_logs` writes to a
file given as a `file:` URL or a path object.

## Command line

```
flashup --script --firmware firmware.bin --device serial:/dev/ttyUSB0
```

Options:

- `-s`, `--script`: run headless and attempt one update
- `-f`, `--firmware PATH`: firmware package to flash
- `-d`, `--device ID`: target device identifier
- `--version`: print the version

In headless mode both the firmware path and the device are required; the
command exits with 1 when either is missing, when the update cannot start,
or when it ends unsuccessfully. Without `--script` it runs one device
discovery and prints the device ids that were announced, with the log on
standard error.

## What it does not do

- There is no graphical interface; `FlashUpController` holds the state a
  front end would show, but nothing draws it.
- Device discovery does not scan ports or the network and loads no plug-ins:
  `discover_devices` announces two fixed example entries and registers no
  devices. Devices must be added with `FlashUpCore.add_device`.
- The command line has no option for adding devices, so a headless run
  reports an unknown device and exits with 1; use the library to flash a
  real device.