"""Reading and validating FLASHUP firmware package files.

Layout: 7 bytes magic ``FLASHUP``, a 4-byte little-endian metadata length N,
N bytes of JSON metadata, then the raw firmware image.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping, Optional, Union

from flashup.cryptoutils import calculate_sha256

MAGIC = b"FLASHUP"
_SIZE_FIELD_LEN = 4
REQUIRED_FIELDS = ("name", "version", "target", "timestamp", "sha256")


class FirmwareError(Exception):
    """Raised when a firmware package cannot be opened or is invalid."""


class FirmwarePackage:
    """An opened, validated firmware package file."""

    def __init__(self, file_path: Union[str, os.PathLike]) -> None:
        self.file_path = Path(file_path)
        try:
            self._file = open(self.file_path, "rb")
        except OSError as exc:
            reason = exc.strerror or str(exc)
            raise FirmwareError(f"Failed to open firmware file: {reason}") from exc

        try:
            if self._file.read(len(MAGIC)) != MAGIC:
                raise FirmwareError("Invalid firmware file format")
            self._parse_metadata()
            self._check_hash_field()
            if not self.verify():
                raise FirmwareError("Firmware validation failed")
        except BaseException:
            self._file.close()
            raise

    def _parse_metadata(self) -> None:
        self._file.seek(len(MAGIC))
        size_field = self._file.read(_SIZE_FIELD_LEN)
        if len(size_field) != _SIZE_FIELD_LEN:
            raise FirmwareError("Invalid firmware file format")
        metadata_size = int.from_bytes(size_field, "little")

        raw = self._file.read(metadata_size)
        if len(raw) != metadata_size:
            raise FirmwareError("Invalid firmware file format")

        try:
            document = json.loads(raw)
        except ValueError:
            raise FirmwareError("Invalid metadata format") from None
        if not isinstance(document, dict):
            raise FirmwareError("Invalid metadata format")

        # Only string values are kept; anything else reads as an empty string.
        self._metadata = {
            key: value if isinstance(value, str) else ""
            for key, value in sorted(document.items())
        }

        for name in REQUIRED_FIELDS:
            if not self._metadata.get(name):
                raise FirmwareError(f"Missing required metadata field: {name}")

        self._sha256 = self._metadata["sha256"]
        self._signature = self._metadata.get("signature", "")

        self._data_offset = len(MAGIC) + _SIZE_FIELD_LEN + metadata_size
        self._data_size = os.fstat(self._file.fileno()).st_size - self._data_offset
        if self._data_size <= 0:
            raise FirmwareError("Firmware file contains no data")

    def _check_hash_field(self) -> None:
        if not self._metadata.get("sha256"):
            raise FirmwareError("Missing SHA-256 hash in firmware metadata")

    @property
    def metadata(self) -> dict[str, str]:
        return dict(self._metadata)

    @property
    def sha256_hash(self) -> str:
        return self._sha256

    @property
    def signature(self) -> str:
        return self._signature

    @property
    def size(self) -> int:
        """Size of the firmware image in bytes."""
        return self._data_size

    @property
    def closed(self) -> bool:
        return self._file.closed

    def data(self) -> bytes:
        """The whole firmware image, or empty bytes once closed."""
        if self.closed:
            return b""
        self._file.seek(self._data_offset)
        return self._file.read(self._data_size)

    def verify(self) -> bool:
        """Check the image against the SHA-256 digest in the metadata."""
        return calculate_sha256(self.data()) == self._sha256

    def get_chunk(self, offset: int, size: int) -> bytes:
        """Up to ``size`` bytes of the image starting at ``offset``."""
        if self.closed or offset < 0 or offset >= self._data_size:
            return b""
        size = min(size, self._data_size - offset)
        if size <= 0:
            return b""
        self._file.seek(self._data_offset + offset)
        return self._file.read(size)

    def chunk_count(self, chunk_size: int) -> int:
        """Number of chunks of ``chunk_size`` needed to cover the image."""
        if chunk_size <= 0:
            return 0
        return -(-self._data_size // chunk_size)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "FirmwarePackage":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_package(metadata: Mapping[str, object], payload: bytes) -> bytes:
    """Serialise metadata and payload into package bytes.

    The payload's SHA-256 digest is added when the metadata has no ``sha256``.
    """
    fields: dict[str, object] = dict(metadata)
    fields.setdefault("sha256", calculate_sha256(payload))
    body = json.dumps(fields, separators=(",", ":")).encode("utf-8")
    return MAGIC + len(body).to_bytes(_SIZE_FIELD_LEN, "little") + body + bytes(payload)


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return Path(value) if value else None