"""Firmware and OTA updater for serial and network devices."""

__version__ = "0.1.0"
__all__ = ["__version__"]