"""Utility modules for sorosign."""

from sorosign.utils.locks import DeviceBusyError, DeviceLock, get_device_lock

__all__ = ["DeviceBusyError", "DeviceLock", "get_device_lock"]
