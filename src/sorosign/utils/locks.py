"""Exclusive access control for signing devices.

A hardware device holds one APDU conversation at a time; multi-frame
exchanges from two coroutines must never interleave.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: device_id -> asyncio.Lock
_device_locks: dict[str, asyncio.Lock] = {}


def get_device_lock(device_id: str) -> asyncio.Lock:
    """Get or create a lock for a specific device.

    Args:
        device_id: Transport identifier (e.g. "hid" or an emulator URL)

    Returns:
        asyncio.Lock for the device
    """
    if device_id not in _device_locks:
        _device_locks[device_id] = asyncio.Lock()
    return _device_locks[device_id]


class DeviceLock:
    """Context manager for acquiring exclusive access to a device.

    Example:
        async with DeviceLock("hid", operation="sign_tx"):
            for frame in frames:
                await transport.exchange(frame)
    """

    def __init__(
        self,
        device_id: str,
        timeout: Optional[float] = 60.0,
        operation: str = "device_operation",
    ):
        self.device_id = device_id
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "DeviceLock":
        """Acquire the lock."""
        self._lock = get_device_lock(self.device_id)

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True
            logger.debug(f"Device lock acquired for {self.device_id}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Device lock timeout for {self.device_id} after {self.timeout}s: {self.operation}"
            )
            raise DeviceBusyError(
                f"Device {self.device_id} busy for more than {self.timeout}s"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Device lock released for {self.device_id}: {self.operation}")
        return False


class DeviceBusyError(Exception):
    """Raised when a device cannot be acquired within the timeout period."""

    pass


def reset_device_locks():
    """Drop all registered locks (for testing)."""
    _device_locks.clear()
