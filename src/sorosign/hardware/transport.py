"""Exchange primitives for talking to a signing device.

Two transports are provided:
- HIDTransport: USB HID through ledgerblue (blocking calls run in the executor)
- EmulatorTransport: Speculos/Zemu style HTTP endpoint ({"apduHex": ...})

Both return an APDUAnswer; status words are interpreted by LedgerDevice.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from sorosign.hardware.apdu import APDUAnswer, APDUCommand, SW_OK

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a frame cannot be delivered to the device."""
    pass


class Exchange(ABC):
    """One request/response round trip with the device."""

    #: Identifier used for the per-device lock registry
    device_id: str = "device"

    @abstractmethod
    async def exchange(self, command: APDUCommand) -> APDUAnswer:
        """Send a single command frame and return the device's answer."""
        pass

    async def close(self):
        """Release transport resources."""
        pass


class HIDTransport(Exchange):
    """USB HID transport backed by ledgerblue.

    ledgerblue raises CommException for any status other than 0x9000; the
    status word is recovered from the exception so callers see a uniform
    APDUAnswer.
    """

    device_id = "hid"

    def __init__(self, debug: bool = False, timeout_ms: int = 20000):
        self.debug = debug
        self.timeout_ms = timeout_ms
        self._dongle = None

    def _get_dongle(self):
        if self._dongle is None:
            try:
                from ledgerblue.comm import getDongle
            except ImportError as e:
                raise TransportError(
                    "ledgerblue is required for USB devices. pip install sorosign[hardware]"
                ) from e
            try:
                self._dongle = getDongle(self.debug)
            except Exception as e:
                raise TransportError(f"Could not open device: {e}") from e
        return self._dongle

    def _exchange_sync(self, raw: bytes) -> APDUAnswer:
        from ledgerblue.commException import CommException

        dongle = self._get_dongle()
        try:
            data = dongle.exchange(raw, timeout=self.timeout_ms)
            return APDUAnswer(data=bytes(data), status=SW_OK)
        except CommException as e:
            return APDUAnswer(data=bytes(e.data or b""), status=e.sw)

    async def exchange(self, command: APDUCommand) -> APDUAnswer:
        raw = command.serialize()
        logger.debug(f"APDU in: {raw.hex()}")
        loop = asyncio.get_running_loop()
        try:
            answer = await loop.run_in_executor(None, self._exchange_sync, raw)
        except TransportError:
            raise
        except OSError as e:
            raise TransportError(f"HID exchange failed: {e}") from e
        logger.debug(f"APDU out: {answer.data.hex()} status: {answer.status:04x}")
        return answer

    async def close(self):
        if self._dongle is not None:
            self._dongle.close()
            self._dongle = None


class EmulatorTransport(Exchange):
    """HTTP transport for a device emulator.

    POSTs {"apduHex": <hex>} and expects {"data": <hex answer>, "error": ...}
    where data includes the trailing status word.
    """

    def __init__(self, url: str, timeout: float = 20.0):
        self.url = url.rstrip("/")
        self.device_id = self.url
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_host(cls, host: str, port: int) -> "EmulatorTransport":
        return cls(f"http://{host}:{port}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            )
        return self._client

    async def exchange(self, command: APDUCommand) -> APDUAnswer:
        raw = command.serialize()
        logger.debug(f"APDU in: {raw.hex()}")
        client = await self._get_client()

        try:
            response = await client.post(self.url, json={"apduHex": raw.hex()})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"Emulator request failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"Emulator returned invalid JSON: {e}") from e

        if body.get("error"):
            raise TransportError(f"Emulator error: {body['error']}")

        try:
            answer = APDUAnswer.from_bytes(bytes.fromhex(body.get("data", "")))
        except ValueError as e:
            raise TransportError(f"Emulator returned malformed answer: {e}") from e

        logger.debug(f"APDU out: {answer.data.hex()} status: {answer.status:04x}")
        return answer

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
