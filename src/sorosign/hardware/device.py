"""Stellar app client for a Ledger device.

All operations hold the per-device lock for their whole frame sequence so
that multi-frame signing conversations never interleave. Non-success
status words are surfaced as LedgerProtocolError and never retried.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sorosign.hardware.apdu import (
    APDUCommand,
    HDPath,
    SW_TX_HASH_SIGNING_DISABLED,
    describe_status,
    get_app_configuration_command,
    get_public_key_command,
    sign_tx_commands,
    sign_tx_hash_command,
)
from sorosign.hardware.transport import Exchange, TransportError
from sorosign.signing.base import SigningError
from sorosign.utils.locks import DeviceLock

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


class LedgerError(SigningError):
    """Base exception for device failures."""
    pass


class LedgerProtocolError(LedgerError):
    """The device answered with a non-success status word."""

    def __init__(self, status: int, operation: str = ""):
        self.status = status
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}device returned status {describe_status(status)}")

    @property
    def hash_signing_disabled(self) -> bool:
        return self.status == SW_TX_HASH_SIGNING_DISABLED


class LedgerConnectionError(LedgerError):
    """The frame could not be delivered to the device."""
    pass


@dataclass
class AppConfiguration:
    """Parsed GET_APP_CONFIGURATION answer: [flags, major, minor, patch]."""
    hash_signing_enabled: bool
    version: str

    @classmethod
    def from_bytes(cls, data: bytes) -> "AppConfiguration":
        if len(data) < 4:
            raise LedgerError(f"Unexpected app configuration length: {len(data)}")
        return cls(
            hash_signing_enabled=bool(data[0] & 0x01),
            version=f"{data[1]}.{data[2]}.{data[3]}",
        )


class LedgerDevice:
    """Request/response client for the Stellar app."""

    def __init__(self, transport: Exchange, lock_timeout: Optional[float] = 60.0):
        self.transport = transport
        self.lock_timeout = lock_timeout

    async def _send(self, command: APDUCommand, operation: str) -> bytes:
        try:
            answer = await self.transport.exchange(command)
        except TransportError as e:
            raise LedgerConnectionError(f"{operation}: {e}") from e
        if not answer.ok:
            logger.warning(f"Device rejected {operation}: {describe_status(answer.status)}")
            raise LedgerProtocolError(answer.status, operation)
        return answer.data

    def _lock(self, operation: str) -> DeviceLock:
        return DeviceLock(self.transport.device_id, timeout=self.lock_timeout, operation=operation)

    async def get_public_key(self, index: int = 0, display: bool = False) -> bytes:
        """Get the raw ed25519 public key for m/44'/148'/index'.

        Args:
            index: Account index
            display: Show the key on screen and wait for confirmation

        Returns:
            32-byte public key
        """
        command = get_public_key_command(HDPath.from_index(index), display=display)
        async with self._lock("get_public_key"):
            data = await self._send(command, "get_public_key")
        if len(data) != PUBLIC_KEY_LENGTH:
            raise LedgerError(f"Unexpected public key length: {len(data)}")
        return data

    async def get_app_configuration(self) -> AppConfiguration:
        async with self._lock("get_app_configuration"):
            data = await self._send(get_app_configuration_command(), "get_app_configuration")
        config = AppConfiguration.from_bytes(data)
        logger.info(
            f"Stellar app {config.version}, hash signing "
            f"{'enabled' if config.hash_signing_enabled else 'disabled'}"
        )
        return config

    async def sign_transaction(self, index: int, signature_payload: bytes) -> bytes:
        """Sign a full transaction signature payload so the device can display it.

        The path and payload are concatenated and split into frames; the
        answers of all frames are concatenated in order.

        Args:
            index: Account index
            signature_payload: XDR encoded TransactionSignaturePayload

        Returns:
            64-byte ed25519 signature
        """
        commands = sign_tx_commands(HDPath.from_index(index), signature_payload)
        logger.info(f"Sending transaction to device in {len(commands)} frame(s)")

        result = b""
        async with self._lock("sign_transaction"):
            for command in commands:
                result += await self._send(command, "sign_transaction")
        return self._check_signature(result)

    async def sign_transaction_hash(self, index: int, tx_hash: bytes) -> bytes:
        """Blind-sign a 32-byte transaction hash.

        Requires hash signing to be enabled in the app settings; the device
        answers 0x6C66 otherwise.
        """
        command = sign_tx_hash_command(HDPath.from_index(index), tx_hash)
        async with self._lock("sign_transaction_hash"):
            data = await self._send(command, "sign_transaction_hash")
        return self._check_signature(data)

    async def sign_digest(self, index: int, digest: bytes) -> bytes:
        """Sign an arbitrary 32-byte digest (authorization payloads)."""
        return await self.sign_transaction_hash(index, digest)

    async def close(self):
        await self.transport.close()

    @staticmethod
    def _check_signature(data: bytes) -> bytes:
        if len(data) != SIGNATURE_LENGTH:
            raise LedgerError(f"Unexpected signature length: {len(data)}")
        return data
