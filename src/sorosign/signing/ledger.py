"""Hardware device signing backend.

Transactions are sent to the device in full so that it can display the
operation for review. Blind hash signing is used only when explicitly
enabled (it must also be enabled in the Stellar app settings).
Authorization payloads are opaque 32-byte digests and always go through
the hash-signing command.
"""

import logging
from typing import Optional

from stellar_sdk import xdr as stellar_xdr

from sorosign.hardware.device import LedgerDevice
from sorosign.signing.base import (
    Signer,
    SignerType,
    UnsupportedTransactionEnvelopeType,
    decorated_signature,
)
from sorosign.tx.hashing import fee_bump_signature_payload, signature_payload

logger = logging.getLogger(__name__)


class LedgerSigner(Signer):
    """Signer backed by the Stellar app on a Ledger device."""

    def __init__(self, device: LedgerDevice, index: int = 0, hash_signing: bool = False):
        """Initialize Ledger signer.

        Args:
            device: Device client (HID or emulator transport)
            index: Account index in m/44'/148'/index'
            hash_signing: Sign transaction hashes instead of full payloads
        """
        super().__init__(SignerType.LEDGER)
        self.device = device
        self.index = index
        self.hash_signing = hash_signing
        self._public_key: Optional[bytes] = None

    async def get_public_key(self) -> bytes:
        if self._public_key is None:
            self._public_key = await self.device.get_public_key(self.index)
        return self._public_key

    async def confirm_address(self) -> str:
        """Show the address on the device screen and wait for approval."""
        self._public_key = await self.device.get_public_key(self.index, display=True)
        return await self.get_address()

    async def sign_payload(self, payload: bytes) -> bytes:
        return await self.device.sign_digest(self.index, payload)

    async def sign_tx_hash(
        self,
        tx_hash: bytes,
        envelope: stellar_xdr.TransactionEnvelope,
        network_passphrase: str,
    ) -> list[stellar_xdr.DecoratedSignature]:
        if self.hash_signing:
            logger.info(f"Blind signing transaction hash {tx_hash.hex()} on device")
            signature = await self.device.sign_transaction_hash(self.index, tx_hash)
        else:
            payload = self._signature_payload(envelope, network_passphrase)
            signature = await self.device.sign_transaction(self.index, payload)
        return [decorated_signature(await self.get_public_key(), signature)]

    @staticmethod
    def _signature_payload(
        envelope: stellar_xdr.TransactionEnvelope, network_passphrase: str
    ) -> bytes:
        if envelope.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX:
            return signature_payload(envelope.v1.tx, network_passphrase).to_xdr_bytes()
        if envelope.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP:
            return fee_bump_signature_payload(
                envelope.fee_bump.tx, network_passphrase
            ).to_xdr_bytes()
        raise UnsupportedTransactionEnvelopeType(envelope.type)

    async def health_check(self) -> bool:
        config = await self.device.get_app_configuration()
        return bool(config.version)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(index={self.index}, hash_signing={self.hash_signing})"
