"""Base interfaces for transaction and authorization signing.

Signing flow:
1. Assemble the transaction from a simulation
2. Sign address-credentialed authorization entries (32-byte payloads)
3. Sign the envelope (transaction hash, or the full payload on devices)
4. Wrap in a fee bump when the fee does not fit the native field

Every backend signs ed25519 payloads; no backend exposes key material.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from stellar_sdk import Address, StrKey, scval
from stellar_sdk.address import AddressType
from stellar_sdk import xdr as stellar_xdr

from sorosign.tx.hashing import clone, envelope_hash

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"                 # Secret key in memory
    LEDGER = "ledger"               # Hardware device over APDU
    SECURE_STORE = "secure_store"   # OS keychain entry
    LAB = "lab"                     # Interactive browser flow
    PLUGIN = "plugin"               # External stellar-signer-* executable


@dataclass
class AuthSigningRequest:
    """Everything a signer may need to authorize one entry.

    Attributes:
        payload: sha256 of the HashIdPreimage::SorobanAuthorization (32 bytes)
        address: Address the entry is credentialed for
        nonce: Entry nonce
        signature_expiration_ledger: Last ledger the signature is valid for
        root_invocation: Invocation tree being authorized
        network_passphrase: Network the payload was computed for
    """
    payload: bytes
    address: stellar_xdr.SCAddress
    nonce: int
    signature_expiration_ledger: int
    root_invocation: stellar_xdr.SorobanAuthorizedInvocation
    network_passphrase: str


def decorated_signature(public_key: bytes, signature: bytes) -> stellar_xdr.DecoratedSignature:
    """Attach the 4-byte hint (last bytes of the public key) to a signature."""
    return stellar_xdr.DecoratedSignature(
        hint=stellar_xdr.SignatureHint(public_key[-4:]),
        signature=stellar_xdr.Signature(signature),
    )


def signature_map(public_key: bytes, signature: bytes) -> stellar_xdr.SCVal:
    return scval.to_map(
        {
            scval.to_symbol("public_key"): scval.to_bytes(public_key),
            scval.to_symbol("signature"): scval.to_bytes(signature),
        }
    )


def credential_from_signatures(signatures: list[tuple[bytes, bytes]]) -> stellar_xdr.SCVal:
    """Build an account credential: a vec of {public_key, signature} maps.

    Maps are ordered ascending by raw public key bytes, which is what the
    account contract expects when more than one key signs.
    """
    ordered = sorted(signatures, key=lambda pair: pair[0])
    return scval.to_vec([signature_map(pk, sig) for pk, sig in ordered])


class Signer(ABC):
    """Abstract base class for signing backends.

    Subclasses implement get_public_key and sign_payload; the remaining
    capabilities are derived from those two and may be overridden where a
    backend works differently (devices that sign full payloads, plugins
    that return whole credentials).
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def get_public_key(self) -> bytes:
        """Get the raw 32-byte ed25519 public key."""
        pass

    @abstractmethod
    async def sign_payload(self, payload: bytes) -> bytes:
        """Sign a 32-byte payload.

        Returns:
            64-byte ed25519 signature
        """
        pass

    async def get_address(self) -> str:
        """Get the G... account address."""
        return StrKey.encode_ed25519_public_key(await self.get_public_key())

    async def sign_tx_hash(
        self,
        tx_hash: bytes,
        envelope: stellar_xdr.TransactionEnvelope,
        network_passphrase: str,
    ) -> list[stellar_xdr.DecoratedSignature]:
        """Sign a transaction hash.

        Args:
            tx_hash: sha256 of the signature payload
            envelope: Envelope being signed, for backends that need the body
            network_passphrase: Network the hash was computed for

        Returns:
            Decorated signatures to append to the envelope
        """
        signature = await self.sign_payload(tx_hash)
        return [decorated_signature(await self.get_public_key(), signature)]

    async def sign_transaction(
        self,
        envelope: stellar_xdr.TransactionEnvelope,
        network_passphrase: str,
    ) -> stellar_xdr.TransactionEnvelope:
        """Return a copy of the envelope with this signer's signatures appended.

        Raises:
            UnsupportedTransactionEnvelopeType: For v0 envelopes
        """
        if envelope.type not in (
            stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX,
            stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP,
        ):
            raise UnsupportedTransactionEnvelopeType(envelope.type)

        tx_hash = envelope_hash(envelope, network_passphrase)
        logger.debug(f"Signing transaction {tx_hash.hex()} with {self}")
        signatures = await self.sign_tx_hash(tx_hash, envelope, network_passphrase)

        signed = clone(envelope)
        if signed.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX:
            signed.v1.signatures.extend(signatures)
        else:
            signed.fee_bump.signatures.extend(signatures)
        return signed

    async def sign_auth_entry(self, request: AuthSigningRequest) -> stellar_xdr.SCVal:
        """Produce the credential value for one authorization entry."""
        signature = await self.sign_payload(request.payload)
        return credential_from_signatures([(await self.get_public_key(), signature)])

    async def health_check(self) -> bool:
        """Check if the signing backend is available."""
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"


class SigningError(Exception):
    """Exception raised when signing fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when signing key is not found."""
    pass


class MissingSignerForAddress(SigningError):
    """No available signer can authorize an entry for this address."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Missing signing key for account {address}")


class UnsupportedTransactionEnvelopeType(SigningError):
    """Only v1 and fee-bump envelopes can be signed."""

    def __init__(self, envelope_type):
        self.envelope_type = envelope_type
        super().__init__(f"Unsupported transaction envelope type: {envelope_type}")


class SignatureUnavailableError(SigningError):
    """The backend hands signing off to the user and returns no signature."""
    pass


def format_address(address: stellar_xdr.SCAddress) -> str:
    """Render an SCAddress as a G... or C... strkey."""
    return Address.from_xdr_sc_address(address).address


def account_public_key(address: stellar_xdr.SCAddress) -> Optional[bytes]:
    """Raw ed25519 key for account addresses, None otherwise."""
    parsed = Address.from_xdr_sc_address(address)
    if parsed.type != AddressType.ACCOUNT:
        return None
    return parsed.key
