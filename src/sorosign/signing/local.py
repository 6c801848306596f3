"""Local signing backend.

Uses an in-memory ed25519 secret key. Suitable for:
- Development/testing against a local network
- Identities whose S... secret is available to the CLI

WARNING: The secret is held in process memory. Prefer the secure store
or a hardware device for keys guarding real funds.
"""

import logging

from nacl.signing import SigningKey
from stellar_sdk import StrKey

from sorosign.signing.base import KeyNotFoundError, Signer, SignerType

logger = logging.getLogger(__name__)


class LocalKeySigner(Signer):
    """Signer holding a PyNaCl signing key."""

    def __init__(self, seed: bytes):
        """Initialize from a raw 32-byte ed25519 seed."""
        super().__init__(SignerType.LOCAL)
        if len(seed) != 32:
            raise KeyNotFoundError(f"ed25519 seed must be 32 bytes, got {len(seed)}")
        self._key = SigningKey(seed)
        self._public_key = bytes(self._key.verify_key)

    @classmethod
    def from_secret(cls, secret: str) -> "LocalKeySigner":
        """Create from an S... strkey secret seed."""
        try:
            seed = StrKey.decode_ed25519_secret_seed(secret)
        except ValueError as e:
            raise KeyNotFoundError("Invalid secret seed") from e
        return cls(seed)

    @classmethod
    def generate(cls) -> "LocalKeySigner":
        """Create a signer with a fresh random key (tests, throwaway identities)."""
        return cls(bytes(SigningKey.generate()))

    @property
    def public_key(self) -> bytes:
        return self._public_key

    async def get_public_key(self) -> bytes:
        return self._public_key

    async def sign_payload(self, payload: bytes) -> bytes:
        signed = self._key.sign(payload)
        return signed.signature

    def __repr__(self) -> str:
        address = StrKey.encode_ed25519_public_key(self._public_key)
        return f"{self.__class__.__name__}(address={address})"
