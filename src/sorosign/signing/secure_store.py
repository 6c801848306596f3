"""OS secure store signing backend.

Seeds live in the platform keychain (macOS Keychain, Secret Service,
Windows Credential Locker) via the keyring library:
- service: org.stellar.cli.<name>
- username: current OS user
- secret: base64 of the raw 32-byte ed25519 seed

The seed is read for each operation and never cached on the signer.
"""

import asyncio
import base64
import binascii
import getpass
import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError
from nacl.signing import SigningKey

from sorosign.signing.base import KeyNotFoundError, Signer, SignerType, SigningError

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_PREFIX = "org.stellar.cli."


class SecureStoreEntry:
    """One named keychain entry holding an ed25519 seed."""

    def __init__(
        self,
        name: str,
        service_prefix: str = DEFAULT_SERVICE_PREFIX,
        username: Optional[str] = None,
    ):
        self.name = name
        self.service = f"{service_prefix}{name}"
        self.username = username or getpass.getuser()

    def set_seed(self, seed: bytes):
        """Store a seed, replacing any existing value."""
        if len(seed) != 32:
            raise SigningError(f"ed25519 seed must be 32 bytes, got {len(seed)}")
        try:
            keyring.set_password(self.service, self.username, base64.b64encode(seed).decode())
        except KeyringError as e:
            raise SigningError(f"Could not write secure store entry {self.service}: {e}") from e
        logger.info(f"Stored key in secure store entry {self.service}")

    def get_seed(self) -> bytes:
        try:
            encoded = keyring.get_password(self.service, self.username)
        except KeyringError as e:
            raise SigningError(f"Could not read secure store entry {self.service}: {e}") from e
        if encoded is None:
            raise KeyNotFoundError(f"No secure store entry named {self.service}")
        try:
            seed = base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise SigningError(f"Secure store entry {self.service} is not valid base64") from e
        if len(seed) != 32:
            raise SigningError(f"Secure store entry {self.service} holds {len(seed)} bytes, expected 32")
        return seed

    def delete(self):
        try:
            keyring.delete_password(self.service, self.username)
        except KeyringError as e:
            raise SigningError(f"Could not delete secure store entry {self.service}: {e}") from e

    def public_key(self) -> bytes:
        return bytes(SigningKey(self.get_seed()).verify_key)

    def sign(self, data: bytes) -> bytes:
        return SigningKey(self.get_seed()).sign(data).signature


def create_entry(name: str, seed: Optional[bytes] = None, service_prefix: str = DEFAULT_SERVICE_PREFIX) -> SecureStoreEntry:
    """Create a secure store entry, generating a fresh seed when none is given."""
    entry = SecureStoreEntry(name, service_prefix=service_prefix)
    entry.set_seed(seed if seed is not None else bytes(SigningKey.generate()))
    return entry


class SecureStoreSigner(Signer):
    """Signer that reads its seed from the OS keychain.

    keyring calls block (and may prompt the user), so they run in the
    default executor.
    """

    def __init__(self, entry: SecureStoreEntry):
        super().__init__(SignerType.SECURE_STORE)
        self.entry = entry
        self._public_key: Optional[bytes] = None

    @classmethod
    def from_name(cls, name: str, service_prefix: str = DEFAULT_SERVICE_PREFIX) -> "SecureStoreSigner":
        return cls(SecureStoreEntry(name, service_prefix=service_prefix))

    async def get_public_key(self) -> bytes:
        if self._public_key is None:
            loop = asyncio.get_running_loop()
            self._public_key = await loop.run_in_executor(None, self.entry.public_key)
        return self._public_key

    async def sign_payload(self, payload: bytes) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.entry.sign, payload)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(service={self.entry.service})"
