"""Transaction and authorization signing.

Provides signing backends:
- LocalKeySigner: ed25519 secret in memory
- LedgerSigner: Stellar app on a hardware device
- SecureStoreSigner: seed in the OS keychain
- BrowserSigner: hands off to the lab in a browser
- PluginSigner: external stellar-signer-<name> executable
"""

from sorosign.signing.base import (
    AuthSigningRequest,
    KeyNotFoundError,
    MissingSignerForAddress,
    Signer,
    SignerType,
    SigningError,
    UnsupportedTransactionEnvelopeType,
)
from sorosign.signing.factory import create_plugin_signer, create_signer, get_signer_type
from sorosign.signing.local import LocalKeySigner

__all__ = [
    "AuthSigningRequest",
    "KeyNotFoundError",
    "MissingSignerForAddress",
    "Signer",
    "SignerType",
    "SigningError",
    "UnsupportedTransactionEnvelopeType",
    "LocalKeySigner",
    "create_signer",
    "create_plugin_signer",
    "get_signer_type",
]
