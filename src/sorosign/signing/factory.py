"""Signer factory.

Creates the appropriate signing backend from an identity string:
- S...                  -> LocalKeySigner
- ledger / ledger:<i>   -> LedgerSigner (HID, or emulator when configured)
- secure-store:<name>   -> SecureStoreSigner
- lab                   -> BrowserSigner

Plugins are bound to addresses and built with create_plugin_signer.
"""

import logging
from typing import Optional

from sorosign.config import Settings, get_settings
from sorosign.signing.base import KeyNotFoundError, Signer, SignerType

logger = logging.getLogger(__name__)


def get_signer_type(identity: str) -> SignerType:
    """Determine which backend an identity string refers to."""
    lowered = identity.strip().lower()
    if lowered == "ledger" or lowered.startswith("ledger:"):
        return SignerType.LEDGER
    if lowered.startswith("secure-store:"):
        return SignerType.SECURE_STORE
    if lowered == "lab":
        return SignerType.LAB
    if identity.strip().startswith("S"):
        return SignerType.LOCAL
    raise KeyNotFoundError(f"Unrecognized signer identity: {identity!r}")


def create_ledger_device(settings: Settings):
    """Build the device client for the configured transport."""
    from sorosign.hardware.device import LedgerDevice
    from sorosign.hardware.transport import EmulatorTransport, HIDTransport

    if settings.uses_emulator:
        transport = EmulatorTransport(settings.ledger_emulator_url)
    else:
        transport = HIDTransport()
    return LedgerDevice(transport, lock_timeout=settings.device_lock_timeout)


def create_signer(identity: str, settings: Optional[Settings] = None) -> Signer:
    """Create a signer for an identity string.

    Raises:
        KeyNotFoundError: If the identity is not recognized
    """
    settings = settings or get_settings()
    signer_type = get_signer_type(identity)
    logger.info(f"Initializing {signer_type.value} signer")

    if signer_type == SignerType.LEDGER:
        from sorosign.signing.ledger import LedgerSigner

        _, _, index = identity.partition(":")
        hd_index = int(index) if index else settings.ledger_hd_index
        return LedgerSigner(
            create_ledger_device(settings),
            index=hd_index,
            hash_signing=settings.ledger_hash_signing,
        )

    if signer_type == SignerType.SECURE_STORE:
        from sorosign.signing.secure_store import SecureStoreSigner

        _, _, name = identity.partition(":")
        if not name:
            raise KeyNotFoundError("secure-store identity needs a name: secure-store:<name>")
        return SecureStoreSigner.from_name(name, settings.secure_store_service_prefix)

    if signer_type == SignerType.LAB:
        from sorosign.signing.browser import BrowserSigner

        return BrowserSigner(lab_url=settings.lab_url)

    from sorosign.signing.local import LocalKeySigner

    return LocalKeySigner.from_secret(identity.strip())


def create_plugin_signer(binding: str, args: Optional[dict[str, str]] = None, settings: Optional[Settings] = None):
    """Create a plugin signer from "name=ADDRESS".

    Raises:
        ValueError: If the binding is malformed
        PluginNotFoundError: If the plugin executable is not on PATH
    """
    from sorosign.signing.plugin import PluginSigner

    settings = settings or get_settings()
    name, sep, address = binding.partition("=")
    if not sep or not name or not address:
        raise ValueError(f"Plugin signer must be given as name=ADDRESS, got {binding!r}")
    return PluginSigner(
        name.strip(),
        address.strip(),
        args=args,
        prefixes=tuple(settings.plugin_prefix_list),
    )
