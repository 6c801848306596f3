"""Authorization entry resolution and signing.

For every address-credentialed entry in the sole invoke operation the
signer is resolved in a fixed order:
1. a plugin bound to that exact address
2. an extra signer whose public key matches
3. the primary signer, if its public key matches

An entry no signer can cover fails the whole pass. Entries with
source-account credentials are signed by the envelope signature and pass
through untouched.
"""

import logging
from typing import Optional, Sequence

from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from sorosign.signing.base import (
    AuthSigningRequest,
    KeyNotFoundError,
    MissingSignerForAddress,
    SignatureUnavailableError,
    Signer,
    account_public_key,
    format_address,
)
from sorosign.signing.plugin import PluginSigner
from sorosign.tx.hashing import authorization_payload, clone

logger = logging.getLogger(__name__)


def invoke_operation(tx: stellar_xdr.Transaction) -> Optional[stellar_xdr.InvokeHostFunctionOp]:
    """The invoke-host-function body when it is the only operation."""
    if len(tx.operations) != 1:
        return None
    body = tx.operations[0].body
    if body.type != stellar_xdr.OperationType.INVOKE_HOST_FUNCTION:
        return None
    return body.invoke_host_function_op


def requires_auth(tx: stellar_xdr.Transaction) -> bool:
    """True when the sole operation is a contract call carrying auth entries."""
    op = invoke_operation(tx)
    if op is None or not op.auth:
        return False
    return (
        op.auth[0].root_invocation.function.type
        == stellar_xdr.SorobanAuthorizedFunctionType.SOROBAN_AUTHORIZED_FUNCTION_TYPE_CONTRACT_FN
    )


def _credential_public_key(value: stellar_xdr.SCVal) -> bytes:
    if value.map is None:
        return b""
    for entry in value.map.sc_map:
        if entry.key.type != stellar_xdr.SCValType.SCV_SYMBOL or scval.from_symbol(entry.key) != "public_key":
            continue
        if entry.val.type == stellar_xdr.SCValType.SCV_BYTES:
            return scval.from_bytes(entry.val)
        return b""
    return b""


def order_credential(value: stellar_xdr.SCVal) -> stellar_xdr.SCVal:
    """Re-order a {public_key, signature} vec ascending by public key.

    Values that are not a vec of maps (custom account credentials) are
    returned unchanged.
    """
    if value.type != stellar_xdr.SCValType.SCV_VEC or value.vec is None:
        return value
    items = scval.from_vec(value)
    if not all(item.type == stellar_xdr.SCValType.SCV_MAP for item in items):
        return value
    return scval.to_vec(sorted(items, key=_credential_public_key))


def combine_credentials(values: Sequence[stellar_xdr.SCVal]) -> stellar_xdr.SCVal:
    """Merge credentials from several signers into one ordered vec."""
    items = []
    for value in values:
        items.extend(scval.from_vec(value))
    return order_credential(scval.to_vec(items))


async def _holds_key(signer: Signer, public_key: bytes) -> bool:
    try:
        return await signer.get_public_key() == public_key
    except (KeyNotFoundError, SignatureUnavailableError) as e:
        logger.debug(f"Skipping {signer!r}: {e}")
        return False


async def resolve_signer(
    address: stellar_xdr.SCAddress,
    signer: Optional[Signer],
    extra_signers: Sequence[Signer] = (),
    plugin_signers: Sequence[PluginSigner] = (),
) -> Signer:
    """Pick the signer responsible for an address.

    Raises:
        MissingSignerForAddress: If nothing can sign for the address
    """
    strkey = format_address(address)

    for plugin in plugin_signers:
        if plugin.address == strkey:
            return plugin

    public_key = account_public_key(address)
    if public_key is None:
        raise MissingSignerForAddress(strkey)

    for extra in extra_signers:
        if await _holds_key(extra, public_key):
            return extra

    if signer is not None and await _holds_key(signer, public_key):
        return signer

    raise MissingSignerForAddress(strkey)


async def sign_authorization_entry(
    entry: stellar_xdr.SorobanAuthorizationEntry,
    signer: Signer,
    signature_expiration_ledger: int,
    network_passphrase: str,
) -> stellar_xdr.SorobanAuthorizationEntry:
    """Sign one address-credentialed entry and return the signed copy."""
    credentials = entry.credentials.address
    nonce = credentials.nonce.int64
    payload = authorization_payload(
        network_passphrase, nonce, signature_expiration_ledger, entry.root_invocation
    )
    request = AuthSigningRequest(
        payload=payload,
        address=credentials.address,
        nonce=nonce,
        signature_expiration_ledger=signature_expiration_ledger,
        root_invocation=entry.root_invocation,
        network_passphrase=network_passphrase,
    )
    credential = order_credential(await signer.sign_auth_entry(request))

    signed = clone(entry)
    signed.credentials.address.signature_expiration_ledger = stellar_xdr.Uint32(
        signature_expiration_ledger
    )
    signed.credentials.address.signature = credential
    return signed


async def sign_authorizations(
    tx: stellar_xdr.Transaction,
    signer: Optional[Signer],
    signature_expiration_ledger: int,
    network_passphrase: str,
    extra_signers: Sequence[Signer] = (),
    plugin_signers: Sequence[PluginSigner] = (),
) -> Optional[stellar_xdr.Transaction]:
    """Sign every address-credentialed auth entry of a transaction.

    Args:
        tx: Assembled transaction
        signer: Primary signer (the transaction source)
        signature_expiration_ledger: Shared expiry for all signatures
        network_passphrase: Network the payloads are bound to
        extra_signers: Additional local/device signers
        plugin_signers: Plugins bound to specific addresses

    Returns:
        A new transaction with signed entries, or None if no entry
        carried address credentials
    """
    if not requires_auth(tx):
        return None

    op = invoke_operation(tx)
    signed_entries = []
    changed = False
    for entry in op.auth:
        if entry.credentials.type != stellar_xdr.SorobanCredentialsType.SOROBAN_CREDENTIALS_ADDRESS:
            signed_entries.append(entry)
            continue

        address = entry.credentials.address.address
        entry_signer = await resolve_signer(address, signer, extra_signers, plugin_signers)
        logger.info(f"Signing authorization for {format_address(address)} with {entry_signer!r}")
        signed_entries.append(
            await sign_authorization_entry(
                entry, entry_signer, signature_expiration_ledger, network_passphrase
            )
        )
        changed = True

    if not changed:
        return None

    signed_tx = clone(tx)
    signed_tx.operations[0].body.invoke_host_function_op.auth = signed_entries
    return signed_tx
