"""Signature payloads and hashes.

network_id   = sha256(passphrase)
tx hash      = sha256(TransactionSignaturePayload{network_id, tagged tx})
auth payload = sha256(HashIdPreimage::SorobanAuthorization{...})
"""

import hashlib

from stellar_sdk import xdr as stellar_xdr


def network_id(network_passphrase: str) -> bytes:
    return hashlib.sha256(network_passphrase.encode()).digest()


def clone(value):
    """Deep copy an XDR value through its binary encoding."""
    return type(value).from_xdr_bytes(value.to_xdr_bytes())


def signature_payload(
    tx: stellar_xdr.Transaction, network_passphrase: str
) -> stellar_xdr.TransactionSignaturePayload:
    return stellar_xdr.TransactionSignaturePayload(
        network_id=stellar_xdr.Hash(network_id(network_passphrase)),
        tagged_transaction=stellar_xdr.TransactionSignaturePayloadTaggedTransaction(
            type=stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX,
            tx=tx,
        ),
    )


def fee_bump_signature_payload(
    tx: stellar_xdr.FeeBumpTransaction, network_passphrase: str
) -> stellar_xdr.TransactionSignaturePayload:
    return stellar_xdr.TransactionSignaturePayload(
        network_id=stellar_xdr.Hash(network_id(network_passphrase)),
        tagged_transaction=stellar_xdr.TransactionSignaturePayloadTaggedTransaction(
            type=stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP,
            fee_bump=tx,
        ),
    )


def signature_payload_bytes(tx: stellar_xdr.Transaction, network_passphrase: str) -> bytes:
    """XDR bytes a hardware device needs to display and sign the transaction."""
    return signature_payload(tx, network_passphrase).to_xdr_bytes()


def transaction_hash(tx: stellar_xdr.Transaction, network_passphrase: str) -> bytes:
    return hashlib.sha256(signature_payload_bytes(tx, network_passphrase)).digest()


def fee_bump_transaction_hash(
    tx: stellar_xdr.FeeBumpTransaction, network_passphrase: str
) -> bytes:
    payload = fee_bump_signature_payload(tx, network_passphrase)
    return hashlib.sha256(payload.to_xdr_bytes()).digest()


def envelope_hash(envelope: stellar_xdr.TransactionEnvelope, network_passphrase: str) -> bytes:
    """Hash of the transaction wrapped by an envelope, signatures excluded.

    Raises:
        ValueError: For v0 envelopes, which this client does not sign
    """
    if envelope.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX:
        return transaction_hash(envelope.v1.tx, network_passphrase)
    if envelope.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP:
        return fee_bump_transaction_hash(envelope.fee_bump.tx, network_passphrase)
    raise ValueError(f"Unsupported envelope type: {envelope.type}")


def authorization_preimage(
    network_passphrase: str,
    nonce: int,
    signature_expiration_ledger: int,
    invocation: stellar_xdr.SorobanAuthorizedInvocation,
) -> stellar_xdr.HashIDPreimage:
    return stellar_xdr.HashIDPreimage(
        type=stellar_xdr.EnvelopeType.ENVELOPE_TYPE_SOROBAN_AUTHORIZATION,
        soroban_authorization=stellar_xdr.HashIDPreimageSorobanAuthorization(
            network_id=stellar_xdr.Hash(network_id(network_passphrase)),
            nonce=stellar_xdr.Int64(nonce),
            signature_expiration_ledger=stellar_xdr.Uint32(signature_expiration_ledger),
            invocation=invocation,
        ),
    )


def authorization_payload(
    network_passphrase: str,
    nonce: int,
    signature_expiration_ledger: int,
    invocation: stellar_xdr.SorobanAuthorizedInvocation,
) -> bytes:
    """32-byte digest an address signer signs for one authorization entry."""
    preimage = authorization_preimage(
        network_passphrase, nonce, signature_expiration_ledger, invocation
    )
    return hashlib.sha256(preimage.to_xdr_bytes()).digest()
