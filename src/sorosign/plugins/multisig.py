"""stellar-signer-multisig: reference signer plugin.

Signs with several ed25519 keys at once. Keys come from the "signers" plugin
argument or the STELLAR_MULTISIG_SIGNERS environment variable, as a
comma-separated list of S... secrets.

The plugin never trusts the payload it is handed: the authorization
preimage or transaction signature payload is rebuilt from the request and
its hash must match before anything is signed.
"""

import json
import logging
import os
import sys
from typing import Mapping, Optional

from nacl.signing import SigningKey
from pydantic import BaseModel, Field, ValidationError
from stellar_sdk import StrKey
from stellar_sdk import xdr as stellar_xdr

from sorosign.logging_setup import setup_logging
from sorosign.signing.base import credential_from_signatures, decorated_signature
from sorosign.tx.hashing import authorization_payload, envelope_hash

logger = logging.getLogger(__name__)

SIGNERS_ENV = "STELLAR_MULTISIG_SIGNERS"


class MultisigPluginError(Exception):
    """Exception raised when a request cannot be signed."""
    pass


class PayloadMismatchError(MultisigPluginError):
    def __init__(self, computed: str, provided: str):
        self.computed = computed
        self.provided = provided
        super().__init__(
            f"Payload validation failed: recomputed hash {computed} does not match provided {provided}"
        )


class PluginRequest(BaseModel):
    """JSON object read from stdin."""

    mode: str = Field(..., description="sign_auth or sign_tx")
    args: dict[str, str] = Field(default_factory=dict)

    # sign_auth
    payload: Optional[str] = Field(None, description="Authorization payload (hex)")
    network_passphrase: Optional[str] = Field(None)
    nonce: Optional[int] = Field(None)
    signature_expiration_ledger: Optional[int] = Field(None)
    root_invocation: Optional[str] = Field(None, description="SorobanAuthorizedInvocation (base64 XDR)")

    # sign_tx
    tx_env_xdr: Optional[str] = Field(None, description="TransactionEnvelope (base64 XDR)")
    tx_hash: Optional[str] = Field(None, description="Transaction hash (hex)")

    def require(self, *fields: str):
        missing = [f for f in fields if getattr(self, f) is None]
        if missing:
            raise MultisigPluginError(f"{self.mode} requires {', '.join(missing)}")


def resolve_signers(args: Mapping[str, str], env: Mapping[str, str] = os.environ) -> list[SigningKey]:
    """Parse signer secrets from plugin args, falling back to the environment."""
    value = args.get("signers") or env.get(SIGNERS_ENV, "")
    if not value:
        raise MultisigPluginError(
            f"No signers provided. Supply signers=S...,S... as a plugin argument or set {SIGNERS_ENV}"
        )

    keys = []
    for secret in value.split(","):
        secret = secret.strip()
        try:
            keys.append(SigningKey(StrKey.decode_ed25519_secret_seed(secret)))
        except ValueError as e:
            raise MultisigPluginError(f"Invalid secret key: {e}") from e
    return keys


def sign_auth(request: PluginRequest, keys: list[SigningKey]) -> str:
    """Return the base64 credential for an authorization request."""
    request.require("payload", "network_passphrase", "nonce", "signature_expiration_ledger", "root_invocation")

    try:
        invocation = stellar_xdr.SorobanAuthorizedInvocation.from_xdr(request.root_invocation)
    except Exception as e:
        raise MultisigPluginError(f"Invalid root_invocation: {e}") from e
    computed = authorization_payload(
        request.network_passphrase,
        request.nonce,
        request.signature_expiration_ledger,
        invocation,
    )
    if computed.hex() != request.payload.lower():
        raise PayloadMismatchError(computed.hex(), request.payload)

    signatures = [(bytes(key.verify_key), key.sign(computed).signature) for key in keys]
    return credential_from_signatures(signatures).to_xdr()


def sign_tx(request: PluginRequest, keys: list[SigningKey]) -> str:
    """Return a JSON array of base64 decorated signatures."""
    request.require("tx_env_xdr", "tx_hash", "network_passphrase")

    try:
        envelope = stellar_xdr.TransactionEnvelope.from_xdr(request.tx_env_xdr)
    except Exception as e:
        raise MultisigPluginError(f"Invalid tx_env_xdr: {e}") from e
    try:
        computed = envelope_hash(envelope, request.network_passphrase)
    except ValueError as e:
        raise MultisigPluginError(str(e)) from e
    if computed.hex() != request.tx_hash.lower():
        raise PayloadMismatchError(computed.hex(), request.tx_hash)

    signatures = [
        decorated_signature(bytes(key.verify_key), key.sign(computed).signature).to_xdr()
        for key in keys
    ]
    return json.dumps(signatures)


def handle_request(raw: str, env: Mapping[str, str] = os.environ) -> str:
    """Process one JSON request and return what goes to stdout."""
    try:
        request = PluginRequest.model_validate_json(raw)
    except ValidationError as e:
        raise MultisigPluginError(f"Invalid request: {e}") from e

    keys = resolve_signers(request.args, env)
    logger.debug(f"Handling {request.mode} with {len(keys)} signer(s)")
    if request.mode == "sign_auth":
        return sign_auth(request, keys)
    if request.mode == "sign_tx":
        return sign_tx(request, keys)
    raise MultisigPluginError(f"Unknown mode: {request.mode}. Expected 'sign_auth' or 'sign_tx'")


def main():
    setup_logging("WARNING")
    try:
        output = handle_request(sys.stdin.read())
    except MultisigPluginError as e:
        print(f"stellar-signer-multisig: {e}", file=sys.stderr)
        sys.exit(1)
    sys.stdout.write(output)


if __name__ == "__main__":
    main()
