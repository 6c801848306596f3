"""External signer plugins.

A plugin is an executable named stellar-signer-<name> (or the legacy
soroban-signer-<name>) found on PATH. Each request spawns one process,
writes a JSON object to its stdin, closes stdin and reads the answer from
stdout. stderr is inherited so the plugin can prompt the user.

sign_auth request:
    {"mode": "sign_auth", "payload": <hex>, "network_passphrase": ...,
     "address": <b64 SCAddress>, "nonce": ..., "signature_expiration_ledger": ...,
     "root_invocation": <b64 SorobanAuthorizedInvocation>, "args": {...}}
    -> one base64 XDR SCVal (the credential)

sign_tx request:
    {"mode": "sign_tx", "tx_env_xdr": <b64 envelope>, "tx_hash": <hex>,
     "network_passphrase": ..., "args": {...}}
    -> JSON array of base64 XDR DecoratedSignature
"""

import asyncio
import json
import logging
import shutil
from dataclasses import replace
from typing import Callable, Optional

from stellar_sdk import Address, scval
from stellar_sdk import xdr as stellar_xdr

from sorosign.signing.base import (
    AuthSigningRequest,
    Signer,
    SignerType,
    SigningError,
    account_public_key,
)

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = ("stellar-signer-", "soroban-signer-")

Resolver = Callable[[str], Optional[str]]


class PluginError(SigningError):
    """Plugin could not be run or talked to."""

    def __init__(self, name: str, details: str):
        self.name = name
        self.details = details
        super().__init__(f"Plugin {name}: {details}")


class PluginNotFoundError(PluginError):
    def __init__(self, name: str):
        super().__init__(name, f"no stellar-signer-{name} or soroban-signer-{name} executable found on PATH")


class PluginFailedError(PluginError):
    def __init__(self, name: str, code: int):
        self.code = code
        super().__init__(name, f"exited with status {code}")


class PluginInvalidOutputError(PluginError):
    pass


def find_plugin(name: str, resolver: Resolver = shutil.which, prefixes=DEFAULT_PREFIXES) -> str:
    """Resolve a plugin name to an executable path.

    Raises:
        PluginNotFoundError: If no prefix yields an executable
    """
    for prefix in prefixes:
        path = resolver(f"{prefix}{name}")
        if path:
            return path
    raise PluginNotFoundError(name)


def build_sign_auth_request(request: AuthSigningRequest, args: dict[str, str]) -> dict:
    return {
        "mode": "sign_auth",
        "payload": request.payload.hex(),
        "network_passphrase": request.network_passphrase,
        "address": request.address.to_xdr(),
        "nonce": request.nonce,
        "signature_expiration_ledger": request.signature_expiration_ledger,
        "root_invocation": request.root_invocation.to_xdr(),
        "args": args,
    }


def build_sign_tx_request(
    envelope: stellar_xdr.TransactionEnvelope,
    tx_hash: bytes,
    network_passphrase: str,
    args: dict[str, str],
) -> dict:
    return {
        "mode": "sign_tx",
        "tx_env_xdr": envelope.to_xdr(),
        "tx_hash": tx_hash.hex(),
        "network_passphrase": network_passphrase,
        "args": args,
    }


def _check_credential(name: str, value: stellar_xdr.SCVal) -> None:
    """Reject {public_key, signature} maps that cannot be ordered."""
    if value.type != stellar_xdr.SCValType.SCV_VEC or value.vec is None:
        return
    for item in value.vec.sc_vec:
        if item.type != stellar_xdr.SCValType.SCV_MAP:
            continue
        if item.map is None:
            raise PluginInvalidOutputError(name, "credential map is missing its entries")
        for entry in item.map.sc_map:
            if entry.key.type != stellar_xdr.SCValType.SCV_SYMBOL or scval.from_symbol(entry.key) != "public_key":
                continue
            if (
                entry.val.type != stellar_xdr.SCValType.SCV_BYTES
                or len(entry.val.bytes.sc_bytes) != 32
            ):
                raise PluginInvalidOutputError(name, "credential public_key must be 32 bytes")


def parse_credential(name: str, output: bytes) -> stellar_xdr.SCVal:
    try:
        value = stellar_xdr.SCVal.from_xdr(output.decode().strip())
    except Exception as e:
        raise PluginInvalidOutputError(
            name, f"failed to decode SCVal from base64 XDR: {e}"
        ) from e
    _check_credential(name, value)
    return value


def parse_signatures(name: str, output: bytes) -> list[stellar_xdr.DecoratedSignature]:
    try:
        items = json.loads(output.decode())
    except (UnicodeDecodeError, ValueError) as e:
        raise PluginInvalidOutputError(
            name, f"expected JSON array of base64 XDR DecoratedSignature strings: {e}"
        ) from e
    if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
        raise PluginInvalidOutputError(
            name, "expected JSON array of base64 XDR DecoratedSignature strings"
        )

    signatures = []
    for item in items:
        try:
            signatures.append(stellar_xdr.DecoratedSignature.from_xdr(item.strip()))
        except Exception as e:
            raise PluginInvalidOutputError(
                name, f"failed to decode DecoratedSignature from base64 XDR: {e}"
            ) from e
    return signatures


class PluginSigner(Signer):
    """Signer that delegates to an external executable bound to one address."""

    def __init__(
        self,
        name: str,
        address: str,
        args: Optional[dict[str, str]] = None,
        resolver: Resolver = shutil.which,
        prefixes=DEFAULT_PREFIXES,
    ):
        """Initialize plugin signer.

        Args:
            name: Plugin name (stellar-signer-<name>)
            address: G.../C... address the plugin signs for
            args: Extra arguments forwarded in the request's "args" object
            resolver: PATH lookup, injectable for tests

        Raises:
            PluginNotFoundError: If the executable cannot be resolved
        """
        super().__init__(SignerType.PLUGIN)
        self.name = name
        self.address = address
        self.sc_address = Address(address).to_xdr_sc_address()
        self.args = dict(args or {})
        self.bin_path = find_plugin(name, resolver, prefixes)
        logger.debug(f"Resolved plugin {name} to {self.bin_path}")

    async def get_public_key(self) -> bytes:
        key = account_public_key(self.sc_address)
        if key is None:
            raise SigningError(f"Plugin {self.name} is bound to contract {self.address}, not an account")
        return key

    async def get_address(self) -> str:
        return self.address

    async def sign_payload(self, payload: bytes) -> bytes:
        raise PluginError(self.name, "plugins sign authorization entries or transactions, not raw payloads")

    async def sign_auth_entry(self, request: AuthSigningRequest) -> stellar_xdr.SCVal:
        request = replace(request, address=self.sc_address)
        output = await self._invoke(build_sign_auth_request(request, self.args))
        return parse_credential(self.name, output)

    async def sign_tx_hash(
        self,
        tx_hash: bytes,
        envelope: stellar_xdr.TransactionEnvelope,
        network_passphrase: str,
    ) -> list[stellar_xdr.DecoratedSignature]:
        request = build_sign_tx_request(envelope, tx_hash, network_passphrase, self.args)
        output = await self._invoke(request)
        return parse_signatures(self.name, output)

    async def _invoke(self, request: dict) -> bytes:
        """Run the plugin once and return its stdout."""
        logger.info(f"Invoking plugin {self.name} ({request['mode']})")
        try:
            process = await asyncio.create_subprocess_exec(
                self.bin_path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
            )
        except OSError as e:
            raise PluginError(self.name, f"failed to spawn plugin: {e}") from e

        try:
            stdout, _ = await process.communicate(json.dumps(request).encode())
        except OSError as e:
            raise PluginError(self.name, f"failed to talk to plugin: {e}") from e

        if process.returncode != 0:
            logger.warning(f"Plugin {self.name} exited with status {process.returncode}")
            raise PluginFailedError(self.name, process.returncode)
        return stdout

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, address={self.address})"
