"""Pytest configuration and fixtures."""

import hashlib
import os
from typing import Optional

import pytest

# Set test environment
os.environ["NETWORK_PASSPHRASE"] = "Test SDF Network ; September 2015"
os.environ["RPC_URL"] = "http://localhost:8000/rpc"
os.environ["POLL_INTERVAL"] = "0"
os.environ["POLL_TIMEOUT"] = "1"
os.environ["LOG_LEVEL"] = "DEBUG"

from nacl.signing import SigningKey
from stellar_sdk import Address, MuxedAccount, SorobanDataBuilder, StrKey, scval
from stellar_sdk import xdr as stellar_xdr

from sorosign.config import get_settings
from sorosign.hardware.apdu import (
    APDUAnswer,
    INS_GET_APP_CONFIGURATION,
    INS_GET_PUBLIC_KEY,
    INS_SIGN_TX,
    INS_SIGN_TX_HASH,
    P1_SIGN_TX_FIRST,
    P2_SIGN_TX_MORE,
    SW_OK,
    SW_TX_HASH_SIGNING_DISABLED,
)
from sorosign.hardware.transport import Exchange
from sorosign.rpc.base import (
    RpcClient,
    SendTransactionResult,
    SimulateHostFunctionResult,
    SimulationResult,
    TransactionResult,
)
from sorosign.signing.local import LocalKeySigner
from sorosign.utils.locks import reset_device_locks

PASSPHRASE = "Test SDF Network ; September 2015"
CONTRACT_ID = StrKey.encode_contract(bytes(range(32)))

get_settings.cache_clear()


def make_invocation(function_name: str = "hello", contract_id: str = CONTRACT_ID):
    return stellar_xdr.SorobanAuthorizedInvocation(
        function=stellar_xdr.SorobanAuthorizedFunction(
            type=stellar_xdr.SorobanAuthorizedFunctionType.SOROBAN_AUTHORIZED_FUNCTION_TYPE_CONTRACT_FN,
            contract_fn=stellar_xdr.InvokeContractArgs(
                contract_address=Address(contract_id).to_xdr_sc_address(),
                function_name=stellar_xdr.SCSymbol(function_name.encode()),
                args=[],
            ),
        ),
        sub_invocations=[],
    )


def make_address_auth(address: str, nonce: int = 7, function_name: str = "hello"):
    """Unsigned auth entry credentialed for an address."""
    return stellar_xdr.SorobanAuthorizationEntry(
        credentials=stellar_xdr.SorobanCredentials(
            type=stellar_xdr.SorobanCredentialsType.SOROBAN_CREDENTIALS_ADDRESS,
            address=stellar_xdr.SorobanAddressCredentials(
                address=Address(address).to_xdr_sc_address(),
                nonce=stellar_xdr.Int64(nonce),
                signature_expiration_ledger=stellar_xdr.Uint32(0),
                signature=scval.to_void(),
            ),
        ),
        root_invocation=make_invocation(function_name),
    )


def make_source_auth(function_name: str = "hello"):
    """Auth entry covered by the transaction source signature."""
    return stellar_xdr.SorobanAuthorizationEntry(
        credentials=stellar_xdr.SorobanCredentials(
            type=stellar_xdr.SorobanCredentialsType.SOROBAN_CREDENTIALS_SOURCE_ACCOUNT,
        ),
        root_invocation=make_invocation(function_name),
    )


def make_invoke_op(auth=None, function_name: str = "hello"):
    return stellar_xdr.Operation(
        source_account=None,
        body=stellar_xdr.OperationBody(
            type=stellar_xdr.OperationType.INVOKE_HOST_FUNCTION,
            invoke_host_function_op=stellar_xdr.InvokeHostFunctionOp(
                host_function=stellar_xdr.HostFunction(
                    type=stellar_xdr.HostFunctionType.HOST_FUNCTION_TYPE_INVOKE_CONTRACT,
                    invoke_contract=stellar_xdr.InvokeContractArgs(
                        contract_address=Address(CONTRACT_ID).to_xdr_sc_address(),
                        function_name=stellar_xdr.SCSymbol(function_name.encode()),
                        args=[scval.to_symbol("world")],
                    ),
                ),
                auth=list(auth or []),
            ),
        ),
    )


def make_transaction(source: str, fee: int = 100, seq: int = 1, operations=None):
    return stellar_xdr.Transaction(
        source_account=MuxedAccount(source).to_xdr_object(),
        fee=stellar_xdr.Uint32(fee),
        seq_num=stellar_xdr.SequenceNumber(stellar_xdr.Int64(seq)),
        cond=stellar_xdr.Preconditions(type=stellar_xdr.PreconditionType.PRECOND_NONE),
        memo=stellar_xdr.Memo(type=stellar_xdr.MemoType.MEMO_NONE),
        operations=operations if operations is not None else [make_invoke_op()],
        ext=stellar_xdr.TransactionExt(v=0),
    )


def make_ledger_key(name: str = "counter"):
    return stellar_xdr.LedgerKey(
        type=stellar_xdr.LedgerEntryType.CONTRACT_DATA,
        contract_data=stellar_xdr.LedgerKeyContractData(
            contract=Address(CONTRACT_ID).to_xdr_sc_address(),
            key=scval.to_symbol(name),
            durability=stellar_xdr.ContractDataDurability.PERSISTENT,
        ),
    )


def make_transaction_data(read_write: bool = True, resource_fee: int = 0, instructions: int = 1000):
    builder = SorobanDataBuilder().set_resource_fee(resource_fee)
    builder.set_read_only([make_ledger_key("config")])
    if read_write:
        builder.set_read_write([make_ledger_key("counter")])
    data = builder.build()
    data.resources.instructions = stellar_xdr.Uint32(instructions)
    return data


def make_simulation(
    min_resource_fee: int = 115,
    auth=None,
    read_write: bool = True,
    results: Optional[int] = 1,
    restore_fee: Optional[int] = None,
    latest_ledger: int = 1000,
    error: Optional[str] = None,
):
    restore = None
    if restore_fee is not None:
        from sorosign.rpc.base import RestorePreamble

        restore = RestorePreamble(
            transaction_data=make_transaction_data(read_write=True),
            min_resource_fee=restore_fee,
        )
    return SimulationResult(
        min_resource_fee=min_resource_fee,
        results=[
            SimulateHostFunctionResult(auth=list(auth or []), return_value=scval.to_uint32(42))
            for _ in range(results or 0)
        ],
        transaction_data=make_transaction_data(read_write=read_write),
        events=[],
        restore_preamble=restore,
        latest_ledger=latest_ledger,
        error=error,
    )


class FakeRpc(RpcClient):
    """In-memory RPC returning queued simulations and recording submissions."""

    def __init__(self, simulations=None, latest_ledger: int = 1000, final_status: str = "SUCCESS"):
        self.simulations = list(simulations or [])
        self.latest_ledger = latest_ledger
        self.final_status = final_status
        self.simulated = []
        self.sent = []

    async def simulate_transaction(self, envelope):
        self.simulated.append(envelope)
        if len(self.simulations) > 1:
            return self.simulations.pop(0)
        return self.simulations[0]

    async def send_transaction(self, envelope):
        self.sent.append(envelope)
        return SendTransactionResult(hash=f"{len(self.sent):064x}", status="PENDING")

    async def poll_transaction(self, tx_hash):
        return TransactionResult(hash=tx_hash, status=self.final_status, ledger=self.latest_ledger)

    async def get_latest_ledger(self):
        return self.latest_ledger


@pytest.fixture(autouse=True)
def _reset_device_locks():
    reset_device_locks()
    yield
    reset_device_locks()


@pytest.fixture
def passphrase() -> str:
    return PASSPHRASE


@pytest.fixture
def alice() -> LocalKeySigner:
    return LocalKeySigner(b"\x01" * 32)


@pytest.fixture
def bob() -> LocalKeySigner:
    return LocalKeySigner(b"\x02" * 32)


@pytest.fixture
def carol() -> LocalKeySigner:
    return LocalKeySigner(b"\x03" * 32)


@pytest.fixture
def alice_address(alice) -> str:
    return StrKey.encode_ed25519_public_key(alice.public_key)


@pytest.fixture
def bob_address(bob) -> str:
    return StrKey.encode_ed25519_public_key(bob.public_key)


class FakeLedgerTransport(Exchange):
    """Emulates the Stellar app: derives nothing, signs with one fixed key."""

    device_id = "fake-ledger"

    def __init__(self, seed: bytes = b"\x05" * 32, hash_signing: bool = False, fail_status: Optional[int] = None):
        self.key = SigningKey(seed)
        self.hash_signing = hash_signing
        self.fail_status = fail_status
        self.commands = []
        self._buffer = b""

    @property
    def public_key(self) -> bytes:
        return bytes(self.key.verify_key)

    async def exchange(self, command):
        self.commands.append(command)
        if self.fail_status is not None:
            return APDUAnswer(b"", self.fail_status)

        path_length = 1 + 4 * 3
        if command.ins == INS_GET_PUBLIC_KEY:
            return APDUAnswer(self.public_key, SW_OK)
        if command.ins == INS_GET_APP_CONFIGURATION:
            return APDUAnswer(bytes([1 if self.hash_signing else 0, 5, 0, 3]), SW_OK)
        if command.ins == INS_SIGN_TX_HASH:
            if not self.hash_signing:
                return APDUAnswer(b"", SW_TX_HASH_SIGNING_DISABLED)
            return APDUAnswer(self.key.sign(command.data[path_length:]).signature, SW_OK)
        if command.ins == INS_SIGN_TX:
            if command.p1 == P1_SIGN_TX_FIRST:
                self._buffer = b""
            self._buffer += command.data
            if command.p2 == P2_SIGN_TX_MORE:
                return APDUAnswer(b"", SW_OK)
            digest = hashlib.sha256(self._buffer[path_length:]).digest()
            return APDUAnswer(self.key.sign(digest).signature, SW_OK)
        return APDUAnswer(b"", 0x6D00)
