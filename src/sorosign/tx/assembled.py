"""Reconcile a locally built transaction with its simulation.

assemble() copies the simulated auth entries and transaction data into the
transaction and applies the fee policy:

    total = inclusion fee + resource fee
    total fits in uint32   -> fee = total
    otherwise              -> fee = 0, wrap in a fee bump paying
                              2 * inclusion + resource fee (must fit int64)

Every transform returns a new value; inputs are never mutated.
"""

import logging
from typing import Optional

from stellar_sdk import xdr as stellar_xdr

from sorosign.rpc.base import RestorePreamble, RpcClient, SimulationResult
from sorosign.signing.auth import invoke_operation, requires_auth
from sorosign.signing.base import Signer
from sorosign.tx.hashing import clone, transaction_hash

logger = logging.getLogger(__name__)

U32_MAX = 2**32 - 1
I64_MAX = 2**63 - 1


class AssemblyError(Exception):
    """Exception raised when a transaction cannot be assembled."""
    pass


class UnexpectedOperationCount(AssemblyError):
    def __init__(self, count: int):
        self.count = count
        super().__init__(f"Unexpected number of operations: {count}")


class UnexpectedSimulateTransactionResultSize(AssemblyError):
    def __init__(self, length: int):
        self.length = length
        super().__init__(f"Unexpected number of simulation results: {length}")


class LargeFee(AssemblyError):
    def __init__(self, fee: int):
        self.fee = fee
        super().__init__(f"Fee too large: {fee}")


class TransactionSimulationFailed(AssemblyError):
    def __init__(self, error: str):
        self.error = error
        super().__init__(f"Transaction simulation failed: {error}")


def unsigned_envelope(tx: stellar_xdr.Transaction) -> stellar_xdr.TransactionEnvelope:
    return stellar_xdr.TransactionEnvelope(
        type=stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX,
        v1=stellar_xdr.TransactionV1Envelope(tx=tx, signatures=[]),
    )


def fee_bump_envelope(
    signed_inner: stellar_xdr.TransactionEnvelope, fee: int
) -> stellar_xdr.TransactionEnvelope:
    """Wrap a signed v1 envelope in an unsigned fee bump paid by the inner source."""
    inner = clone(signed_inner)
    return stellar_xdr.TransactionEnvelope(
        type=stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP,
        fee_bump=stellar_xdr.FeeBumpTransactionEnvelope(
            tx=stellar_xdr.FeeBumpTransaction(
                fee_source=clone(inner.v1.tx.source_account),
                fee=stellar_xdr.Int64(fee),
                inner_tx=stellar_xdr.FeeBumpTransactionInnerTx(
                    type=stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX,
                    v1=inner.v1,
                ),
                ext=stellar_xdr.FeeBumpTransactionExt(v=0),
            ),
            signatures=[],
        ),
    )


def assemble(
    raw: stellar_xdr.Transaction,
    simulation: SimulationResult,
    resource_fee: Optional[int] = None,
) -> tuple[stellar_xdr.Transaction, Optional[int]]:
    """Apply a simulation to a transaction.

    Args:
        raw: Unsigned transaction with exactly one operation
        simulation: Simulation of that transaction
        resource_fee: Override for the simulated minimum resource fee

    Returns:
        (assembled transaction, fee bump fee or None)

    Raises:
        UnexpectedOperationCount: If the transaction has other than one op
        UnexpectedSimulateTransactionResultSize: If auth must be copied and
            the simulation does not have exactly one result
        LargeFee: If even the fee bump fee does not fit
    """
    if len(raw.operations) != 1:
        raise UnexpectedOperationCount(len(raw.operations))
    if simulation.transaction_data is None:
        raise AssemblyError("Simulation returned no transaction data")

    tx = clone(raw)

    op = invoke_operation(tx)
    if op is not None and not op.auth:
        if len(simulation.results) != 1:
            raise UnexpectedSimulateTransactionResultSize(len(simulation.results))
        op.auth = [clone(entry) for entry in simulation.results[0].auth]

    transaction_data = clone(simulation.transaction_data)
    if resource_fee is not None:
        transaction_data.resource_fee = stellar_xdr.Int64(resource_fee)
    else:
        resource_fee = simulation.min_resource_fee

    inclusion_fee = tx.fee.uint32
    total = inclusion_fee + resource_fee
    fee_bump_fee = None
    if total <= U32_MAX:
        tx.fee = stellar_xdr.Uint32(total)
    else:
        fee_bump_fee = 2 * inclusion_fee + resource_fee
        if fee_bump_fee > I64_MAX:
            raise LargeFee(fee_bump_fee)
        logger.info(f"Fee {total} exceeds the transaction fee field; using fee bump of {fee_bump_fee}")
        tx.fee = stellar_xdr.Uint32(0)

    tx.ext = stellar_xdr.TransactionExt(v=1, soroban_data=transaction_data)
    return tx, fee_bump_fee


def restore_transaction(
    parent: stellar_xdr.Transaction, preamble: RestorePreamble
) -> stellar_xdr.Transaction:
    """Build the restore-footprint transaction a simulation asked for.

    Shares source and sequence number with the parent; the parent is
    re-sequenced after the restore lands.
    """
    fee = parent.fee.uint32 + preamble.min_resource_fee
    if fee > U32_MAX:
        raise LargeFee(fee)

    return stellar_xdr.Transaction(
        source_account=clone(parent.source_account),
        fee=stellar_xdr.Uint32(fee),
        seq_num=clone(parent.seq_num),
        cond=stellar_xdr.Preconditions(type=stellar_xdr.PreconditionType.PRECOND_NONE),
        memo=stellar_xdr.Memo(type=stellar_xdr.MemoType.MEMO_NONE),
        operations=[
            stellar_xdr.Operation(
                source_account=None,
                body=stellar_xdr.OperationBody(
                    type=stellar_xdr.OperationType.RESTORE_FOOTPRINT,
                    restore_footprint_op=stellar_xdr.RestoreFootprintOp(
                        ext=stellar_xdr.ExtensionPoint(v=0)
                    ),
                ),
            )
        ],
        ext=stellar_xdr.TransactionExt(v=1, soroban_data=clone(preamble.transaction_data)),
    )


class AssembledTransaction:
    """A transaction reconciled with the simulation it came from."""

    def __init__(
        self,
        tx: stellar_xdr.Transaction,
        simulation: SimulationResult,
        fee_bump_fee: Optional[int] = None,
    ):
        self.tx = tx
        self.simulation = simulation
        self.fee_bump_fee = fee_bump_fee

    @classmethod
    def from_simulation(
        cls,
        raw: stellar_xdr.Transaction,
        simulation: SimulationResult,
        resource_fee: Optional[int] = None,
    ) -> "AssembledTransaction":
        tx, fee_bump_fee = assemble(raw, simulation, resource_fee)
        return cls(tx, simulation, fee_bump_fee)

    def hash(self, network_passphrase: str) -> bytes:
        return transaction_hash(self.tx, network_passphrase)

    def envelope(self) -> stellar_xdr.TransactionEnvelope:
        return unsigned_envelope(clone(self.tx))

    def bump_sequence(self) -> "AssembledTransaction":
        tx = clone(self.tx)
        tx.seq_num = stellar_xdr.SequenceNumber(
            stellar_xdr.Int64(tx.seq_num.sequence_number.int64 + 1)
        )
        return AssembledTransaction(tx, self.simulation, self.fee_bump_fee)

    def set_max_instructions(self, instructions: int) -> "AssembledTransaction":
        """Override the simulated CPU instruction budget."""
        if self.tx.ext.v != 1:
            return self
        tx = clone(self.tx)
        resources = tx.ext.soroban_data.resources
        logger.debug(f"Setting max instructions to {instructions} from {resources.instructions.uint32}")
        resources.instructions = stellar_xdr.Uint32(instructions)
        return AssembledTransaction(tx, self.simulation, self.fee_bump_fee)

    def auth_entries(self) -> list[stellar_xdr.SorobanAuthorizationEntry]:
        op = invoke_operation(self.tx)
        return list(op.auth) if op is not None else []

    def requires_auth(self) -> bool:
        return requires_auth(self.tx)

    def is_view(self) -> bool:
        """A call with no read-write footprint changes no ledger state."""
        if self.tx.ext.v != 1:
            return False
        return not self.tx.ext.soroban_data.resources.footprint.read_write

    def restore_transaction(self) -> Optional[stellar_xdr.Transaction]:
        if self.simulation.restore_preamble is None:
            return None
        return restore_transaction(self.tx, self.simulation.restore_preamble)

    async def sign(self, signer: Signer, network_passphrase: str) -> stellar_xdr.TransactionEnvelope:
        """Sign the envelope, wrapping it in a signed fee bump when needed."""
        signed = await signer.sign_transaction(self.envelope(), network_passphrase)
        if self.fee_bump_fee is None:
            return signed
        return await signer.sign_transaction(
            fee_bump_envelope(signed, self.fee_bump_fee), network_passphrase
        )

    async def handle_restore(
        self, rpc: RpcClient, signer: Signer, network_passphrase: str
    ) -> "AssembledTransaction":
        """Submit the restore transaction if one is needed.

        Returns:
            self when nothing needed restoring, otherwise a copy with the
            sequence number bumped past the restore
        """
        restore = self.restore_transaction()
        if restore is None:
            return self

        logger.info("Simulation requested a ledger entry restore; submitting restore first")
        restore_assembled = await simulate_and_assemble(rpc, restore)
        envelope = await restore_assembled.sign(signer, network_passphrase)
        await rpc.send_transaction_polling(envelope)
        return self.bump_sequence()

    def log_resources(self):
        if self.tx.ext.v != 1:
            return
        data = self.tx.ext.soroban_data
        resources = data.resources
        logger.info(
            f"Resources: instructions={resources.instructions.uint32} "
            f"write_bytes={resources.write_bytes.uint32} "
            f"read_only={len(resources.footprint.read_only)} "
            f"read_write={len(resources.footprint.read_write)} "
            f"resource_fee={data.resource_fee.int64}"
        )

    def log_events(self):
        for entry in self.auth_entries():
            logger.info(f"Auth entry: {entry.to_xdr()}")
        for i, event in enumerate(self.simulation.events):
            logger.info(f"Diagnostic event {i}: {event}")


async def simulate_and_assemble(
    rpc: RpcClient,
    tx: stellar_xdr.Transaction,
    resource_fee: Optional[int] = None,
) -> AssembledTransaction:
    """Simulate an unsigned transaction and assemble the result.

    Raises:
        TransactionSimulationFailed: If the simulation reports an error
    """
    simulation = await rpc.simulate_transaction(unsigned_envelope(tx))
    if simulation.error:
        for event in simulation.events:
            logger.error(f"Diagnostic event: {event}")
        raise TransactionSimulationFailed(simulation.error)
    return AssembledTransaction.from_simulation(tx, simulation, resource_fee)
