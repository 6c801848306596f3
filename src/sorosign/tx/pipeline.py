"""Invoke pipeline: build -> simulate -> assemble -> authorize -> sign -> submit.

Steps:
1. Simulate the unsigned transaction and assemble it
2. Return early for build-only, simulation-only and read-only calls
3. Submit a restore transaction when the simulation asks for one, then
   re-simulate with the next sequence number
4. Sign address-credentialed auth entries and re-simulate so resources
   account for signature verification
5. Sign the envelope (and fee bump wrapper) and submit, polling for the
   result
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from stellar_sdk import xdr as stellar_xdr

from sorosign.config import Settings, get_settings
from sorosign.rpc.base import RpcClient, SimulationResult, TransactionResult
from sorosign.signing.auth import sign_authorizations
from sorosign.signing.base import Signer
from sorosign.signing.plugin import PluginSigner
from sorosign.tx.assembled import (
    AssembledTransaction,
    simulate_and_assemble,
    unsigned_envelope,
)
from sorosign.tx.hashing import clone

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run.

    Attributes:
        envelope: Envelope produced (unsigned for build/sim-only runs)
        simulation: Last simulation, when one was run
        transaction: Final on-ledger result, when submitted
        submitted: Whether the envelope was sent to the network
    """
    envelope: Optional[stellar_xdr.TransactionEnvelope] = None
    simulation: Optional[SimulationResult] = None
    transaction: Optional[TransactionResult] = None
    submitted: bool = False

    @property
    def return_value(self) -> Optional[stellar_xdr.SCVal]:
        if self.simulation is None:
            return None
        return self.simulation.return_value


def _with_sequence(tx: stellar_xdr.Transaction, sequence: int) -> stellar_xdr.Transaction:
    updated = clone(tx)
    updated.seq_num = stellar_xdr.SequenceNumber(stellar_xdr.Int64(sequence))
    return updated


class InvokePipeline:
    """Drives one contract invocation through to submission."""

    def __init__(
        self,
        rpc: RpcClient,
        signer: Optional[Signer],
        network_passphrase: Optional[str] = None,
        extra_signers: Sequence[Signer] = (),
        plugin_signers: Sequence[PluginSigner] = (),
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.rpc = rpc
        self.signer = signer
        self.network_passphrase = network_passphrase or self.settings.network_passphrase
        self.extra_signers = list(extra_signers)
        self.plugin_signers = list(plugin_signers)

    async def _simulate(
        self,
        tx: stellar_xdr.Transaction,
        resource_fee: Optional[int],
        instructions: Optional[int],
    ) -> AssembledTransaction:
        assembled = await simulate_and_assemble(self.rpc, tx, resource_fee)
        if instructions is not None:
            assembled = assembled.set_max_instructions(instructions)
        return assembled

    async def run(
        self,
        tx: stellar_xdr.Transaction,
        build_only: bool = False,
        sim_only: bool = False,
        send_view: bool = False,
        resource_fee: Optional[int] = None,
        instructions: Optional[int] = None,
    ) -> PipelineResult:
        """Run the pipeline for an unsigned transaction.

        Args:
            tx: Unsigned transaction with one invoke operation
            build_only: Return the unsigned transaction without simulating
            sim_only: Return the assembled, unsigned transaction
            send_view: Sign and submit even when the call is read-only
            resource_fee: Override the simulated resource fee
            instructions: Override the simulated instruction budget

        Returns:
            PipelineResult
        """
        if build_only:
            return PipelineResult(envelope=unsigned_envelope(clone(tx)))

        assembled = await self._simulate(tx, resource_fee, instructions)
        assembled.log_resources()
        assembled.log_events()

        if sim_only:
            return PipelineResult(envelope=assembled.envelope(), simulation=assembled.simulation)

        if assembled.is_view() and not send_view:
            logger.info("Read-only call; returning simulation result without submitting")
            return PipelineResult(envelope=assembled.envelope(), simulation=assembled.simulation)

        if self.signer is None:
            raise ValueError("A signer is required to submit transactions")

        restored = await assembled.handle_restore(self.rpc, self.signer, self.network_passphrase)
        if restored is not assembled:
            tx = _with_sequence(tx, restored.tx.seq_num.sequence_number.int64)
            assembled = await self._simulate(tx, resource_fee, instructions)

        if assembled.requires_auth():
            latest_ledger = await self.rpc.get_latest_ledger()
            expiration = latest_ledger + self.settings.auth_expiration_offset
            signed_tx = await sign_authorizations(
                assembled.tx,
                self.signer,
                expiration,
                self.network_passphrase,
                extra_signers=self.extra_signers,
                plugin_signers=self.plugin_signers,
            )
            if signed_tx is not None:
                # Inclusion fee only; assemble adds the resource fee
                signed_tx.fee = clone(tx.fee)
                assembled = await self._simulate(signed_tx, resource_fee, instructions)

        envelope = await assembled.sign(self.signer, self.network_passphrase)
        logger.info(f"Submitting transaction {assembled.hash(self.network_passphrase).hex()}")
        result = await self.rpc.send_transaction_polling(envelope)

        return PipelineResult(
            envelope=envelope,
            simulation=assembled.simulation,
            transaction=result,
            submitted=True,
        )
