"""Tests for the invoke pipeline and transaction building."""

import pytest
from stellar_sdk import scval
from stellar_sdk import xdr as stellar_xdr

from conftest import (
    CONTRACT_ID,
    FakeRpc,
    make_address_auth,
    make_simulation,
    make_transaction,
)
from sorosign.config import Settings
from sorosign.rpc.base import TransactionSubmissionFailed
from sorosign.signing.base import MissingSignerForAddress
from sorosign.tx.builder import build_invoke_transaction
from sorosign.tx.pipeline import InvokePipeline

U32_MAX = 2**32 - 1


def _auth_of(envelope):
    return envelope.v1.tx.operations[0].body.invoke_host_function_op.auth


class TestBuildInvokeTransaction:
    """Tests for build_invoke_transaction."""

    def test_single_invoke_operation(self, alice_address, passphrase):
        tx = build_invoke_transaction(
            alice_address,
            41,
            CONTRACT_ID,
            "hello",
            [scval.to_symbol("world")],
            network_passphrase=passphrase,
            timeout=30,
        )

        assert tx.seq_num.sequence_number.int64 == 42
        assert tx.fee.uint32 == 100
        assert len(tx.operations) == 1
        op = tx.operations[0].body.invoke_host_function_op
        assert op.host_function.invoke_contract.function_name.sc_symbol == b"hello"
        assert op.auth == []

    def test_fee_and_network_from_settings(self, alice_address):
        """Test the inclusion fee and passphrase default to the configured values."""
        settings = Settings(inclusion_fee=250, network_passphrase="Standalone Network ; February 2017")

        tx = build_invoke_transaction(alice_address, 41, CONTRACT_ID, "hello", settings=settings)

        assert tx.fee.uint32 == 250
        assert tx.operations[0].body.invoke_host_function_op.host_function.invoke_contract.args == []

    def test_explicit_fee_wins(self, alice_address):
        tx = build_invoke_transaction(alice_address, 41, CONTRACT_ID, "hello", fee=0, settings=Settings(inclusion_fee=250))
        assert tx.fee.uint32 == 0



class TestInvokePipeline:
    """Tests for InvokePipeline.run."""

    @pytest.mark.asyncio
    async def test_build_only(self, alice, alice_address):
        """Test build-only never talks to the network."""
        rpc = FakeRpc([make_simulation()])
        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address), build_only=True)

        assert rpc.simulated == []
        assert result.envelope.v1.signatures == []
        assert not result.submitted

    @pytest.mark.asyncio
    async def test_sim_only(self, alice, alice_address):
        rpc = FakeRpc([make_simulation()])
        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address), sim_only=True)

        assert len(rpc.simulated) == 1
        assert rpc.sent == []
        assert result.envelope.v1.tx.fee.uint32 == 215
        assert scval.from_uint32(result.return_value) == 42

    @pytest.mark.asyncio
    async def test_view_call_not_submitted(self, alice, alice_address):
        """Test a read-only call returns the simulated value without sending."""
        rpc = FakeRpc([make_simulation(read_write=False)])
        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address))

        assert rpc.sent == []
        assert not result.submitted
        assert scval.from_uint32(result.return_value) == 42

    @pytest.mark.asyncio
    async def test_send_view(self, alice, alice_address):
        rpc = FakeRpc([make_simulation(read_write=False)])
        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address), send_view=True)

        assert len(rpc.sent) == 1
        assert result.submitted

    @pytest.mark.asyncio
    async def test_submit_without_auth(self, alice, alice_address):
        rpc = FakeRpc([make_simulation()])
        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address))

        assert result.submitted
        assert result.transaction.successful
        assert len(rpc.sent[0].v1.signatures) == 1
        assert len(rpc.simulated) == 1

    @pytest.mark.asyncio
    async def test_signer_required_to_submit(self, alice_address):
        rpc = FakeRpc([make_simulation()])

        with pytest.raises(ValueError):
            await InvokePipeline(rpc, None).run(make_transaction(alice_address))

    @pytest.mark.asyncio
    async def test_auth_signed_and_resimulated(self, alice, bob, alice_address, bob_address):
        """Test auth entries are signed then the transaction is simulated again."""
        rpc = FakeRpc([make_simulation(auth=[make_address_auth(bob_address)])], latest_ledger=1000)
        pipeline = InvokePipeline(rpc, alice, extra_signers=[bob])

        result = await pipeline.run(make_transaction(alice_address, fee=100))

        assert len(rpc.simulated) == 2
        resimulated_auth = _auth_of(rpc.simulated[1])[0]
        assert resimulated_auth.credentials.address.signature_expiration_ledger.uint32 == 1060
        assert resimulated_auth.credentials.address.signature.type == stellar_xdr.SCValType.SCV_VEC

        sent = rpc.sent[0]
        assert sent.v1.tx.fee.uint32 == 215
        assert _auth_of(sent)[0].credentials.address.signature.type == stellar_xdr.SCValType.SCV_VEC
        assert result.submitted

    @pytest.mark.asyncio
    async def test_missing_auth_signer_stops_before_submit(self, alice, alice_address, bob_address):
        rpc = FakeRpc([make_simulation(auth=[make_address_auth(bob_address)])])

        with pytest.raises(MissingSignerForAddress):
            await InvokePipeline(rpc, alice).run(make_transaction(alice_address))

        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_restore_then_retry(self, alice, alice_address):
        """Test an archived footprint is restored before the call is sent."""
        rpc = FakeRpc(
            [
                make_simulation(restore_fee=100),
                make_simulation(min_resource_fee=20, results=0),
                make_simulation(),
            ]
        )

        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address, seq=5))

        assert len(rpc.sent) == 2
        restore, call = rpc.sent
        assert restore.v1.tx.operations[0].body.type == stellar_xdr.OperationType.RESTORE_FOOTPRINT
        assert restore.v1.tx.seq_num.sequence_number.int64 == 5
        assert call.v1.tx.seq_num.sequence_number.int64 == 6
        assert call.v1.tx.operations[0].body.type == stellar_xdr.OperationType.INVOKE_HOST_FUNCTION
        assert result.submitted

    @pytest.mark.asyncio
    async def test_large_fee_sent_as_fee_bump(self, alice, alice_address):
        rpc = FakeRpc([make_simulation(min_resource_fee=U32_MAX)])

        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address, fee=100))

        assert result.envelope.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP
        assert rpc.sent[0].fee_bump.tx.fee.int64 == U32_MAX + 200
        assert rpc.sent[0].fee_bump.tx.inner_tx.v1.tx.fee.uint32 == 0

    @pytest.mark.asyncio
    async def test_instruction_override(self, alice, alice_address):
        rpc = FakeRpc([make_simulation()])

        result = await InvokePipeline(rpc, alice).run(make_transaction(alice_address), instructions=9_999)

        assert result.envelope.v1.tx.ext.soroban_data.resources.instructions.uint32 == 9_999

    @pytest.mark.asyncio
    async def test_failed_transaction(self, alice, alice_address):
        rpc = FakeRpc([make_simulation()], final_status="FAILED")

        with pytest.raises(TransactionSubmissionFailed) as exc_info:
            await InvokePipeline(rpc, alice).run(make_transaction(alice_address))

        assert exc_info.value.status == "FAILED"
