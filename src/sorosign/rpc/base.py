"""RPC collaborator interface and decoded result types."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from stellar_sdk import xdr as stellar_xdr

from sorosign.rpc.models import (
    RawGetTransactionResponse,
    RawSendTransactionResponse,
    RawSimulateTransactionResponse,
)

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """Exception raised when an RPC call fails."""
    pass


class TransactionSubmissionFailed(RpcError):
    """The network rejected or failed the transaction."""

    def __init__(self, tx_hash: str, status: str, result_xdr: Optional[str] = None):
        self.tx_hash = tx_hash
        self.status = status
        self.result_xdr = result_xdr
        detail = f" result={result_xdr}" if result_xdr else ""
        super().__init__(f"Transaction {tx_hash} {status}{detail}")


@dataclass
class SimulateHostFunctionResult:
    """Per-invocation simulation output."""
    auth: list[stellar_xdr.SorobanAuthorizationEntry] = field(default_factory=list)
    return_value: Optional[stellar_xdr.SCVal] = None


@dataclass
class RestorePreamble:
    """Restore work the simulation asks for before the call can succeed."""
    transaction_data: stellar_xdr.SorobanTransactionData
    min_resource_fee: int


@dataclass
class SimulationResult:
    """Decoded simulateTransaction answer."""
    min_resource_fee: int = 0
    results: list[SimulateHostFunctionResult] = field(default_factory=list)
    transaction_data: Optional[stellar_xdr.SorobanTransactionData] = None
    events: list[str] = field(default_factory=list)
    restore_preamble: Optional[RestorePreamble] = None
    latest_ledger: int = 0
    error: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: RawSimulateTransactionResponse) -> "SimulationResult":
        results = [
            SimulateHostFunctionResult(
                auth=[stellar_xdr.SorobanAuthorizationEntry.from_xdr(a) for a in r.auth],
                return_value=stellar_xdr.SCVal.from_xdr(r.xdr) if r.xdr else None,
            )
            for r in raw.results
        ]
        preamble = None
        if raw.restore_preamble is not None:
            preamble = RestorePreamble(
                transaction_data=stellar_xdr.SorobanTransactionData.from_xdr(
                    raw.restore_preamble.transaction_data
                ),
                min_resource_fee=raw.restore_preamble.min_resource_fee,
            )
        return cls(
            min_resource_fee=raw.min_resource_fee,
            results=results,
            transaction_data=(
                stellar_xdr.SorobanTransactionData.from_xdr(raw.transaction_data)
                if raw.transaction_data
                else None
            ),
            events=list(raw.events),
            restore_preamble=preamble,
            latest_ledger=raw.latest_ledger,
            error=raw.error,
        )

    @property
    def return_value(self) -> Optional[stellar_xdr.SCVal]:
        if len(self.results) != 1:
            return None
        return self.results[0].return_value


@dataclass
class SendTransactionResult:
    hash: str
    status: str
    latest_ledger: int = 0
    error_result_xdr: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: RawSendTransactionResponse) -> "SendTransactionResult":
        return cls(
            hash=raw.hash,
            status=raw.status,
            latest_ledger=raw.latest_ledger,
            error_result_xdr=raw.error_result_xdr,
        )


@dataclass
class TransactionResult:
    hash: str
    status: str
    ledger: Optional[int] = None
    result_xdr: Optional[str] = None
    result_meta_xdr: Optional[str] = None

    @classmethod
    def from_raw(cls, tx_hash: str, raw: RawGetTransactionResponse) -> "TransactionResult":
        return cls(
            hash=tx_hash,
            status=raw.status,
            ledger=raw.ledger,
            result_xdr=raw.result_xdr,
            result_meta_xdr=raw.result_meta_xdr,
        )

    @property
    def successful(self) -> bool:
        return self.status == "SUCCESS"


class RpcClient(ABC):
    """Network collaborator used by the pipeline."""

    @abstractmethod
    async def simulate_transaction(
        self, envelope: stellar_xdr.TransactionEnvelope
    ) -> SimulationResult:
        pass

    @abstractmethod
    async def send_transaction(
        self, envelope: stellar_xdr.TransactionEnvelope
    ) -> SendTransactionResult:
        pass

    @abstractmethod
    async def poll_transaction(self, tx_hash: str) -> TransactionResult:
        """Wait until the transaction leaves NOT_FOUND and return its result."""
        pass

    @abstractmethod
    async def get_latest_ledger(self) -> int:
        pass

    async def send_transaction_polling(
        self, envelope: stellar_xdr.TransactionEnvelope
    ) -> TransactionResult:
        """Submit and wait for the final result.

        Raises:
            TransactionSubmissionFailed: If the send is rejected or the
                transaction fails on ledger
        """
        sent = await self.send_transaction(envelope)
        logger.info(f"Submitted transaction {sent.hash}: {sent.status}")
        if sent.status == "ERROR":
            raise TransactionSubmissionFailed(sent.hash, sent.status, sent.error_result_xdr)

        result = await self.poll_transaction(sent.hash)
        if not result.successful:
            raise TransactionSubmissionFailed(result.hash, result.status, result.result_xdr)
        return result

    async def close(self):
        pass
