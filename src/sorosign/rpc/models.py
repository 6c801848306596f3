"""Wire models for Soroban JSON-RPC responses.

Field names follow the RPC's camelCase JSON; XDR values stay base64 here
and are decoded by the result types in sorosign.rpc.base.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _RpcModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RawHostFunctionResult(_RpcModel):
    """One entry of simulateTransaction.results."""

    auth: list[str] = Field(default_factory=list, description="Proposed auth entries (base64 XDR)")
    xdr: str = Field(default="", description="Return value SCVal (base64 XDR)")


class RawRestorePreamble(_RpcModel):
    """Present when referenced ledger entries are archived."""

    transaction_data: str = Field(..., alias="transactionData", description="SorobanTransactionData for the restore")
    min_resource_fee: int = Field(..., alias="minResourceFee", description="Resource fee of the restore (stroops)")


class RawSimulateTransactionResponse(_RpcModel):
    """simulateTransaction result."""

    latest_ledger: int = Field(default=0, alias="latestLedger")
    min_resource_fee: int = Field(default=0, alias="minResourceFee", description="Stroops, sent as a string")
    results: list[RawHostFunctionResult] = Field(default_factory=list)
    transaction_data: str = Field(default="", alias="transactionData")
    events: list[str] = Field(default_factory=list, description="Diagnostic events (base64 XDR)")
    restore_preamble: Optional[RawRestorePreamble] = Field(None, alias="restorePreamble")
    error: Optional[str] = Field(None, description="Simulation failure message")


class RawSendTransactionResponse(_RpcModel):
    """sendTransaction result."""

    hash: str = Field(..., description="Transaction hash (hex)")
    status: str = Field(..., description="PENDING, DUPLICATE, TRY_AGAIN_LATER or ERROR")
    latest_ledger: int = Field(default=0, alias="latestLedger")
    error_result_xdr: Optional[str] = Field(None, alias="errorResultXdr")
    diagnostic_events_xdr: list[str] = Field(default_factory=list, alias="diagnosticEventsXdr")


class RawGetTransactionResponse(_RpcModel):
    """getTransaction result."""

    status: str = Field(..., description="SUCCESS, FAILED or NOT_FOUND")
    latest_ledger: int = Field(default=0, alias="latestLedger")
    ledger: Optional[int] = Field(None)
    envelope_xdr: Optional[str] = Field(None, alias="envelopeXdr")
    result_xdr: Optional[str] = Field(None, alias="resultXdr")
    result_meta_xdr: Optional[str] = Field(None, alias="resultMetaXdr")


class RawLatestLedgerResponse(_RpcModel):
    """getLatestLedger result."""

    id: str = Field(default="")
    protocol_version: int = Field(default=0, alias="protocolVersion")
    sequence: int = Field(...)
