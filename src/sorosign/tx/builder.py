"""Build unsigned contract invocation transactions."""

from typing import Optional, Sequence

from stellar_sdk import Account, TransactionBuilder
from stellar_sdk import xdr as stellar_xdr

from sorosign.config import Settings, get_settings


def build_invoke_transaction(
    source: str,
    sequence: int,
    contract_id: str,
    function_name: str,
    args: Sequence[stellar_xdr.SCVal] = (),
    network_passphrase: Optional[str] = None,
    fee: Optional[int] = None,
    timeout: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> stellar_xdr.Transaction:
    """Build a single invoke-contract operation transaction.

    Args:
        source: G... source account
        sequence: Current sequence number of the source account; the
            transaction uses sequence + 1
        contract_id: C... contract address
        function_name: Contract function to call
        args: Call arguments
        network_passphrase: Defaults to settings.network_passphrase
        fee: Inclusion fee in stroops (defaults to settings.inclusion_fee)
        timeout: Seconds the transaction stays valid (None = no time bounds)

    Returns:
        Unsigned transaction with empty auth, ready for simulation
    """
    settings = settings or get_settings()
    builder = TransactionBuilder(
        source_account=Account(source, sequence),
        network_passphrase=network_passphrase or settings.network_passphrase,
        base_fee=settings.inclusion_fee if fee is None else fee,
    )
    builder.append_invoke_contract_function_op(
        contract_id=contract_id,
        function_name=function_name,
        parameters=list(args),
    )
    if timeout is not None:
        builder.set_timeout(timeout)
    envelope = builder.build()
    return envelope.transaction.to_xdr_object()
