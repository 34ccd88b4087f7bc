"""Ledger access: transaction building, signing and the gateway."""

from assetchain.ledger.gateway import LedgerGateway, SubmitResult
from assetchain.ledger.keys import SigningCredential
from assetchain.ledger.rpc import JsonRpcClient
from assetchain.ledger.transaction import Transaction

__all__ = [
    "JsonRpcClient",
    "LedgerGateway",
    "SigningCredential",
    "SubmitResult",
    "Transaction",
]
