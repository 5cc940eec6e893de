"""Private UTXO records, local ledger and lineage"""
from privutxo.core.state.utxo import UTXO, UTXOState, UTXOType, create_utxo, compute_utxo_id
from privutxo.core.state.ledger import Ledger
from privutxo.core.state.history import AuditReport, UTXOHistory

__all__ = [
    "UTXO",
    "UTXOState",
    "UTXOType",
    "create_utxo",
    "compute_utxo_id",
    "Ledger",
    "AuditReport",
    "UTXOHistory",
]
